import os


def cpu():
    return max(1, (os.cpu_count() or 1))


wsgi_app = "config.wsgi:application"
bind = os.getenv("GUNI_BIND", "0.0.0.0:8000")

# Stock reservations hold row locks; keep worker count bounded by the DB pool
workers = min(max(2, cpu() * 2), int(os.getenv("GUNI_MAX_WORKERS", "8")))
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus rid=%({x-request-id}o)s'
