"""Django settings for the StockWise web service.

Values come from environment variables so the same module serves local
development, tests and containers. PostgreSQL is used when ``DB_ENGINE`` is
``postgresql``; otherwise a local SQLite file keeps the project runnable
without external services.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-stockwise-key")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "apps.catalog",
    "apps.orders",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# ---- Database ----
if os.getenv("DB_ENGINE", "sqlite") == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "HOST": os.getenv("DB_HOST", "stockwise-db"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "NAME": os.getenv("DB_NAME", "stockwise"),
            "USER": os.getenv("DB_USER", "stockwise_user"),
            "PASSWORD": os.getenv("DB_PASSWORD", "stockwise-pass"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "stockwise.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

# ---- Cache ----
CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "stockwise"),
    }
}
PRODUCT_CACHE_ALIAS = os.getenv("PRODUCT_CACHE_ALIAS", "default")
PRODUCT_CACHE_TTL = int(os.getenv("PRODUCT_CACHE_TTL", str(30 * 60)))

# ---- REST framework ----
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_THROTTLE_RATES": {
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "600/min"),
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "300/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "1200/min"),
        "products": os.getenv("THROTTLE_PRODUCTS", "1200/min"),
    },
}

# ---- Outbound adapters ----
USE_HTTP_ADAPTERS = _env_bool("USE_HTTP_ADAPTERS", False)
EVENTS_BASE_URL = os.getenv("EVENTS_BASE_URL", "http://event-bus:9100")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "2.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

# ---- Engine ----
STOCK_TX_RETRY_MAX = int(os.getenv("STOCK_TX_RETRY_MAX", "3"))
STOCK_TX_RETRY_BACKOFF = float(os.getenv("STOCK_TX_RETRY_BACKOFF", "0.05"))
ORDER_NUMBER_MAX_ATTEMPTS = int(os.getenv("ORDER_NUMBER_MAX_ATTEMPTS", "5"))
LOW_STOCK_SWEEP_INTERVAL = float(os.getenv("LOW_STOCK_SWEEP_INTERVAL", str(30 * 60)))
LOW_STOCK_SWEEP_ERROR_DELAY = float(os.getenv("LOW_STOCK_SWEEP_ERROR_DELAY", str(5 * 60)))

API_MAX_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "apps": {"level": LOG_LEVEL, "propagate": True},
    },
}
