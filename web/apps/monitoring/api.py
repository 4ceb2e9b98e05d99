import logging

from django.core.cache import caches
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_view(_request):
    """DB liveness decides the status; the product cache is reported only."""
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.exception("health check: database unreachable")

    cache_ok = False
    try:
        cache = caches[getattr(settings, "PRODUCT_CACHE_ALIAS", "default")]
        cache.set("health:ping", 1, timeout=5)
        cache_ok = cache.get("health:ping") == 1
    except Exception:
        logger.warning("health check: cache unreachable", exc_info=True)

    code = 200 if db_ok else 503
    return JsonResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}, "cache": {"ok": cache_ok}}},
        status=code,
    )
