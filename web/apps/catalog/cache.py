"""Cache facade for product reads.

The cache is an accelerator, never a source of truth: every operation
catches backend errors, logs them and degrades to a miss or a no-op.
Values must be JSON-compatible (plain dicts and lists).
"""

import fnmatch
import logging
import threading
from typing import Any

from django.conf import settings
from django.core.cache import BaseCache, caches

logger = logging.getLogger(__name__)

PRODUCT_CACHE_KEY = "product:{product_id}"
ALL_PRODUCTS_CACHE_KEY = "products:all"


def product_key(product_id: int) -> str:
    return PRODUCT_CACHE_KEY.format(product_id=product_id)


class CacheFacade:
    """get/set/remove/remove-by-pattern on string keys with a default TTL.

    Pattern removal uses the backend's ``delete_pattern`` when it has one
    (Redis backends); otherwise it matches against the keys this facade has
    written in the current process.
    """

    def __init__(self, backend: BaseCache | None = None, default_timeout: int | None = None):
        self.backend = backend if backend is not None else caches[getattr(settings, "PRODUCT_CACHE_ALIAS", "default")]
        self.default_timeout = default_timeout or getattr(settings, "PRODUCT_CACHE_TTL", 30 * 60)
        self._known_keys: set[str] = set()
        self._keys_lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        try:
            value = self.backend.get(key)
        except Exception:
            logger.exception("cache get failed", extra={"cache_key": key})
            return None
        if value is not None:
            logger.debug("cache hit", extra={"cache_key": key})
        return value

    def set(self, key: str, value: Any, timeout: int | None = None) -> None:
        try:
            self.backend.set(key, value, timeout or self.default_timeout)
        except Exception:
            logger.exception("cache set failed", extra={"cache_key": key})
            return
        with self._keys_lock:
            self._known_keys.add(key)

    def remove(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception:
            logger.exception("cache remove failed", extra={"cache_key": key})
            return
        with self._keys_lock:
            self._known_keys.discard(key)

    def remove_by_pattern(self, pattern: str) -> None:
        """Remove every key matching a glob ``pattern`` such as ``product:*``."""
        delete_pattern = getattr(self.backend, "delete_pattern", None)
        try:
            if callable(delete_pattern):
                delete_pattern(pattern)
            else:
                with self._keys_lock:
                    matched = [k for k in self._known_keys if fnmatch.fnmatchcase(k, pattern)]
                if matched:
                    self.backend.delete_many(matched)
                with self._keys_lock:
                    self._known_keys.difference_update(matched)
        except Exception:
            logger.exception("cache pattern remove failed", extra={"cache_pattern": pattern})
            return
        logger.info("removed cached values for pattern", extra={"cache_pattern": pattern})

    def invalidate_product(self, product_id: int) -> None:
        """Drop the per-product entry and the all-products list."""
        self.remove(product_key(product_id))
        self.remove(ALL_PRODUCTS_CACHE_KEY)
