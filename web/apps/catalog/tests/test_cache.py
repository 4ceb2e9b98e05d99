"""Cache facade: degrades to misses and no-ops when the backend fails."""
from django.core.cache.backends.locmem import LocMemCache

from apps.catalog.cache import ALL_PRODUCTS_CACHE_KEY, CacheFacade, product_key


def _backend(name):
    return LocMemCache(name, {})


def test_set_get_remove():
    facade = CacheFacade(backend=_backend("t-basic"), default_timeout=60)
    facade.set("product:1", {"id": 1})
    assert facade.get("product:1") == {"id": 1}
    facade.remove("product:1")
    assert facade.get("product:1") is None


def test_remove_by_pattern_only_touches_matches():
    facade = CacheFacade(backend=_backend("t-pattern"))
    facade.set(product_key(1), {"id": 1})
    facade.set(product_key(2), {"id": 2})
    facade.set(ALL_PRODUCTS_CACHE_KEY, [])
    facade.set("orders:recent", [])

    facade.remove_by_pattern("product:*")

    assert facade.get(product_key(1)) is None
    assert facade.get(product_key(2)) is None
    assert facade.get(ALL_PRODUCTS_CACHE_KEY) == []
    assert facade.get("orders:recent") == []


def test_remove_by_pattern_uses_backend_support():
    class PatternBackend:
        def __init__(self):
            self.patterns = []

        def delete_pattern(self, pattern):
            self.patterns.append(pattern)

    backend = PatternBackend()
    CacheFacade(backend=backend).remove_by_pattern("product:*")
    assert backend.patterns == ["product:*"]


def test_invalidate_product_drops_entry_and_list():
    facade = CacheFacade(backend=_backend("t-invalidate"))
    facade.set(product_key(7), {"id": 7})
    facade.set(product_key(8), {"id": 8})
    facade.set(ALL_PRODUCTS_CACHE_KEY, [{"id": 7}])
    facade.invalidate_product(7)
    assert facade.get(product_key(7)) is None
    assert facade.get(ALL_PRODUCTS_CACHE_KEY) is None
    assert facade.get(product_key(8)) == {"id": 8}


def test_backend_errors_are_logged_not_raised(caplog):
    class Broken:
        def get(self, *a, **k):
            raise ConnectionError("down")

        set = delete = delete_many = get

    facade = CacheFacade(backend=Broken())
    assert facade.get("product:1") is None
    facade.set("product:1", {"id": 1})
    facade.remove("product:1")
    facade.remove_by_pattern("product:*")
    assert "cache get failed" in caplog.text
    assert "cache set failed" in caplog.text


def test_entries_expire_after_configured_ttl(settings):
    settings.PRODUCT_CACHE_TTL = 120
    assert CacheFacade(backend=_backend("t-ttl")).default_timeout == 120
    assert CacheFacade(backend=_backend("t-ttl"), default_timeout=5).default_timeout == 5
