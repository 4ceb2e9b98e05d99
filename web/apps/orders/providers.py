"""Factory that wires the inventory consistency engine.

``get_engine`` returns an engine with its own publisher and cache handles.
Callers own the result and close it when done (``with get_engine() as
engine: ...``), so no connection outlives the request or command that
opened it.

When ``settings.USE_HTTP_ADAPTERS`` is truthy the engine publishes to the
HTTP event bus; otherwise events are only logged, which suits tests and
local development.
"""

from django.conf import settings

from apps.catalog.cache import CacheFacade
from apps.events.adapters import LoggingEventPublisher
from apps.events.domain import EventPublisherPort
from apps.events.http_adapters import HttpEventPublisher

from .engine import InventoryConsistencyEngine


def get_publisher() -> EventPublisherPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return HttpEventPublisher()
    return LoggingEventPublisher()


def get_engine() -> InventoryConsistencyEngine:
    """Return a configured engine; the caller must close it."""
    return InventoryConsistencyEngine(publisher=get_publisher(), cache=CacheFacade())
