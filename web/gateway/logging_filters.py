"""Logging filters for enriching log records with request context.

The filter copies the request id set by ``RequestIdMiddleware`` onto each
record so the JSON formatter can always reference ``%(request_id)s``, both
inside a request and in background work such as the low-stock sweep (which
logs ``-``).
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to every log record."""

    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        return True
