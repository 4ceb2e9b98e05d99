"""Gateway middleware: request correlation and API payload limits.

Every request gets an identifier, read from the incoming ``X-Request-Id``
header or generated as a UUIDv4. The id is stored on the request and in a
ContextVar so log records and outbound event publishes can carry it without
threading it through the engine. Responses echo it in ``X-Request-ID``.
"""

import contextvars
import logging
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

logger = logging.getLogger(__name__)


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier.

    Attributes:
        HEADER (str): Incoming header as found in ``request.META``.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Attach the request id to ``request`` and to ``REQUEST_ID_CTX``."""
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Echo the request id and log the handled request.

        Falls back to the ContextVar value when the request object has no id
        (for example when an earlier middleware short-circuited).
        """
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        logger.info(
            "request handled",
            extra={"path": request.path, "method": request.method, "status": response.status_code},
        )
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject ``/api/`` requests whose declared body exceeds ``API_MAX_BYTES``."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            limit = getattr(settings, "API_MAX_BYTES", 1024 * 1024)
            if clen and clen.isdigit() and int(clen) > limit:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
