from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework.exceptions import APIException
from rest_framework.views import APIView

from .errors import StockWiseError
from .responses import error_response, unexpected_error_response


class EngineAPIView(APIView):
    """APIView whose uncaught errors become typed JSON responses.

    DRF's own exceptions (throttling, parse errors, 404) keep their default
    handling; engine errors map to their code and status; anything else is
    logged and answered with 503 ``UPSTREAM_UNAVAILABLE``.
    """

    def handle_exception(self, exc):
        if isinstance(exc, StockWiseError):
            return error_response(exc)
        if isinstance(exc, (APIException, Http404, PermissionDenied)):
            return super().handle_exception(exc)
        return unexpected_error_response()
