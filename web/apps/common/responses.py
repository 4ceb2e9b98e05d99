"""Translate engine errors into DRF responses."""

import logging

from pydantic import ValidationError
from rest_framework.response import Response

from .errors import StockWiseError, ValidationFailed

logger = logging.getLogger(__name__)


def error_response(exc: StockWiseError) -> Response:
    if exc.http_status >= 500:
        logger.error("request failed", extra={"code": exc.code, "error": exc.message})
    return Response(exc.to_dict(), status=exc.http_status)


def validation_error_response(exc: ValidationError) -> Response:
    """400 with the pydantic error list (without echoing inputs)."""
    err = ValidationFailed("Request payload is invalid")
    body = err.to_dict()
    body["errors"] = exc.errors(include_url=False, include_context=False, include_input=False)
    return Response(body, status=err.http_status)


def unexpected_error_response() -> Response:
    logger.exception("unexpected error while handling request")
    return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=503)
