"""
Domain exceptions raised by the service layer.

Services signal business-rule failures by raising ``ValueError``.  The
subclasses below carry the HTTP status the API should answer with; a
plain ``ValueError`` is reported as ``400 Bad Request``.  The mapping
to responses lives in ``register_error_handlers`` so endpoints can call
services without wrapping every call in ``try``/``except``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    """The requested record does not exist (404)."""

    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(ValueError):
    """The caller may not act on the record (403)."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(ValueError):
    """The record already exists (409)."""

    status_code = status.HTTP_409_CONFLICT


class AuthenticationError(ValueError):
    """Credentials or tokens were rejected (401)."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ServiceUnavailableError(ValueError):
    """A required integration is missing or failing, or the platform is in maintenance (503)."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PaymentGatewayError(ServiceUnavailableError):
    """The payment gateway rejected or failed a request."""

    status_code = status.HTTP_502_BAD_GATEWAY


class SMSDeliveryError(ServiceUnavailableError):
    """A text message could not be handed to the SMS provider."""


def register_error_handlers(app: FastAPI) -> None:
    """Register the domain and catch-all exception handlers on ``app``."""

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        status_code = getattr(exc, "status_code", status.HTTP_400_BAD_REQUEST)
        if status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        else:
            logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
