"""
Error types raised by the marketplace services and their JSON rendering.

Handlers raise these; the exception handlers registered in main.py turn them
into `{"message": ..., "error": ...}` responses with the matching status.
"""
import logging
import traceback
from typing import Any, Dict

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def error(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "error": self.error}


class ValidationError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthenticated(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Please authenticate"


class InvalidCredentials(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Conflict"


class SelfDealing(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "You cannot trade with yourself"


class DatabaseUnavailable(MarketplaceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Database not available"


class InvalidToken(Exception):
    """Raised by the token service; never reaches a client as-is."""


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        where = ".".join(loc)
        parts.append(f"{where}: {err.get('msg')}" if where else err.get("msg", ""))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app, show_stack: bool) -> None:
    """Attach the JSON error handlers to a FastAPI app."""

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        err = ValidationError(_format_validation_errors(exc))
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = {"message": "Internal server error", "error": str(exc)}
        if show_stack:
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
