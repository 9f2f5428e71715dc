"""
Global Error Handler Middleware.

Unhandled exceptions become structured JSON with an error_id; the traceback
only goes to the server log. Known infrastructure failures get a specific
status so clients can tell "try again later" from a bug:

- WeatherProviderError → 502
- StorageError         → 503
- anything else        → 500
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from weatherbuddy.config import settings
from weatherbuddy.services.storage import StorageError
from weatherbuddy.services.weather_client import WeatherProviderError

logger = structlog.get_logger(__name__)

_KNOWN_ERRORS: tuple[tuple[type[Exception], int, str], ...] = (
    (WeatherProviderError, 502, "Weather provider unavailable. Please try again later."),
    (StorageError, 503, "Alert storage unavailable. Please try again later."),
)


def _classify(exc: Exception) -> tuple[int, str]:
    for exc_type, status_code, message in _KNOWN_ERRORS:
        if isinstance(exc, exc_type):
            return status_code, message
    return 500, "An internal error occurred. Please try again later."


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catches everything raised below it.

    Response body:
    {
      "error": "human-readable message",
      "error_id": "uuid for log correlation",
      "status": 500
    }
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())
            status_code, message = _classify(exc)

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                status=status_code,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {"error": message, "error_id": error_id, "status": status_code}
            if settings.debug:
                body["debug_hint"] = type(exc).__name__
            return JSONResponse(status_code=status_code, content=body)
