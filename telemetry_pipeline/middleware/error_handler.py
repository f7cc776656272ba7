"""Structured error response middleware."""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from .correlation import get_correlation_id
from ..errors import TelemetryError

log = structlog.get_logger()


def error_response(status_code: int, error: str, message: str, request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "status_code": status_code,
            "correlation_id": get_correlation_id(),
            "path": str(request.url.path),
        },
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Provides structured error responses for all exceptions."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException as exc:
            log.warning("http.exception", status_code=exc.status_code, detail=exc.detail)
            return error_response(exc.status_code, exc.__class__.__name__, str(exc.detail), request)
        except TelemetryError as exc:
            log.error("pipeline.error", error=str(exc), error_type=exc.__class__.__name__)
            return error_response(503, exc.__class__.__name__, "Telemetry backend unavailable", request)
        except Exception as exc:
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
            return error_response(500, "InternalServerError", "An unexpected error occurred", request)
