"""Correlation ids shared by the HTTP app and the archive worker."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
import uuid
from contextvars import ContextVar

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def bind_correlation_id(correlation_id: str | None = None, **context) -> str:
    """
    Start a fresh logging context for one unit of work.

    An ingest request and a consumed queue batch are each one unit; every log
    line emitted while handling it carries the same correlation_id.

    Returns:
        The bound id (generated when none was supplied)
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id, **context)
    return correlation_id


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Reuses the caller's X-Correlation-ID or mints one, and echoes it back."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = bind_correlation_id(
            request.headers.get(CORRELATION_HEADER),
            http_method=request.method,
            http_path=request.url.path,
        )
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def get_correlation_id() -> str:
    return correlation_id_var.get()
