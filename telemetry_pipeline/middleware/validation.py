"""Validation middleware for request payload size and JSON structure."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import structlog
import orjson
from ..config import get_settings

log = structlog.get_logger()
settings = get_settings()


def _too_large(size: int) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "error": "PayloadTooLarge",
            "message": f"Request payload exceeds maximum size of {settings.MAX_REQUEST_SIZE} bytes",
            "max_size": settings.MAX_REQUEST_SIZE,
            "received_size": size,
        },
    )


class ValidationMiddleware(BaseHTTPMiddleware):
    """
    Bounds request bodies before they reach the ingestion route.

    Oversized bodies get 413 and malformed JSON gets 400; individual events
    inside a well-formed body are never rejected here.
    """

    async def dispatch(self, request: Request, call_next):
        if request.method in ["POST", "PUT", "PATCH"]:
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > settings.MAX_REQUEST_SIZE:
                log.warning("payload.too_large", size=int(content_length), max_size=settings.MAX_REQUEST_SIZE)
                return _too_large(int(content_length))

            if request.headers.get("content-type", "").startswith("application/json"):
                body = await request.body()
                if len(body) > settings.MAX_REQUEST_SIZE:
                    log.warning("payload.too_large", size=len(body), max_size=settings.MAX_REQUEST_SIZE)
                    return _too_large(len(body))

                if body:
                    try:
                        orjson.loads(body)
                    except orjson.JSONDecodeError as e:
                        log.warning("invalid.json", error=str(e))
                        return JSONResponse(
                            status_code=400,
                            content={
                                "error": "InvalidJSON",
                                "message": "Request body is not valid JSON",
                                "detail": str(e),
                            },
                        )

                # Re-create request with consumed body
                async def receive():
                    return {"type": "http.request", "body": body}

                request._receive = receive

        return await call_next(request)
