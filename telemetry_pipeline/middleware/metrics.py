"""HTTP request metrics."""
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog
from ..metrics import Metrics

log = structlog.get_logger()


def route_label(request: Request) -> str:
    """Matched route template, so arbitrary client paths do not become label values."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts and times every request except scrapes of /metrics itself."""

    def __init__(self, app, metrics: Metrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        service = self.metrics.service_name
        active = self.metrics.http_requests_active.labels(service=service)
        active.inc()
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            elapsed = time.perf_counter() - started
            path = route_label(request)
            self.metrics.http_requests_total.labels(
                service=service, method=request.method, path=path, status=status
            ).inc()
            self.metrics.http_request_duration.labels(
                service=service, method=request.method, path=path
            ).observe(elapsed)
            log.info("http_request", http_status=status, route=path, duration_ms=round(elapsed * 1000, 2))
            active.dec()
