"""
Telemetry pipeline - client analytics ingestion service.

Features:
- Batched event ingestion with validation and IP redaction
- Queue publishing to SQS, Redis Streams or an in-memory queue
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)

The archive side runs separately, see telemetry_pipeline.worker.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .middleware import CorrelationMiddleware, ErrorHandlerMiddleware, MetricsMiddleware, ValidationMiddleware
from .metrics import get_metrics
from .health import HealthChecker
from .services import get_consumer, get_gateway

VERSION = "0.1.0"

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON, service_name="telemetry-pipeline")
logger = get_logger()

metrics = get_metrics()

gateway = get_gateway()
health_checker = HealthChecker(
    queue=gateway.publisher.adapter,
    archive=get_consumer().archive,
    service_name="telemetry-pipeline",
    version=VERSION,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        queue_adapter=settings.QUEUE_ADAPTER,
        queue_enabled=gateway.publisher.enabled,
        max_events_per_request=settings.ANALYTICS_MAX_EVENTS_PER_REQUEST,
        capture_user_agent=settings.ANALYTICS_CAPTURE_USER_AGENT,
    )
    yield
    logger.info("service_stopping")
    metrics.app_up.labels(service=metrics.service_name, version=VERSION).set(0)


app = FastAPI(
    title="Telemetry Pipeline",
    version=VERSION,
    description="Client analytics ingestion with durable queueing and partitioned archival",
    lifespan=lifespan,
)

# Last added runs first: correlation id, then metrics, errors, body validation
app.add_middleware(ValidationMiddleware)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationMiddleware)

app.include_router(router)

metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe.

    Returns:
        200: Service is ready to handle traffic
        503: Queue transport unreachable or memory exhausted
    """
    logger.debug("health_check_readiness")
    result = await health_checker.readiness()
    metrics.update_system_metrics()
    return JSONResponse(result, status_code=200 if result["status"] == "ready" else 503)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "telemetry_pipeline.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
    )
