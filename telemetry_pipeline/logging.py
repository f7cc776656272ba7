"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2025-11-18T04:30:00.123456Z",
    "level": "info",
    "service": "telemetry-pipeline",
    "correlation_id": "uuid-v4",
    "event": "ingest.completed",
    "module": "telemetry_pipeline.services.gateway",
    "function": "ingest",
    "line": 42,
    ...additional context...
}

Caller IP addresses are never passed to the logger; only their salted hash
ends up in archived records.
"""
import structlog
import logging
from typing import Any

SERVICE_NAME = "telemetry-pipeline"


def add_module_info(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add the calling module, function, and line number to log entries."""
    # structlog frames are skipped by default; this module's own are not
    frame = structlog._frames._find_first_app_frame_and_name(additional_ignores=[__name__])[0]
    if frame:
        event_dict["module"] = frame.f_globals.get("__name__", "unknown")
        event_dict["function"] = frame.f_code.co_name
        event_dict["line"] = frame.f_lineno
    return event_dict


def setup_logging(json_output: bool = True, service_name: str = SERVICE_NAME, level: int = logging.INFO):
    """
    Configure structured logging with standardized fields.

    Used by both the HTTP ingestion app and the queue worker, so the two
    processes emit identical log shapes.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        service_name: Name of the component emitting logs.
        level: Minimum log level.
    """
    def _service(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", service_name)
        return event_dict

    shared_processors = [
        # correlation_id is bound by the middleware / worker per batch
        structlog.contextvars.merge_contextvars,
        _service,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        add_module_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level)

    # Silence uvicorn's default logging to avoid duplicate logs
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("uvicorn.access").handlers = []
    # botocore is chatty at INFO when credentials are resolved
    logging.getLogger("botocore").setLevel(logging.WARNING)


def get_logger():
    """Get a configured structlog logger."""
    return structlog.get_logger()
