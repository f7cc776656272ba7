from functools import lru_cache
from .prometheus import Metrics

__all__ = ["Metrics", "get_metrics"]


@lru_cache(maxsize=1)
def get_metrics() -> Metrics:
    """Process-wide metrics shared by the app, services and worker."""
    return Metrics(service_name="telemetry-pipeline", version="0.1.0")
