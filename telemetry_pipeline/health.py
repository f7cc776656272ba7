"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import time
import psutil
from .adapters.base import ArchiveStore, QueueAdapter
from .logging import get_logger

logger = get_logger()


class HealthChecker:
    """
    Health checker for the ingestion service.

    A disabled queue or an unconfigured archive is reported as "skipped",
    not as an error: ingestion keeps accepting events without either.
    """

    def __init__(
        self,
        queue: QueueAdapter | None,
        archive: ArchiveStore | None = None,
        service_name: str = "telemetry-pipeline",
        version: str = "0.1.0",
    ):
        self.queue = queue
        self.archive = archive
        self.service_name = service_name
        self.version = version

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Queue transport reachability (if enabled)
        - Archive store reachability (if configured)
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "queue": await self._check_queue(),
            "archive": await self._check_archive(),
            "memory": self._check_memory(),
        }
        overall_status = "not_ready" if any(c["status"] == "error" for c in checks.values()) else "ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
            "checks": checks,
        }

    async def _check_queue(self) -> Dict[str, Any]:
        if self.queue is None:
            return {"status": "skipped", "message": "Analytics queue disabled"}

        start = time.time()
        healthy = await self.queue.health_check()
        latency_ms = round((time.time() - start) * 1000, 2)
        if not healthy:
            logger.warning("queue_health_check_failed", adapter=type(self.queue).__name__)
            return {"status": "error", "adapter": type(self.queue).__name__}
        return {"status": "ok", "adapter": type(self.queue).__name__, "latency_ms": latency_ms}

    async def _check_archive(self) -> Dict[str, Any]:
        if self.archive is None:
            return {"status": "skipped", "message": "Archive store not configured"}

        start = time.time()
        healthy = await self.archive.health_check()
        latency_ms = round((time.time() - start) * 1000, 2)
        if not healthy:
            logger.warning("archive_health_check_failed", store=type(self.archive).__name__)
            return {"status": "error", "store": type(self.archive).__name__}
        return {"status": "ok", "store": type(self.archive).__name__, "latency_ms": latency_ms}

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
        except psutil.Error as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

        available_mb = memory.available / (1024**2)
        if available_mb < threshold_mb:
            status = "error"
        elif available_mb < threshold_mb * 2:
            status = "warning"
        else:
            status = "ok"

        return {
            "status": status,
            "available_mb": round(available_mb, 2),
            "total_mb": round(memory.total / (1024**2), 2),
            "used_percent": memory.percent,
        }
