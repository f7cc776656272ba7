"""
Prometheus metrics for the telemetry pipeline.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the ingestion app and the archive worker.
    """

    def __init__(self, service_name: str = "telemetry-pipeline", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Ingestion
        self.events_received_total = Counter(
            "telemetry_events_received_total",
            "Client events received, by outcome (accepted, rejected, dropped)",
            ["outcome"],
            registry=self.registry,
        )

        self.ingest_batch_size = Histogram(
            "telemetry_ingest_batch_size",
            "Raw events per ingest request",
            buckets=(1, 2, 5, 10, 25, 50, 100),
            registry=self.registry,
        )

        # Queue publishing
        self.events_queued_total = Counter(
            "telemetry_events_queued_total",
            "Events accepted by the work queue",
            registry=self.registry,
        )

        self.queue_publish_failures_total = Counter(
            "telemetry_queue_publish_failures_total",
            "Events the work queue did not accept",
            registry=self.registry,
        )

        # Archival
        self.archive_objects_written_total = Counter(
            "telemetry_archive_objects_written_total",
            "Archive objects written",
            registry=self.registry,
        )

        self.archive_events_written_total = Counter(
            "telemetry_archive_events_written_total",
            "Events written to the archive",
            registry=self.registry,
        )

        self.archive_write_failures_total = Counter(
            "telemetry_archive_write_failures_total",
            "Archive object writes that failed",
            registry=self.registry,
        )

        self.batch_item_failures_total = Counter(
            "telemetry_batch_item_failures_total",
            "Queue messages reported back for redelivery, by reason",
            ["reason"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
            self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)
            try:
                self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
            except AttributeError:
                # num_fds() not available on all platforms
                pass
        except psutil.Error:
            pass

    def record_ingest(self, received: int, accepted: int, rejected: int, dropped: int):
        self.ingest_batch_size.observe(received)
        if accepted:
            self.events_received_total.labels(outcome="accepted").inc(accepted)
        if rejected:
            self.events_received_total.labels(outcome="rejected").inc(rejected)
        if dropped:
            self.events_received_total.labels(outcome="dropped").inc(dropped)

    def record_publish(self, queued: int, failed: int):
        self.events_queued_total.inc(queued)
        self.queue_publish_failures_total.inc(failed)

    def record_batch_item_failures(self, reason: str, count: int = 1):
        self.batch_item_failures_total.labels(reason=reason).inc(count)
