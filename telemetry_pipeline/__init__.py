"""Client event telemetry pipeline: ingestion, durable queueing and partitioned archival."""

__version__ = "0.1.0"
