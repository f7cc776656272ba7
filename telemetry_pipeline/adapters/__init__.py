"""Queue transports and archive stores, selected from configuration."""
import structlog
from .base import ArchiveStore, QueueAdapter, QUEUE_BATCH_LIMIT
from .memory import InMemoryArchive, InMemoryQueue
from ..config import Settings

log = structlog.get_logger()

__all__ = [
    "ArchiveStore",
    "QueueAdapter",
    "QUEUE_BATCH_LIMIT",
    "InMemoryArchive",
    "InMemoryQueue",
    "create_queue_adapter",
    "create_archive_store",
]


def create_queue_adapter(settings: Settings) -> QueueAdapter | None:
    """
    Create the queue adapter for the QUEUE_ADAPTER setting.

    Returns:
        The adapter, or None when the queue is disabled or has no endpoint
    """
    if not settings.queue_enabled:
        log.info("queue.disabled", adapter=settings.QUEUE_ADAPTER)
        return None

    if settings.QUEUE_ADAPTER == "sqs":
        from .sqs import SqsQueue, is_fifo_queue_url

        log.info("queue.selected", type="sqs", fifo=is_fifo_queue_url(settings.ANALYTICS_QUEUE_URL))
        return SqsQueue(
            settings.ANALYTICS_QUEUE_URL,
            region=settings.AWS_REGION,
            wait_seconds=settings.WORKER_POLL_WAIT_SECONDS,
        )

    if settings.QUEUE_ADAPTER == "redis":
        from .redis_stream import RedisStreamQueue

        log.info("queue.selected", type="redis", stream=settings.REDIS_STREAM_KEY)
        return RedisStreamQueue(
            redis_url=str(settings.REDIS_URL),
            stream_key=settings.REDIS_STREAM_KEY,
            group=settings.REDIS_CONSUMER_GROUP,
            block_ms=settings.WORKER_POLL_WAIT_SECONDS * 1000,
        )

    log.info("queue.selected", type="memory")
    return InMemoryQueue()


def create_archive_store(settings: Settings) -> ArchiveStore | None:
    """
    Create the archive store for the ARCHIVE_ADAPTER setting.

    Returns:
        The store, or None when S3 is selected without a bucket
    """
    if settings.ARCHIVE_ADAPTER == "s3":
        if not settings.ANALYTICS_S3_BUCKET:
            log.warning("archive.not_configured", reason="ANALYTICS_S3_BUCKET not configured")
            return None
        from .s3 import S3Archive

        log.info("archive.selected", type="s3", bucket=settings.ANALYTICS_S3_BUCKET)
        return S3Archive(settings.ANALYTICS_S3_BUCKET, region=settings.s3_region)

    log.info("archive.selected", type="memory")
    return InMemoryArchive()
