"""Pipeline services wired from configuration."""
from functools import lru_cache
from ..adapters import create_archive_store, create_queue_adapter
from ..config import get_settings
from .consumer import QueueConsumer
from .gateway import IngestionGateway
from .publisher import QueuePublisher

__all__ = ["IngestionGateway", "QueueConsumer", "QueuePublisher", "get_gateway", "get_consumer"]


@lru_cache(maxsize=1)
def get_gateway() -> IngestionGateway:
    settings = get_settings()
    return IngestionGateway(settings, QueuePublisher(create_queue_adapter(settings)))


@lru_cache(maxsize=1)
def get_consumer() -> QueueConsumer:
    settings = get_settings()
    return QueueConsumer(
        create_archive_store(settings),
        prefix=settings.ANALYTICS_S3_PREFIX,
        unknown_message_policy=settings.ANALYTICS_UNKNOWN_MESSAGE_POLICY,
    )
