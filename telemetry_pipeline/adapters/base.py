"""Base interfaces for queue transports and archive stores."""
from abc import ABC, abstractmethod
from typing import List, Sequence
from ..event_models import QueueEntry, QueueRecord, SendBatchResult

# SendMessageBatch accepts at most ten entries
QUEUE_BATCH_LIMIT = 10


class QueueAdapter(ABC):
    """Abstract interface for durable work queue backends."""

    @property
    def is_fifo(self) -> bool:
        """Whether the queue honours group and deduplication ids."""
        return False

    @abstractmethod
    async def send_batch(self, entries: Sequence[QueueEntry]) -> SendBatchResult:
        """
        Send up to QUEUE_BATCH_LIMIT entries.

        Args:
            entries: Entries to enqueue

        Returns:
            Per-entry outcome keyed by entry id

        Raises:
            QueueTransportError: If the queue could not be reached at all
        """
        pass

    @abstractmethod
    async def receive(self, max_messages: int = QUEUE_BATCH_LIMIT) -> List[QueueRecord]:
        """
        Pull the next batch of messages for a polling worker.

        Returned records stay invisible/pending until acknowledged or
        until the backend's redelivery timeout expires.
        """
        pass

    @abstractmethod
    async def acknowledge(self, records: Sequence[QueueRecord]) -> None:
        """Remove successfully processed records from the queue."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the queue is reachable.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass


class ArchiveStore(ABC):
    """Abstract interface for the partitioned object store."""

    @abstractmethod
    async def put_object(self, key: str, body: bytes, content_type: str, content_encoding: str) -> None:
        """
        Write one immutable object.

        Raises:
            ArchiveWriteError: If the object could not be written
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
