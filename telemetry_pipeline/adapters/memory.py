"""In-memory queue and archive, for local development and tests."""
from collections import deque
from typing import Dict, List, Sequence
from time import monotonic
import uuid
import structlog
from .base import ArchiveStore, QueueAdapter, QUEUE_BATCH_LIMIT
from ..event_models import QueueEntry, QueueRecord, SendBatchResult

log = structlog.get_logger()

# SQS FIFO deduplication interval
DEDUP_WINDOW_SECONDS = 300


class InMemoryQueue(QueueAdapter):
    """In-memory queue with receive/acknowledge semantics."""

    def __init__(self, fifo: bool = False):
        self._fifo = fifo
        self._ready: deque[QueueRecord] = deque()
        self._in_flight: Dict[str, QueueRecord] = {}
        # deduplication id -> monotonic time first seen
        self._dedup_ids: Dict[str, float] = {}
        self.sent: List[QueueEntry] = []

    @property
    def is_fifo(self) -> bool:
        return self._fifo

    async def send_batch(self, entries: Sequence[QueueEntry]) -> SendBatchResult:
        result = SendBatchResult()
        now = monotonic()
        self._expire_dedup_ids(now)
        for entry in entries:
            self.sent.append(entry)
            if self._fifo and entry.deduplication_id in self._dedup_ids:
                # Duplicate sends are reported successful but not enqueued twice
                result.successful.append(entry.id)
                continue
            if self._fifo and entry.deduplication_id:
                self._dedup_ids[entry.deduplication_id] = now
            self._ready.append(QueueRecord(message_id=str(uuid.uuid4()), body=entry.body))
            result.successful.append(entry.id)
        log.debug("queue.batch_sent", count=len(entries), adapter="memory")
        return result

    def _expire_dedup_ids(self, now: float) -> None:
        cutoff = now - DEDUP_WINDOW_SECONDS
        expired = [d for d, seen in self._dedup_ids.items() if seen <= cutoff]
        for dedup_id in expired:
            del self._dedup_ids[dedup_id]

    async def receive(self, max_messages: int = QUEUE_BATCH_LIMIT) -> List[QueueRecord]:
        records = []
        while self._ready and len(records) < max_messages:
            record = self._ready.popleft()
            record.receipt = record.message_id
            self._in_flight[record.message_id] = record
            records.append(record)
        return records

    async def acknowledge(self, records: Sequence[QueueRecord]) -> None:
        for record in records:
            self._in_flight.pop(record.message_id, None)

    def release_unacknowledged(self) -> int:
        """Return in-flight records to the queue, as a visibility timeout would."""
        count = len(self._in_flight)
        self._ready.extend(self._in_flight.values())
        self._in_flight.clear()
        return count

    def __len__(self) -> int:
        return len(self._ready)

    async def health_check(self) -> bool:
        """In-memory queue is always healthy."""
        return True


class InMemoryArchive(ArchiveStore):
    """Keeps written objects in a dict keyed by object key."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    async def put_object(self, key: str, body: bytes, content_type: str, content_encoding: str) -> None:
        self.objects[key] = body
        log.debug("archive.object_written", key=key, size=len(body), adapter="memory")

    async def health_check(self) -> bool:
        return True
