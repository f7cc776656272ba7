"""Queue publisher: hands normalized events to the work queue in bounded batches."""
from typing import Sequence
import hashlib
import structlog
from ..adapters.base import QueueAdapter, QUEUE_BATCH_LIMIT
from ..errors import QueueTransportError
from ..event_models import NormalizedEvent, PublishResult, QueueDisabled, QueueEntry, QueueMessage
from ..metrics import Metrics, get_metrics

log = structlog.get_logger()

GROUP_ID_MAX_LEN = 128


def message_group_id(event: NormalizedEvent) -> str:
    """FIFO group per source so unrelated sources are ordered independently."""
    return f"analytics-{event.source or 'site'}"[:GROUP_ID_MAX_LEN]


def deduplication_id(event: NormalizedEvent, index: int) -> str:
    """
    FIFO deduplication id.

    The position of the event within the ingest call is part of the hash, so
    two identical events sent in the same call are both kept.
    """
    material = f"{event.event_type}:{event.event_time}:{event.session_id}:{event.visitor_id}:{index}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class QueuePublisher:
    """
    Publishes NormalizedEvents to a queue adapter.

    A publisher without an adapter is disabled and reports QueueDisabled
    instead of raising, so ingestion can continue without archival.
    """

    def __init__(self, adapter: QueueAdapter | None, metrics: Metrics | None = None):
        self._adapter = adapter
        self._metrics = metrics or get_metrics()

    @property
    def adapter(self) -> QueueAdapter | None:
        return self._adapter

    @property
    def enabled(self) -> bool:
        return self._adapter is not None

    def build_entries(self, events: Sequence[NormalizedEvent], offset: int = 0) -> list[QueueEntry]:
        fifo = self._adapter is not None and self._adapter.is_fifo
        entries = []
        for idx, event in enumerate(events):
            absolute_index = offset + idx
            entry = QueueEntry(id=f"evt-{absolute_index}", body=QueueMessage.wrap(event).to_body())
            if fifo:
                entry.group_id = message_group_id(event)
                entry.deduplication_id = deduplication_id(event, absolute_index)
            entries.append(entry)
        return entries

    async def publish(self, events: Sequence[NormalizedEvent]) -> PublishResult | QueueDisabled:
        if self._adapter is None:
            return QueueDisabled()

        result = PublishResult()
        for offset in range(0, len(events), QUEUE_BATCH_LIMIT):
            entries = self.build_entries(events[offset:offset + QUEUE_BATCH_LIMIT], offset)
            try:
                sent = await self._adapter.send_batch(entries)
            except QueueTransportError as e:
                log.error("queue.batch_failed", error=str(e), offset=offset, count=len(entries))
                result.failed += len(entries)
                result.failed_ids.extend(entry.id for entry in entries)
                continue

            result.queued += len(sent.successful)
            result.failed += len(sent.failed)
            result.failed_ids.extend(item.id for item in sent.failed)
            for item in sent.failed:
                log.warning("queue.entry_failed", entry_id=item.id, code=item.code, message=item.message)

        self._metrics.record_publish(result.queued, result.failed)
        log.info("queue.published", queued=result.queued, failed=result.failed)
        return result
