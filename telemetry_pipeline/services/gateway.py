"""Ingestion gateway: validates a batch of client events and enqueues them."""
from typing import Any
import structlog
from ..config import Settings
from ..event_models import IngestResult, QueueDisabled, RequestContext
from ..metrics import Metrics, get_metrics
from ..normalizer import normalize_event
from .publisher import QueuePublisher

log = structlog.get_logger()


class IngestionGateway:
    """
    Request-scoped ingestion.

    Holds only read-only configuration and the publisher, so concurrent
    ingest() calls are independent. The response confirms enqueue, never
    archival.
    """

    def __init__(self, settings: Settings, publisher: QueuePublisher, metrics: Metrics | None = None):
        self._settings = settings
        self._publisher = publisher
        self._metrics = metrics or get_metrics()

    @property
    def publisher(self) -> QueuePublisher:
        return self._publisher

    async def ingest(self, raw_events: Any, request_context: RequestContext) -> IngestResult:
        events = raw_events if isinstance(raw_events, list) else [raw_events]
        limit = self._settings.ANALYTICS_MAX_EVENTS_PER_REQUEST
        considered = events[:limit]
        dropped = len(events) - len(considered)

        normalized = []
        rejected = 0
        for raw in considered:
            event = normalize_event(raw, request_context, self._settings)
            if event is None:
                rejected += 1
            else:
                normalized.append(event)

        self._metrics.record_ingest(len(events), len(normalized), rejected, dropped)

        if not normalized:
            log.info("ingest.nothing_to_queue", rejected=rejected, dropped=dropped)
            return IngestResult(accepted=0, queued=0, rejected=rejected, queue_enabled=self._publisher.enabled)

        outcome = await self._publisher.publish(normalized)
        if isinstance(outcome, QueueDisabled):
            log.info("ingest.queue_disabled", accepted=len(normalized), reason=outcome.reason)
            return IngestResult(
                accepted=len(normalized),
                queued=0,
                rejected=rejected,
                queue_enabled=False,
                reason=outcome.reason,
            )

        log.info(
            "ingest.completed",
            accepted=len(normalized),
            queued=outcome.queued,
            failed=outcome.failed,
            rejected=rejected,
            dropped=dropped,
        )
        return IngestResult(
            accepted=len(normalized),
            queued=outcome.queued,
            failed=outcome.failed,
            rejected=rejected,
            queue_enabled=True,
        )
