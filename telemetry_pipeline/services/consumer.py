"""
Queue consumer: archives a batch of queue records.

Per batch: records are parsed, valid events are grouped by (event_date,
event_hour), and each group is written as one gzip NDJSON object. Only the
messages that could not be parsed, or whose group failed to write, are
reported back in batch_item_failures; everything else is acknowledged.

Delivery is at-least-once. A redelivered message is written again under a
new unique key, so a retry after a partial failure can produce a duplicate
object but never overwrites one.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Sequence, Tuple
import asyncio
import re
import orjson
import structlog
from ..adapters.base import ArchiveStore
from ..errors import ArchiveNotConfiguredError
from ..event_models import ANALYTICS_EVENT_TYPE, ConsumeResult, QueueRecord, utc_now
from ..metrics import Metrics, get_metrics
from ..normalizer import safe_string
from .archive import CONTENT_ENCODING, CONTENT_TYPE, encode_batch, normalize_prefix, partition_key

log = structlog.get_logger()

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HOUR_RE = re.compile(r"^\d{2}$")


class InvalidMessage(ValueError):
    pass


class UnrecognizedMessage(InvalidMessage):
    pass


@dataclass
class PartitionGroup:
    event_date: str
    event_hour: str
    events: List[Dict[str, Any]] = field(default_factory=list)
    message_ids: List[str] = field(default_factory=list)


def decode_message(record: QueueRecord) -> Dict[str, Any]:
    """
    Extract the event payload from a queue record.

    Raises:
        UnrecognizedMessage: Well-formed message of a type this consumer doesn't handle
        InvalidMessage: Body is not JSON, not an object, or has no payload
    """
    body = record.body
    if isinstance(body, (str, bytes)):
        try:
            body = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise InvalidMessage(f"body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise InvalidMessage("body is not a JSON object")

    message_type = safe_string(body.get("type"), 64)
    if message_type != ANALYTICS_EVENT_TYPE:
        raise UnrecognizedMessage(f"unrecognized message type {message_type!r}")

    payload = body.get("payload")
    if not isinstance(payload, dict):
        raise InvalidMessage("missing analytics payload")
    return payload


def partition_of(payload: Dict[str, Any]) -> Tuple[str, str]:
    """Partition key for an event; malformed values fall back to the current UTC hour."""
    event_date = safe_string(payload.get("event_date"), 10)
    event_hour = safe_string(payload.get("event_hour"), 2)
    if not _DATE_RE.match(event_date) or not _HOUR_RE.match(event_hour):
        now = utc_now()
        return now.strftime("%Y-%m-%d"), now.strftime("%H")
    return event_date, event_hour


class QueueConsumer:
    """Archives queue batches into a partitioned object store."""

    def __init__(
        self,
        archive: ArchiveStore | None,
        prefix: str = "events/",
        unknown_message_policy: Literal["fail", "ignore"] = "fail",
        metrics: Metrics | None = None,
    ):
        """
        Args:
            archive: Object store to write to; None means archival is not configured
            prefix: Key prefix for all archive objects
            unknown_message_policy: "fail" reports unrecognized message types for
                redelivery, "ignore" acknowledges them without archiving
            metrics: Metrics sink (defaults to the process-wide instance)
        """
        self._archive = archive
        self._prefix = normalize_prefix(prefix)
        self._unknown_message_policy = unknown_message_policy
        self._metrics = metrics or get_metrics()

    @property
    def archive(self) -> ArchiveStore | None:
        return self._archive

    async def process(self, records: Sequence[QueueRecord]) -> ConsumeResult:
        """
        Archive one batch of queue records.

        Raises:
            ArchiveNotConfiguredError: If no archive store is configured
        """
        if self._archive is None:
            raise ArchiveNotConfiguredError("ANALYTICS_S3_BUCKET is not configured")

        failures: Dict[str, None] = {}
        groups: Dict[Tuple[str, str], PartitionGroup] = {}
        processed = 0
        ignored = 0

        for record in records or []:
            message_id = record.message_id.strip()
            try:
                payload = decode_message(record)
            except UnrecognizedMessage as e:
                if self._unknown_message_policy == "ignore":
                    log.info("consumer.message_ignored", message_id=message_id, reason=str(e))
                    ignored += 1
                    continue
                self._mark_failed(failures, message_id, "unknown_type", str(e))
                continue
            except InvalidMessage as e:
                self._mark_failed(failures, message_id, "invalid_message", str(e))
                continue

            event_date, event_hour = partition_of(payload)
            group = groups.get((event_date, event_hour))
            if group is None:
                group = groups[(event_date, event_hour)] = PartitionGroup(event_date, event_hour)
            group.events.append(payload)
            if message_id:
                group.message_ids.append(message_id)
            processed += 1

        files = 0
        if groups:
            files = await self._write_groups(list(groups.values()), failures)

        result = ConsumeResult(
            ok=not failures,
            processed=processed,
            failed=len(failures),
            ignored=ignored,
            files=files,
            batch_item_failures=list(failures),
        )
        log.info(
            "consumer.batch_processed",
            records=len(records or []),
            processed=processed,
            failed=result.failed,
            ignored=ignored,
            files=files,
        )
        return result

    async def _write_groups(self, groups: List[PartitionGroup], failures: Dict[str, None]) -> int:
        """Write every group concurrently; returns the number of objects written."""
        keys = [partition_key(self._prefix, g.event_date, g.event_hour) for g in groups]
        outcomes = await asyncio.gather(
            *(self._write(key, group) for key, group in zip(keys, groups)),
            return_exceptions=True,
        )

        written = 0
        for key, group, outcome in zip(keys, groups, outcomes):
            if outcome is None:
                written += 1
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            log.error(
                "archive.write_failed",
                key=key,
                events=len(group.events),
                error=str(outcome),
                error_type=type(outcome).__name__,
            )
            self._metrics.archive_write_failures_total.inc()
            for message_id in group.message_ids:
                self._mark_failed(failures, message_id, "write_failed")
        return written

    async def _write(self, key: str, group: PartitionGroup) -> None:
        body = encode_batch(group.events)
        await self._archive.put_object(key, body, CONTENT_TYPE, CONTENT_ENCODING)
        self._metrics.archive_objects_written_total.inc()
        self._metrics.archive_events_written_total.inc(len(group.events))
        log.info("archive.object_written", key=key, events=len(group.events), size=len(body))

    def _mark_failed(self, failures: Dict[str, None], message_id: str, reason: str, detail: str = "") -> None:
        if not message_id:
            # Unattributable; acknowledged along with the rest of the batch
            log.warning("consumer.failure_without_message_id", reason=reason, detail=detail)
            return
        if message_id not in failures:
            failures[message_id] = None
            self._metrics.record_batch_item_failures(reason)
        if detail:
            log.warning("consumer.message_failed", message_id=message_id, reason=reason, detail=detail)
