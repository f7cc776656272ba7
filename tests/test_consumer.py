"""Tests for the queue consumer."""
import asyncio
import re
import orjson
import pytest
from telemetry_pipeline.adapters.base import ArchiveStore
from telemetry_pipeline.adapters.memory import InMemoryArchive
from telemetry_pipeline.errors import ArchiveNotConfiguredError, ArchiveWriteError
from telemetry_pipeline.event_models import QueueRecord
from telemetry_pipeline.metrics import Metrics
from telemetry_pipeline.services.archive import decode_batch
from telemetry_pipeline.services.consumer import QueueConsumer, partition_of

KEY_RE = re.compile(
    r"^events/dt=(\d{4}-\d{2}-\d{2})/hr=(\d{2})/batch-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z-[0-9a-f-]{36}\.json\.gz$"
)


def payload(event_type="page_view", date="2025-01-01", hour="14", **extra):
    record = {
        "version": 1,
        "event_type": event_type,
        "event_time": f"{date}T{hour}:00:00.000Z",
        "event_date": date,
        "event_hour": hour,
        "route": "/blog",
        "metadata": {},
        "metadata_json": "{}",
    }
    record.update(extra)
    return record


def record(message_id, body):
    if isinstance(body, dict):
        body = orjson.dumps(body).decode()
    return QueueRecord(message_id=message_id, body=body)


def message(p, message_type="analytics_event"):
    return {"type": message_type, "createdAt": "2025-01-01T14:00:01.000Z", "payload": p}


class FailingArchive(ArchiveStore):
    """Fails writes whose key contains a marker."""

    def __init__(self, marker: str):
        self.marker = marker
        self.objects = {}

    async def put_object(self, key, body, content_type, content_encoding):
        if self.marker in key:
            raise ArchiveWriteError(key, "SlowDown")
        self.objects[key] = body

    async def health_check(self):
        return True


class ConcurrencyProbe(ArchiveStore):
    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    async def put_object(self, key, body, content_type, content_encoding):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1

    async def health_check(self):
        return True


@pytest.mark.asyncio
async def test_malformed_record_is_isolated():
    """3 records, one unparsable: processed 2, failed 1, only that id reported."""
    archive = InMemoryArchive()
    consumer = QueueConsumer(archive, metrics=Metrics())

    result = await consumer.process([
        record("m-1", message(payload())),
        record("m-2", "{not json"),
        record("m-3", message(payload(event_type="cta_clicked"))),
    ])

    assert result.processed == 2
    assert result.failed == 1
    assert result.batch_item_failures == ["m-2"]
    assert result.ok is False
    assert len(archive.objects) == 1


@pytest.mark.asyncio
async def test_events_grouped_by_partition():
    """One object per (date, hour), keyed with the partition layout."""
    archive = InMemoryArchive()
    consumer = QueueConsumer(archive, metrics=Metrics())

    result = await consumer.process([
        record("a", message(payload(hour="14"))),
        record("b", message(payload(hour="15"))),
        record("c", message(payload(hour="14", event_type="scroll"))),
        record("d", message(payload(date="2025-01-02", hour="00"))),
    ])

    assert result.ok is True
    assert result.files == 3
    partitions = sorted(KEY_RE.match(key).groups() for key in archive.objects)
    assert partitions == [("2025-01-01", "14"), ("2025-01-01", "15"), ("2025-01-02", "00")]


@pytest.mark.asyncio
async def test_archive_object_round_trip():
    """A written object decodes to exactly the grouped events, in order."""
    archive = InMemoryArchive()
    events = [payload(event_type=f"e{i}", session_id=f"s{i}") for i in range(5)]

    await QueueConsumer(archive, metrics=Metrics()).process(
        [record(f"m{i}", message(e)) for i, e in enumerate(events)]
    )

    (body,) = archive.objects.values()
    assert decode_batch(body) == events


@pytest.mark.asyncio
async def test_failed_group_write_reports_only_its_messages():
    """A failed 14:00 write reports the 14:00 messages; 15:00 is acknowledged."""
    archive = FailingArchive("/hr=14/")
    metrics = Metrics()
    consumer = QueueConsumer(archive, metrics=metrics)

    result = await consumer.process([
        record("m-14a", message(payload(hour="14"))),
        record("m-15", message(payload(hour="15"))),
        record("m-14b", message(payload(hour="14"))),
    ])

    assert result.processed == 3
    assert sorted(result.batch_item_failures) == ["m-14a", "m-14b"]
    assert result.failed == 2
    assert result.files == 1
    (key,) = archive.objects
    assert "/hr=15/" in key
    assert metrics.registry.get_sample_value("telemetry_archive_write_failures_total") == 1
    assert metrics.registry.get_sample_value(
        "telemetry_batch_item_failures_total", {"reason": "write_failed"}
    ) == 2


@pytest.mark.asyncio
async def test_unreachable_store_fails_every_contributing_message():
    archive = FailingArchive("events/")
    result = await QueueConsumer(archive, metrics=Metrics()).process([
        record("x", message(payload(hour="01"))),
        record("y", message(payload(hour="02"))),
        record("z", "[]"),
    ])
    assert result.batch_item_failures == ["z", "x", "y"]
    assert result.files == 0


@pytest.mark.asyncio
async def test_unknown_message_type_fails_by_default():
    consumer = QueueConsumer(InMemoryArchive(), metrics=Metrics())
    result = await consumer.process([
        record("ok", message(payload())),
        record("other", message(payload(), message_type="subscription_confirmed")),
    ])
    assert result.batch_item_failures == ["other"]
    assert result.processed == 1


@pytest.mark.asyncio
async def test_unknown_message_type_can_be_ignored():
    """With the ignore policy unknown messages are acknowledged without archiving."""
    archive = InMemoryArchive()
    consumer = QueueConsumer(archive, unknown_message_policy="ignore", metrics=Metrics())

    result = await consumer.process([record("other", message(payload(), message_type="v2_event"))])

    assert result.ok is True
    assert result.ignored == 1
    assert result.processed == 0
    assert archive.objects == {}


@pytest.mark.asyncio
async def test_invalid_bodies_are_failed():
    """Non-object bodies and missing payloads fail only that message."""
    consumer = QueueConsumer(InMemoryArchive(), metrics=Metrics())
    result = await consumer.process([
        record("no-payload", {"type": "analytics_event"}),
        record("bad-payload", {"type": "analytics_event", "payload": "x"}),
        record("null", "null"),
        QueueRecord(message_id="none", body=None),
    ])
    assert result.batch_item_failures == ["no-payload", "bad-payload", "null", "none"]
    assert result.processed == 0


@pytest.mark.asyncio
async def test_decoded_body_is_accepted():
    """Bodies already decoded to a mapping are handled like JSON strings."""
    archive = InMemoryArchive()
    result = await QueueConsumer(archive, metrics=Metrics()).process(
        [QueueRecord(message_id="m", body=message(payload()))]
    )
    assert result.processed == 1
    assert len(archive.objects) == 1


@pytest.mark.asyncio
async def test_duplicate_failures_reported_once():
    consumer = QueueConsumer(FailingArchive("events/"), metrics=Metrics())
    result = await consumer.process([record("dup", "nope"), record("dup", "nope")])
    assert result.batch_item_failures == ["dup"]
    assert result.failed == 1


@pytest.mark.asyncio
async def test_missing_archive_fails_invocation():
    """Without an archive store the whole invocation fails."""
    consumer = QueueConsumer(None, metrics=Metrics())
    with pytest.raises(ArchiveNotConfiguredError):
        await consumer.process([record("m", message(payload()))])


@pytest.mark.asyncio
async def test_group_writes_run_concurrently():
    probe = ConcurrencyProbe()
    await QueueConsumer(probe, metrics=Metrics()).process(
        [record(str(h), message(payload(hour=f"{h:02d}"))) for h in range(4)]
    )
    assert probe.max_in_flight > 1
    assert probe.in_flight == 0


@pytest.mark.asyncio
async def test_empty_batch():
    result = await QueueConsumer(InMemoryArchive(), metrics=Metrics()).process([])
    assert result.ok is True
    assert result.processed == 0
    assert result.batch_item_failures == []


@pytest.mark.asyncio
async def test_custom_prefix_is_normalized():
    archive = InMemoryArchive()
    await QueueConsumer(archive, prefix="/analytics/raw", metrics=Metrics()).process(
        [record("m", message(payload()))]
    )
    (key,) = archive.objects
    assert key.startswith("analytics/raw/dt=2025-01-01/hr=14/batch-")


def test_partition_falls_back_for_malformed_fields():
    assert partition_of(payload(date="2025-01-01", hour="09")) == ("2025-01-01", "09")
    fallback = partition_of({"event_date": "../../etc", "event_hour": "9"})
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", fallback[0])
    assert re.fullmatch(r"\d{2}", fallback[1])
