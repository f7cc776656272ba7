"""Redis Streams queue adapter."""
from typing import List, Sequence
import os
import socket
import structlog
from redis import Redis
from redis.exceptions import RedisError, ResponseError
from .base import QueueAdapter, QUEUE_BATCH_LIMIT
from ..errors import QueueTransportError
from ..event_models import FailedEntry, QueueEntry, QueueRecord, SendBatchResult
from ..config import get_settings

log = structlog.get_logger()
settings = get_settings()

SOCKET_TIMEOUT_SECONDS = 5


class RedisStreamQueue(QueueAdapter):
    """Redis Streams implementation of the queue adapter.

    Messages are appended with XADD and consumed through a consumer group.
    Entries stay in the group's pending list until XACKed; entries left
    pending longer than the visibility timeout are reclaimed by the next
    receive(), which gives the same redelivery behaviour as an SQS queue.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        stream_key: str | None = None,
        group: str | None = None,
        consumer: str | None = None,
        visibility_timeout_ms: int = 300_000,
        block_ms: int = 0,
        maxlen: int = 100_000,
    ):
        """
        Initialize Redis stream queue.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            stream_key: Stream key (defaults to settings.REDIS_STREAM_KEY)
            group: Consumer group name (defaults to settings.REDIS_CONSUMER_GROUP)
            consumer: Consumer name within the group (defaults to host-pid)
            visibility_timeout_ms: Idle time after which a pending entry is redelivered
            block_ms: How long receive() blocks waiting for new entries (0 = don't block)
            maxlen: Approximate cap on stream length
        """
        self.redis_url = redis_url or str(settings.REDIS_URL)
        self.stream_key = stream_key or settings.REDIS_STREAM_KEY
        self.group = group or settings.REDIS_CONSUMER_GROUP
        self.consumer = consumer or f"{socket.gethostname()}-{os.getpid()}"
        self.visibility_timeout_ms = visibility_timeout_ms
        self.block_ms = block_ms
        self.maxlen = maxlen
        self._client: Redis | None = None
        self._group_ready = False

    @property
    def socket_timeout(self) -> float:
        """Read timeout; always outlasts a blocking XREADGROUP on an idle stream."""
        return SOCKET_TIMEOUT_SECONDS + self.block_ms / 1000

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
                socket_timeout=self.socket_timeout,
            )
        return self._client

    def _ensure_group(self, client: Redis) -> None:
        if self._group_ready:
            return
        try:
            client.xgroup_create(self.stream_key, self.group, id="0", mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._group_ready = True

    async def send_batch(self, entries: Sequence[QueueEntry]) -> SendBatchResult:
        """
        Append entries to the stream in one pipeline round trip.

        Raises:
            QueueTransportError: If Redis is unreachable
        """
        try:
            pipe = self._get_client().pipeline(transaction=False)
            for entry in entries:
                pipe.xadd(self.stream_key, {"data": entry.body}, id="*", maxlen=self.maxlen, approximate=True)
            replies = pipe.execute(raise_on_error=False)
        except RedisError as e:
            log.error("redis.send_failed", error=str(e), count=len(entries))
            raise QueueTransportError(f"XADD failed: {e}") from e

        result = SendBatchResult()
        for entry, reply in zip(entries, replies):
            if isinstance(reply, Exception):
                result.failed.append(FailedEntry(id=entry.id, code=type(reply).__name__, message=str(reply)))
            else:
                result.successful.append(entry.id)
        return result

    async def receive(self, max_messages: int = QUEUE_BATCH_LIMIT) -> List[QueueRecord]:
        try:
            client = self._get_client()
            self._ensure_group(client)

            # Stale pending entries first, then new ones
            claimed = client.xautoclaim(
                self.stream_key,
                self.group,
                self.consumer,
                min_idle_time=self.visibility_timeout_ms,
                start_id="0-0",
                count=max_messages,
            )
            entries = list(claimed[1]) if claimed else []

            remaining = max_messages - len(entries)
            if remaining > 0:
                response = client.xreadgroup(
                    self.group,
                    self.consumer,
                    {self.stream_key: ">"},
                    count=remaining,
                    block=self.block_ms or None,
                )
                for _stream, stream_entries in response or []:
                    entries.extend(stream_entries)
        except RedisError as e:
            log.error("redis.receive_failed", error=str(e))
            raise QueueTransportError(f"XREADGROUP failed: {e}") from e

        records = []
        for entry_id, fields in entries:
            if not fields:
                # Entry trimmed from the stream while pending
                continue
            message_id = entry_id.decode() if isinstance(entry_id, bytes) else str(entry_id)
            data = fields.get(b"data")
            records.append(QueueRecord(
                message_id=message_id,
                body=data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data,
                receipt=message_id,
            ))
        return records

    async def acknowledge(self, records: Sequence[QueueRecord]) -> None:
        ids = [r.receipt for r in records if r.receipt]
        if not ids:
            return
        try:
            self._get_client().xack(self.stream_key, self.group, *ids)
        except RedisError as e:
            log.error("redis.ack_failed", error=str(e), count=len(ids))
            raise QueueTransportError(f"XACK failed: {e}") from e

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(self._get_client().ping())
        except RedisError as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
