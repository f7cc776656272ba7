"""Amazon SQS queue adapter."""
from typing import Any, List, Sequence
import asyncio
import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from .base import QueueAdapter, QUEUE_BATCH_LIMIT
from ..errors import QueueTransportError
from ..event_models import FailedEntry, QueueEntry, QueueRecord, SendBatchResult

log = structlog.get_logger()


def is_fifo_queue_url(queue_url: str | None) -> bool:
    return str(queue_url or "").lower().endswith(".fifo")


class SqsQueue(QueueAdapter):
    """SQS implementation of the queue adapter.

    The boto3 client is blocking, so calls run in a worker thread to keep
    the event loop free for concurrent requests.
    """

    def __init__(self, queue_url: str, region: str | None = None, client: Any = None, wait_seconds: int = 20):
        """
        Initialize SQS adapter.

        Args:
            queue_url: Full queue URL; a `.fifo` suffix enables group/dedup ids
            region: AWS region for the client
            client: Preconfigured boto3 SQS client (mainly for tests)
            wait_seconds: Long-poll wait used by receive()
        """
        self.queue_url = queue_url
        self.region = region
        self.wait_seconds = wait_seconds
        self._client = client

    @property
    def is_fifo(self) -> bool:
        return is_fifo_queue_url(self.queue_url)

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("sqs", region_name=self.region)
        return self._client

    async def _call(self, operation: str, **kwargs) -> dict:
        client = self._get_client()
        try:
            return await asyncio.to_thread(getattr(client, operation), QueueUrl=self.queue_url, **kwargs)
        except (BotoCoreError, ClientError) as e:
            log.error("sqs.call_failed", operation=operation, error=str(e))
            raise QueueTransportError(f"{operation} failed: {e}") from e

    async def send_batch(self, entries: Sequence[QueueEntry]) -> SendBatchResult:
        payload = []
        for entry in entries:
            item = {"Id": entry.id, "MessageBody": entry.body}
            if entry.group_id:
                item["MessageGroupId"] = entry.group_id
            if entry.deduplication_id:
                item["MessageDeduplicationId"] = entry.deduplication_id
            payload.append(item)

        response = await self._call("send_message_batch", Entries=payload)

        return SendBatchResult(
            successful=[item["Id"] for item in response.get("Successful") or []],
            failed=[
                FailedEntry(id=item.get("Id", ""), code=item.get("Code", ""), message=item.get("Message", ""))
                for item in response.get("Failed") or []
            ],
        )

    async def receive(self, max_messages: int = QUEUE_BATCH_LIMIT) -> List[QueueRecord]:
        response = await self._call(
            "receive_message",
            MaxNumberOfMessages=max(1, min(max_messages, QUEUE_BATCH_LIMIT)),
            WaitTimeSeconds=self.wait_seconds,
        )
        return [
            QueueRecord(message_id=m.get("MessageId", ""), body=m.get("Body"), receipt=m.get("ReceiptHandle"))
            for m in response.get("Messages") or []
        ]

    async def acknowledge(self, records: Sequence[QueueRecord]) -> None:
        handles = [r for r in records if r.receipt]
        for i in range(0, len(handles), QUEUE_BATCH_LIMIT):
            chunk = handles[i:i + QUEUE_BATCH_LIMIT]
            response = await self._call(
                "delete_message_batch",
                Entries=[{"Id": str(idx), "ReceiptHandle": r.receipt} for idx, r in enumerate(chunk)],
            )
            for failure in response.get("Failed") or []:
                # Undeleted messages reappear after the visibility timeout
                log.warning("sqs.delete_failed", code=failure.get("Code"), message=failure.get("Message"))

    async def health_check(self) -> bool:
        try:
            await self._call("get_queue_attributes", AttributeNames=["QueueArn"])
            return True
        except QueueTransportError:
            return False
