from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal
from datetime import datetime, timezone
import orjson

ANALYTICS_EVENT_TYPE = "analytics_event"
SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_millis(value: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with millisecond precision and a Z suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RequestContext(BaseModel):
    """Caller details captured by the HTTP layer for one ingest request."""
    ip: str = ""
    user_agent: str = ""
    referrer: str = ""
    route: str = ""


class NormalizedEvent(BaseModel):
    """Canonical archive row. Field names are the persisted column names."""
    version: int = SCHEMA_VERSION
    event_type: str
    event_time: str
    event_date: str
    event_hour: str
    route: str = ""
    page: str = ""
    source: str = ""
    referrer: str = ""
    session_id: str = ""
    visitor_id: str = ""
    user_agent: str | None = None
    ip_hash: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    metadata_json: str = "{}"
    received_at: str

    def to_record(self) -> Dict[str, Any]:
        # user_agent is the only optional field; absent means "not collected"
        return self.model_dump(exclude_none=True)


class QueueMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = ANALYTICS_EVENT_TYPE
    created_at: str = Field(default_factory=lambda: iso_millis(utc_now()), alias="createdAt")
    payload: Dict[str, Any]

    @classmethod
    def wrap(cls, event: NormalizedEvent) -> "QueueMessage":
        return cls(payload=event.to_record())

    def to_body(self) -> str:
        return orjson.dumps(self.model_dump(by_alias=True)).decode()


class QueueEntry(BaseModel):
    """One message handed to a queue transport's batch send."""
    id: str
    body: str
    group_id: str | None = None
    deduplication_id: str | None = None


class FailedEntry(BaseModel):
    id: str
    code: str = ""
    message: str = ""


class SendBatchResult(BaseModel):
    successful: List[str] = Field(default_factory=list)
    failed: List[FailedEntry] = Field(default_factory=list)


class QueueRecord(BaseModel):
    """One delivered message as seen by the consumer."""
    message_id: str = ""
    body: Any = None
    # Transport-specific acknowledgement handle (SQS receipt handle, stream entry id)
    receipt: Any = None

    @classmethod
    def from_sqs_event_record(cls, record: Dict[str, Any]) -> "QueueRecord":
        message_id = str(record.get("messageId") or record.get("messageID") or "").strip()
        return cls(message_id=message_id, body=record.get("body"), receipt=record.get("receiptHandle"))


class IngestResult(BaseModel):
    accepted: int = 0
    queued: int = 0
    rejected: int = 0
    failed: int = 0
    queue_enabled: bool = True
    reason: str | None = None


class PublishResult(BaseModel):
    status: Literal["published"] = "published"
    queued: int = 0
    failed: int = 0
    failed_ids: List[str] = Field(default_factory=list)


class QueueDisabled(BaseModel):
    status: Literal["disabled"] = "disabled"
    reason: str = "ANALYTICS_QUEUE_DISABLED"


class ConsumeResult(BaseModel):
    ok: bool
    processed: int = 0
    failed: int = 0
    ignored: int = 0
    files: int = 0
    batch_item_failures: List[str] = Field(default_factory=list)

    def to_lambda_response(self) -> Dict[str, Any]:
        return {"batchItemFailures": [{"itemIdentifier": mid} for mid in self.batch_item_failures]}
