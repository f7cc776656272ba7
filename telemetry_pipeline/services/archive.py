"""
Archive object layout and codec.

Objects are gzip-compressed newline-delimited JSON, stored under
    <prefix>dt=<YYYY-MM-DD>/hr=<HH>/batch-<timestamp>-<uuid>.json.gz
External readers partition on dt/hr, so this layout must stay stable.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List
import gzip
import uuid
import orjson

from ..event_models import iso_millis, utc_now

CONTENT_TYPE = "application/x-ndjson"
CONTENT_ENCODING = "gzip"


def normalize_prefix(prefix: str | None) -> str:
    """Strip leading slashes and ensure exactly one trailing slash."""
    value = str(prefix or "").lstrip("/")
    return value.rstrip("/") + "/"


def partition_key(prefix: str, event_date: str, event_hour: str, now: datetime | None = None) -> str:
    stamp = iso_millis(now or utc_now()).replace(":", "-").replace(".", "-")
    return f"{prefix}dt={event_date}/hr={event_hour}/batch-{stamp}-{uuid.uuid4()}.json.gz"


def encode_batch(records: Iterable[Dict[str, Any]]) -> bytes:
    lines = b"\n".join(orjson.dumps(r) for r in records)
    return gzip.compress(lines + b"\n")


def decode_batch(body: bytes) -> List[Dict[str, Any]]:
    text = gzip.decompress(body)
    return [orjson.loads(line) for line in text.splitlines() if line.strip()]
