"""
Event normalization.

Turns an untrusted client event into a NormalizedEvent, or None when the
event cannot be used. Normalization never raises: a bad timestamp falls back
to capture time and bad metadata collapses to an empty object, so only a
missing event type rejects an event.
"""
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict
import orjson

from .config import Settings
from .event_models import NormalizedEvent, RequestContext, iso_millis, utc_now
from .privacy import capture_user_agent, hash_ip

METADATA_MAX_BYTES = 4096

# Per-field length caps
EVENT_TYPE_MAX_LEN = 80
ROUTE_MAX_LEN = 256
PAGE_MAX_LEN = 128
SOURCE_MAX_LEN = 64
REFERRER_MAX_LEN = 512
IDENTIFIER_MAX_LEN = 120


def safe_string(value: Any, max_len: int = 256) -> str:
    """Coerce to a trimmed, length-capped string. Missing values become ''."""
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    return text[:max_len]


def parse_timestamp(value: Any, now: datetime | None = None) -> datetime:
    """
    Parse a client timestamp.

    Accepts ISO-8601 strings (a trailing Z is allowed, naive values are UTC)
    and numeric epoch milliseconds. Anything else yields `now`.
    """
    fallback = now or utc_now()
    if not value or isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (OverflowError, ValueError):
            return fallback

    return fallback


def sanitize_metadata(raw: Any) -> Dict[str, Any]:
    """Round-trip metadata through JSON; non-objects and oversized payloads become {}."""
    if not isinstance(raw, Mapping):
        return {}
    try:
        serialized = orjson.dumps(dict(raw))
    except TypeError:
        # orjson.JSONEncodeError subclasses TypeError
        return {}
    if len(serialized) > METADATA_MAX_BYTES:
        return {}
    return orjson.loads(serialized)


def normalize_event(
    raw: Any,
    request_context: RequestContext,
    settings: Settings,
    now: datetime | None = None,
) -> NormalizedEvent | None:
    if not isinstance(raw, Mapping):
        return None

    event_type = safe_string(raw.get("type") or raw.get("eventType"), EVENT_TYPE_MAX_LEN)
    if not event_type:
        return None

    captured = now or utc_now()
    ts = parse_timestamp(raw.get("ts") or raw.get("timestamp") or raw.get("eventTime"), captured)
    event_time = iso_millis(ts)
    metadata = sanitize_metadata(raw.get("metadata"))

    return NormalizedEvent(
        event_type=event_type,
        event_time=event_time,
        event_date=event_time[:10],
        event_hour=event_time[11:13],
        route=safe_string(raw.get("route") or request_context.route, ROUTE_MAX_LEN),
        page=safe_string(raw.get("page"), PAGE_MAX_LEN),
        source=safe_string(raw.get("source"), SOURCE_MAX_LEN) or settings.ANALYTICS_DEFAULT_SOURCE,
        referrer=safe_string(raw.get("referrer") or request_context.referrer, REFERRER_MAX_LEN),
        session_id=safe_string(raw.get("sessionId"), IDENTIFIER_MAX_LEN),
        visitor_id=safe_string(raw.get("visitorId"), IDENTIFIER_MAX_LEN),
        user_agent=capture_user_agent(request_context.user_agent, settings.ANALYTICS_CAPTURE_USER_AGENT),
        ip_hash=hash_ip(request_context.ip, settings.ANALYTICS_IP_HASH_SALT),
        metadata=metadata,
        metadata_json=orjson.dumps(metadata).decode(),
        received_at=iso_millis(captured),
    )
