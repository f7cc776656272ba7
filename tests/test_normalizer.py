"""Tests for event normalization and the privacy filter."""
from datetime import datetime, timezone
import hashlib
import re
import orjson
from telemetry_pipeline.config import Settings
from telemetry_pipeline.event_models import RequestContext
from telemetry_pipeline.normalizer import (
    METADATA_MAX_BYTES,
    normalize_event,
    parse_timestamp,
    safe_string,
    sanitize_metadata,
)
from telemetry_pipeline.privacy import capture_user_agent, client_ip, hash_ip

NOW = datetime(2025, 1, 1, 14, 3, 7, 250000, tzinfo=timezone.utc)
CTX = RequestContext(ip="203.0.113.7", user_agent="Mozilla/5.0", referrer="https://example.com/", route="/ctx")


def make_settings(**overrides) -> Settings:
    values = {"ANALYTICS_IP_HASH_SALT": "pepper", "ANALYTICS_DEFAULT_SOURCE": "portfolio-app"}
    values.update(overrides)
    return Settings(**values)


def test_missing_type_is_rejected():
    """Events without a type normalize to None."""
    settings = make_settings()
    assert normalize_event({"route": "/blog"}, CTX, settings) is None
    assert normalize_event({"type": "   "}, CTX, settings) is None
    assert normalize_event({"type": None, "eventType": ""}, CTX, settings) is None


def test_non_object_is_rejected():
    """Arrays, strings and null are not events."""
    settings = make_settings()
    for raw in (None, "page_view", ["page_view"], 42):
        assert normalize_event(raw, CTX, settings) is None


def test_event_type_alias_and_cap():
    """eventType is accepted and the type is capped at 80 chars."""
    event = normalize_event({"eventType": "x" * 100}, CTX, make_settings(), now=NOW)
    assert event.event_type == "x" * 80


def test_client_timestamp_drives_partition():
    """event_date/event_hour come from the client timestamp."""
    event = normalize_event({"type": "page_view", "ts": "2025-03-09T22:15:00.500Z"}, CTX, make_settings(), now=NOW)
    assert event.event_time == "2025-03-09T22:15:00.500Z"
    assert event.event_date == "2025-03-09"
    assert event.event_hour == "22"
    assert event.received_at == "2025-01-01T14:03:07.250Z"


def test_timestamp_aliases_and_offsets():
    """timestamp and eventTime are used, and offsets are converted to UTC."""
    settings = make_settings()
    event = normalize_event({"type": "a", "timestamp": "2025-01-01T23:30:00+02:00"}, CTX, settings, now=NOW)
    assert event.event_time == "2025-01-01T21:30:00.000Z"
    event = normalize_event({"type": "a", "eventTime": 1735740000000}, CTX, settings, now=NOW)
    assert event.event_time == "2025-01-01T14:00:00.000Z"


def test_bad_timestamp_falls_back_to_capture_time():
    """Unparseable timestamps never reject the event."""
    settings = make_settings()
    for ts in ("not-a-date", "2025-13-45T99:00:00Z", {"when": "now"}, True, float("inf")):
        event = normalize_event({"type": "page_view", "ts": ts}, CTX, settings, now=NOW)
        assert event is not None
        assert event.event_time == "2025-01-01T14:03:07.250Z"
        assert (event.event_date, event.event_hour) == ("2025-01-01", "14")


def test_parse_timestamp_naive_is_utc():
    assert parse_timestamp("2025-06-01T08:00:00", NOW) == datetime(2025, 6, 1, 8, tzinfo=timezone.utc)


def test_normalization_is_deterministic():
    """Same input and capture time give the same record."""
    raw = {"type": "cta_clicked", "ts": "2025-01-01T15:00:00Z", "sessionId": "s1", "metadata": {"b": 1, "a": [1, 2]}}
    settings = make_settings()
    first = normalize_event(raw, CTX, settings, now=NOW)
    second = normalize_event(raw, CTX, settings, now=NOW)
    assert first.to_record() == second.to_record()


def test_string_fields_are_capped_and_never_null():
    """Every string field is present, trimmed and bounded."""
    raw = {
        "type": "page_view",
        "route": "/" + "r" * 400,
        "page": "p" * 200,
        "source": "s" * 100,
        "referrer": "f" * 600,
        "sessionId": "  " + "i" * 200,
        "visitorId": None,
    }
    event = normalize_event(raw, RequestContext(), make_settings(), now=NOW)
    assert len(event.route) == 256
    assert len(event.page) == 128
    assert len(event.source) == 64
    assert len(event.referrer) == 512
    assert event.session_id == "i" * 120
    assert event.visitor_id == ""
    assert event.ip_hash == ""


def test_context_fallbacks():
    """Route and referrer fall back to the request; source to the configured default."""
    event = normalize_event({"type": "page_view"}, CTX, make_settings(), now=NOW)
    assert event.route == "/ctx"
    assert event.referrer == "https://example.com/"
    assert event.source == "portfolio-app"


def test_metadata_round_trip():
    """Valid metadata survives and metadata_json mirrors it."""
    event = normalize_event({"type": "a", "metadata": {"title": "Home", "n": 3}}, CTX, make_settings(), now=NOW)
    assert event.metadata == {"title": "Home", "n": 3}
    assert orjson.loads(event.metadata_json) == event.metadata


def test_metadata_collapses_to_empty_object():
    """Non-objects, oversized and unserializable metadata become {}."""
    assert sanitize_metadata(["a"]) == {}
    assert sanitize_metadata("meta") == {}
    assert sanitize_metadata({"tags": {"a", "b"}}) == {}
    assert sanitize_metadata({"blob": "x" * METADATA_MAX_BYTES}) == {}
    assert sanitize_metadata({"blob": "x" * 100}) == {"blob": "x" * 100}

    event = normalize_event({"type": "a", "metadata": {"blob": "x" * 5000}}, CTX, make_settings(), now=NOW)
    assert event.metadata == {}
    assert event.metadata_json == "{}"


def test_user_agent_omitted_when_capture_disabled():
    """Disabled capture removes the field instead of blanking it."""
    off = normalize_event({"type": "a"}, CTX, make_settings(ANALYTICS_CAPTURE_USER_AGENT=False), now=NOW)
    assert "user_agent" not in off.to_record()

    on = normalize_event({"type": "a"}, CTX, make_settings(ANALYTICS_CAPTURE_USER_AGENT=True), now=NOW)
    assert on.to_record()["user_agent"] == "Mozilla/5.0"


def test_raw_ip_never_persisted():
    """Only the salted hash of the caller IP reaches the record."""
    event = normalize_event({"type": "a"}, CTX, make_settings(), now=NOW)
    record = orjson.dumps(event.to_record()).decode()
    assert "203.0.113.7" not in record
    assert event.ip_hash == hashlib.sha256(b"pepper:203.0.113.7").hexdigest()


def test_hash_ip_format_is_constant():
    """Hash length and alphabet do not depend on the IP format."""
    for ip in ("1.2.3.4", "2001:0db8:85a3:0000:0000:8a2e:0370:7334", "::1", "not-an-ip"):
        value = hash_ip(ip, "salt")
        assert re.fullmatch(r"[0-9a-f]{64}", value)
        assert value == hash_ip(ip, "salt")
    assert hash_ip("1.2.3.4", "a") != hash_ip("1.2.3.4", "b")
    assert hash_ip("", "salt") == ""
    assert hash_ip(None, "salt") == ""


def test_safe_string():
    assert safe_string(None) == ""
    assert safe_string("  hi  ") == "hi"
    assert safe_string("   ") == ""
    assert safe_string(12345, 3) == "123"


def test_capture_user_agent_bounds():
    assert capture_user_agent("ua", False) is None
    assert capture_user_agent(None, True) == ""
    assert len(capture_user_agent("u" * 600, True)) == 512


def test_client_ip_uses_last_forwarded_hop():
    assert client_ip("198.51.100.1, 203.0.113.9", "10.0.0.1") == "203.0.113.9"
    assert client_ip(" , ", "10.0.0.1") == "10.0.0.1"
    assert client_ip(None, None) == ""
