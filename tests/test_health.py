"""
Tests for health check and metrics endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock
from botocore.exceptions import ClientError
from telemetry_pipeline.adapters.memory import InMemoryArchive, InMemoryQueue
from telemetry_pipeline.adapters.s3 import S3Archive
from telemetry_pipeline.health import HealthChecker
from telemetry_pipeline.main import app

client = TestClient(app)


def test_health_liveness():
    """Test liveness health check."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "telemetry-pipeline"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_health_readiness():
    """Test readiness health check."""
    r = client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "telemetry-pipeline"
    assert "queue" in data["checks"]
    assert "archive" in data["checks"]
    assert "memory" in data["checks"]


def test_metrics_endpoint():
    """Test Prometheus metrics endpoint."""
    client.post("/analytics/events", json={"events": [{"type": "page_view"}]})
    r = client.get("/metrics")
    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert "telemetry_events_received_total" in content
    assert "telemetry_archive_objects_written_total" in content


def test_correlation_id_in_response():
    """Test that correlation ID is added to response headers."""
    r = client.get("/health")
    assert "x-correlation-id" in r.headers


@pytest.mark.asyncio
async def test_readiness_skips_disabled_queue():
    """A disabled queue does not make the service unready."""
    result = await HealthChecker(queue=None).readiness()
    assert result["checks"]["queue"]["status"] == "skipped"


@pytest.mark.asyncio
async def test_readiness_fails_on_unreachable_queue():
    queue = AsyncMock()
    queue.health_check.return_value = False
    result = await HealthChecker(queue=queue).readiness()
    assert result["status"] == "not_ready"
    assert result["checks"]["queue"]["status"] == "error"


@pytest.mark.asyncio
async def test_readiness_skips_unconfigured_archive():
    result = await HealthChecker(queue=InMemoryQueue(), archive=None).readiness()
    assert result["checks"]["archive"]["status"] == "skipped"
    assert result["checks"]["queue"]["status"] == "ok"


@pytest.mark.asyncio
async def test_readiness_fails_on_unreachable_archive():
    """A bucket the service cannot reach makes it unready."""
    client = MagicMock()
    client.head_bucket.side_effect = ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket")
    archive = S3Archive("analytics-bucket", client=client)

    result = await HealthChecker(queue=InMemoryQueue(), archive=archive).readiness()

    assert result["status"] == "not_ready"
    assert result["checks"]["archive"] == {"status": "error", "store": "S3Archive"}
    client.head_bucket.assert_called_once_with(Bucket="analytics-bucket")


@pytest.mark.asyncio
async def test_readiness_reports_reachable_archive():
    result = await HealthChecker(queue=None, archive=InMemoryArchive()).readiness()
    assert result["checks"]["archive"]["status"] == "ok"
    assert result["checks"]["archive"]["store"] == "InMemoryArchive"
