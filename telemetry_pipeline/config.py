from pydantic import AnyUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

DEFAULT_MAX_EVENTS_PER_REQUEST = 25


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    MAX_REQUEST_SIZE: int = 65536
    # Backend selection
    QUEUE_ADAPTER: Literal["memory", "sqs", "redis"] = "memory"
    ARCHIVE_ADAPTER: Literal["memory", "s3"] = "memory"
    REDIS_URL: AnyUrl | None = None
    REDIS_STREAM_KEY: str = "telemetry:analytics-events"
    REDIS_CONSUMER_GROUP: str = "telemetry-archiver"
    # Queue
    ANALYTICS_QUEUE_ENABLED: bool = True
    ANALYTICS_QUEUE_URL: str = ""
    # Archive
    ANALYTICS_S3_BUCKET: str = ""
    ANALYTICS_S3_PREFIX: str = "events/"
    ANALYTICS_S3_REGION: str = ""
    AWS_REGION: str = "us-east-2"
    # Ingestion
    ANALYTICS_DEFAULT_SOURCE: str = "portfolio-app"
    ANALYTICS_MAX_EVENTS_PER_REQUEST: int = DEFAULT_MAX_EVENTS_PER_REQUEST
    ANALYTICS_IP_HASH_SALT: str = ""
    ANALYTICS_CAPTURE_USER_AGENT: bool = True
    # Consumer
    ANALYTICS_UNKNOWN_MESSAGE_POLICY: Literal["fail", "ignore"] = "fail"
    WORKER_POLL_MAX_MESSAGES: int = 10
    WORKER_POLL_WAIT_SECONDS: int = 20

    @field_validator("ANALYTICS_MAX_EVENTS_PER_REQUEST", mode="before")
    @classmethod
    def _bound_max_events(cls, value):
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return DEFAULT_MAX_EVENTS_PER_REQUEST
        if parsed == 0:
            return DEFAULT_MAX_EVENTS_PER_REQUEST
        return max(1, parsed)

    @field_validator(
        "ANALYTICS_QUEUE_URL",
        "ANALYTICS_S3_BUCKET",
        "ANALYTICS_S3_REGION",
        "ANALYTICS_DEFAULT_SOURCE",
        "ANALYTICS_IP_HASH_SALT",
    )
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @property
    def queue_enabled(self) -> bool:
        """Queue is live when the flag is on and the selected transport has an endpoint."""
        if not self.ANALYTICS_QUEUE_ENABLED:
            return False
        if self.QUEUE_ADAPTER == "sqs":
            return bool(self.ANALYTICS_QUEUE_URL)
        if self.QUEUE_ADAPTER == "redis":
            return self.REDIS_URL is not None
        return True

    @property
    def s3_region(self) -> str:
        return self.ANALYTICS_S3_REGION or self.AWS_REGION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
