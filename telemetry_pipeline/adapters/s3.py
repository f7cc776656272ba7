"""Amazon S3 archive store."""
from typing import Any
import asyncio
import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from .base import ArchiveStore
from ..errors import ArchiveWriteError

log = structlog.get_logger()


class S3Archive(ArchiveStore):
    """Writes archive objects to a single bucket with SSE-S3 encryption."""

    def __init__(self, bucket: str, region: str | None = None, client: Any = None):
        self.bucket = bucket
        self.region = region
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    async def put_object(self, key: str, body: bytes, content_type: str, content_encoding: str) -> None:
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                ContentEncoding=content_encoding,
                ServerSideEncryption="AES256",
            )
        except (BotoCoreError, ClientError) as e:
            raise ArchiveWriteError(key, str(e)) from e

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._get_client().head_bucket, Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            log.warning("s3.health_check_failed", bucket=self.bucket, error=str(e))
            return False
