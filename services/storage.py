import re
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from utils.config import Settings
from utils.errors import StorageError

logger = logging.getLogger("services.storage")

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9-]")


@dataclass
class StoredObject:
    url: str
    provider_id: str


def build_object_key(filename: str, now: Optional[datetime] = None) -> str:
    """Unique key from the upload time and the filename stem, e.g. ``pdf-1700000000000-annual_report-1a2b3c4d``."""
    now = now or datetime.now(timezone.utc)
    stem = PurePath(filename or "").name.split(".")[0]
    return f"pdf-{int(now.timestamp() * 1000)}-{_UNSAFE_KEY_CHARS.sub('_', stem)}-{uuid.uuid4().hex[:8]}"


def boto3_client(settings: Settings) -> Any:
    # No retries: every storage failure is reported once.
    kwargs: Dict[str, Any] = {"region_name": settings.aws_region, "config": Config(retries={"max_attempts": 0})}
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
    return boto3.client("s3", **kwargs)


class S3ObjectStore:
    def __init__(self, bucket: str, client: Any, region: str = "us-east-1", endpoint_url: Optional[str] = None, prefix: str = ""):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.prefix = prefix
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        return cls(
            bucket=settings.s3_bucket,
            client=boto3_client(settings),
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            prefix=settings.s3_prefix,
        )

    def object_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload(self, payload: bytes, key: str, content_type: str = "application/pdf") -> StoredObject:
        if self.prefix:
            key = f"{self.prefix.strip('/')}/{key}"
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=payload, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload to S3: {exc}") from exc
        return StoredObject(url=self.object_url(key), provider_id=key)

    def delete(self, provider_id: str) -> str:
        try:
            self._client.head_object(Bucket=self.bucket, Key=provider_id)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return "not found"
            raise StorageError(f"Failed to delete S3 object: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete S3 object: {exc}") from exc
        try:
            self._client.delete_object(Bucket=self.bucket, Key=provider_id)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete S3 object: {exc}") from exc
        return "ok"

    def open_stream(self, provider_id: str) -> Tuple[Callable[..., Iterator[bytes]], Dict[str, Any], Callable[[], None]]:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=provider_id)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download S3 object: {exc}") from exc

        body = obj["Body"]
        metadata = {
            "content_type": obj.get("ContentType", "application/pdf"),
            "content_length": obj.get("ContentLength"),
        }

        def iterator(chunk_size: int = 1024 * 64):
            for chunk in body.iter_chunks(chunk_size):
                if chunk:
                    yield chunk

        def closer():
            try:
                body.close()
            except Exception:  # pragma: no cover - best effort
                logger.debug("stream_close_failed", exc_info=True)

        return iterator, metadata, closer
