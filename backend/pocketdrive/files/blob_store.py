"""Blob store gateway: file content in an S3-compatible bucket, keyed by storage key."""

import asyncio
import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pocketdrive.config import Settings
from pocketdrive.files.errors import StorageError

log = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def create_s3_client(settings: Settings) -> Any:
    """Build the process-wide S3 client. Retries are off; retry policy belongs to callers."""
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url or None,
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key_id or None,
        aws_secret_access_key=settings.s3_secret_access_key or None,
        config=Config(
            retries={"total_max_attempts": 1, "mode": "standard"},
            connect_timeout=settings.store_timeout_seconds,
            read_timeout=settings.store_timeout_seconds,
        ),
    )


class BlobStore:
    """
    put / delete / presign_read against one bucket.
    boto3 is blocking, so each call runs in a worker thread.
    """

    def __init__(
        self,
        s3_client: Any,
        bucket_name: str,
        presign_ttl_seconds: int = 300,
        region: str = "us-east-1",
    ) -> None:
        self._s3 = s3_client
        self.bucket_name = bucket_name
        self.presign_ttl_seconds = presign_ttl_seconds
        self.region = region

    async def put(
        self,
        storage_key: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        """Upload content. Re-uploading the same key overwrites it."""
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=self.bucket_name,
                Key=storage_key,
                Body=content,
                ContentType=content_type or "application/octet-stream",
            )
        except (ClientError, BotoCoreError) as e:
            log.error("put failed key=%s: %s", storage_key, e)
            raise StorageError("storage upload failed", cause=e) from e
        log.info("put key=%s size=%d", storage_key, len(content))

    async def delete(self, storage_key: str) -> bool:
        """
        Delete an object. Returns True if deleted, False if the store reported the key missing.
        A missing key is not an error at this layer.
        """
        try:
            await asyncio.to_thread(
                self._s3.delete_object, Bucket=self.bucket_name, Key=storage_key
            )
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                log.info("delete key=%s: already gone", storage_key)
                return False
            log.error("delete failed key=%s: %s", storage_key, e)
            raise StorageError("storage delete failed", cause=e) from e
        except BotoCoreError as e:
            log.error("delete failed key=%s: %s", storage_key, e)
            raise StorageError("storage delete failed", cause=e) from e
        log.info("delete key=%s", storage_key)
        return True

    async def presign_read(self, storage_key: str, ttl: Optional[int] = None) -> str:
        """Time-limited GET URL. The object need not exist yet."""
        expires_in = ttl if ttl is not None else self.presign_ttl_seconds
        try:
            url = await asyncio.to_thread(
                self._s3.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": storage_key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            log.error("presign failed key=%s: %s", storage_key, e)
            raise StorageError("presign failed", cause=e) from e
        log.debug("presign key=%s ttl=%d", storage_key, expires_in)
        return url

    async def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist (local MinIO / test setups)."""
        try:
            await asyncio.to_thread(self._s3.head_bucket, Bucket=self.bucket_name)
            return
        except ClientError as e:
            if _error_code(e) not in _NOT_FOUND_CODES | {"NoSuchBucket"}:
                raise StorageError("bucket check failed", cause=e) from e
        except BotoCoreError as e:
            raise StorageError("bucket check failed", cause=e) from e
        kwargs: dict = {"Bucket": self.bucket_name}
        # us-east-1 rejects an explicit LocationConstraint
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            await asyncio.to_thread(self._s3.create_bucket, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("bucket create failed", cause=e) from e
        log.info("Created bucket %s", self.bucket_name)
