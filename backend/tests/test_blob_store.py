"""Tests for the blob store gateway (moto-mocked S3, plus MagicMock clients for failures)."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from pocketdrive.files.blob_store import BlobStore
from pocketdrive.files.errors import StorageError

TEST_BUCKET = "test-bucket"


def _client_error(code: str, op: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


@pytest.mark.asyncio
async def test_put_then_overwrite(blob_store, s3_client) -> None:
    """put is idempotent per key: second upload overwrites."""
    await blob_store.put("data/a.txt", b"one")
    await blob_store.put("data/a.txt", b"two", content_type="text/plain")
    obj = s3_client.get_object(Bucket=TEST_BUCKET, Key="data/a.txt")
    assert obj["Body"].read() == b"two"
    assert obj["ContentType"] == "text/plain"


@pytest.mark.asyncio
async def test_delete_removes_object(blob_store, s3_client) -> None:
    await blob_store.put("data/a.txt", b"x")
    assert await blob_store.delete("data/a.txt") is True
    listed = s3_client.list_objects_v2(Bucket=TEST_BUCKET)
    assert listed.get("KeyCount", 0) == 0


@pytest.mark.asyncio
async def test_delete_missing_key_is_not_fatal(blob_store) -> None:
    """S3 accepts deletes of missing keys; no error surfaces."""
    await blob_store.delete("data/never-existed.txt")


@pytest.mark.asyncio
async def test_delete_not_found_code_returns_false() -> None:
    """A store that reports NoSuchKey yields False, not an error."""
    s3 = MagicMock()
    s3.delete_object.side_effect = _client_error("NoSuchKey", "DeleteObject")
    store = BlobStore(s3, TEST_BUCKET)
    assert await store.delete("data/gone.txt") is False


@pytest.mark.asyncio
async def test_delete_other_error_raises_storage_error() -> None:
    s3 = MagicMock()
    s3.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")
    store = BlobStore(s3, TEST_BUCKET)
    with pytest.raises(StorageError, match="storage delete failed") as exc_info:
        await store.delete("data/a.txt")
    assert isinstance(exc_info.value.cause, ClientError)


@pytest.mark.asyncio
async def test_put_unreachable_raises_storage_error() -> None:
    s3 = MagicMock()
    s3.put_object.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")
    store = BlobStore(s3, TEST_BUCKET)
    with pytest.raises(StorageError, match="storage upload failed"):
        await store.put("data/a.txt", b"x")


@pytest.mark.asyncio
async def test_put_missing_bucket_raises_storage_error(s3_client) -> None:
    store = BlobStore(s3_client, "no-such-bucket")
    with pytest.raises(StorageError):
        await store.put("data/a.txt", b"x")


@pytest.mark.asyncio
async def test_presign_does_not_require_object(blob_store) -> None:
    """Presign works for keys that were never uploaded."""
    url = await blob_store.presign_read("data/later.txt")
    assert TEST_BUCKET in url
    assert "data/later.txt" in url


@pytest.mark.asyncio
async def test_presign_ttl_default_and_override() -> None:
    """Configured TTL is the default; an explicit ttl wins."""
    s3 = MagicMock()
    s3.generate_presigned_url.return_value = "https://example.test/signed"
    store = BlobStore(s3, TEST_BUCKET, presign_ttl_seconds=300)
    assert await store.presign_read("data/a.txt") == "https://example.test/signed"
    assert s3.generate_presigned_url.call_args[1]["ExpiresIn"] == 300
    await store.presign_read("data/a.txt", ttl=60)
    assert s3.generate_presigned_url.call_args[1]["ExpiresIn"] == 60
    assert s3.generate_presigned_url.call_args[1]["Params"] == {"Bucket": TEST_BUCKET, "Key": "data/a.txt"}


@pytest.mark.asyncio
async def test_ensure_bucket_creates_missing(s3_client) -> None:
    store = BlobStore(s3_client, "fresh-bucket")
    await store.ensure_bucket()
    names = [b["Name"] for b in s3_client.list_buckets()["Buckets"]]
    assert "fresh-bucket" in names
    # Second call is a no-op
    await store.ensure_bucket()
