"""Pytest configuration: set test env before any app imports so settings use test values."""

import os
import tempfile

import boto3
import pytest
import pytest_asyncio
from moto import mock_aws

# Set before pocketdrive.main is imported (it reads settings at import time)
_tmp = tempfile.mkdtemp(prefix="pocketdrive_test_")
os.environ.setdefault("POCKETDRIVE_DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_tmp, 'test.db')}")
os.environ.setdefault("POCKETDRIVE_S3_BUCKET_NAME", "test-bucket")
os.environ.setdefault("POCKETDRIVE_S3_REGION", "us-east-1")
# moto needs credentials to sign requests; never real ones in tests
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

TEST_BUCKET = "test-bucket"


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite metadata store per test."""
    from pocketdrive.db.session import Database

    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'meta.db'}")
    await db.init_db()
    yield db
    await db.dispose()


@pytest.fixture
def metadata_store(database):
    from pocketdrive.files.metadata_store import MetadataStore

    return MetadataStore(database, storage_key_prefix="data/")


@pytest.fixture
def s3_client():
    """Mocked S3 with the test bucket created."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=TEST_BUCKET)
        yield client


@pytest.fixture
def blob_store(s3_client):
    from pocketdrive.files.blob_store import BlobStore

    return BlobStore(s3_client, TEST_BUCKET, presign_ttl_seconds=300)


@pytest.fixture
def engine(metadata_store, blob_store):
    """Reconciliation engine over the SQLite metadata store and mocked S3."""
    from pocketdrive.files.reconcile import ReconciliationEngine

    return ReconciliationEngine(metadata_store, blob_store, concurrency=5, timeout_seconds=5.0)
