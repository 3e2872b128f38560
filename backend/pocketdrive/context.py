"""Process-lifetime store context: database, S3 client and the gateways built on them."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request

from pocketdrive.config import Settings
from pocketdrive.db.session import Database
from pocketdrive.files.blob_store import BlobStore, create_s3_client
from pocketdrive.files.metadata_store import MetadataStore
from pocketdrive.files.reconcile import ReconciliationEngine

log = logging.getLogger(__name__)


@dataclass
class StoreContext:
    """Built once at startup, disposed at shutdown. Passed explicitly to whatever needs the stores."""

    settings: Settings
    database: Database
    metadata: MetadataStore
    blobs: BlobStore

    def engine(self) -> ReconciliationEngine:
        """Reconciliation engine over this context's gateways."""
        return ReconciliationEngine(
            self.metadata,
            self.blobs,
            concurrency=self.settings.sync_concurrency,
            timeout_seconds=self.settings.store_timeout_seconds,
            storage_key_prefix=self.settings.storage_key_prefix,
        )

    async def start(self) -> None:
        """Create tables and, if configured, the bucket."""
        await self.database.init_db()
        if self.settings.s3_auto_create_bucket:
            await self.blobs.ensure_bucket()

    async def close(self) -> None:
        await self.database.dispose()


def build_context(settings: Settings, s3_client: Optional[Any] = None) -> StoreContext:
    """Construct the context from settings. s3_client overrides the default boto3 client."""
    database = Database(settings.database_url)
    blobs = BlobStore(
        s3_client if s3_client is not None else create_s3_client(settings),
        settings.s3_bucket_name,
        presign_ttl_seconds=settings.presign_ttl_seconds,
        region=settings.s3_region,
    )
    metadata = MetadataStore(database, storage_key_prefix=settings.storage_key_prefix)
    log.info("Store context: db=%s bucket=%s", database.url.split("://", 1)[0], settings.s3_bucket_name)
    return StoreContext(settings=settings, database=database, metadata=metadata, blobs=blobs)


def get_context(request: Request) -> StoreContext:
    """FastAPI dependency: the context created in the app lifespan."""
    return request.app.state.context
