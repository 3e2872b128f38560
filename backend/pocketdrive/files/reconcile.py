"""Batch reconciliation: apply a manifest against the metadata store and blob store.

One request runs in two phases:
1. attached file content is uploaded to the blob store (keyed by filename);
2. manifest entries are applied per operation kind (insert, then update, then delete).

Every entry gets its own outcome. A failing entry is reported inline and never stops
its siblings. Entries within one kind run concurrently up to a fixed bound; output
order within a kind is not guaranteed to match input order.

Delete removes the metadata row first, then the blob. If the blob delete fails the row
is already gone and the entry is still reported as a failure (cleanup incomplete).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from pocketdrive.files.blob_store import BlobStore
from pocketdrive.files.errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    TransientError,
)
from pocketdrive.files.manifest import BatchManifest, DeleteEntry, ManifestEntry, OperationKind, manifest_summary
from pocketdrive.files.metadata_store import MetadataStore
from pocketdrive.files.models import FailedEntry, storage_key_for
from pocketdrive.files.results import BatchResult, EntryOutcome, UploadResult, aggregate

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Attachment:
    """Raw file content sent alongside the manifest. filename is the file path."""

    filename: str
    content: bytes
    content_type: Optional[str] = None


class ReconciliationEngine:
    """Drives both gateways for one batch and returns per-entry outcomes."""

    def __init__(
        self,
        metadata: MetadataStore,
        blobs: BlobStore,
        concurrency: int = 5,
        timeout_seconds: float = 30.0,
        storage_key_prefix: str = "data/",
    ) -> None:
        self._metadata = metadata
        self._blobs = blobs
        self._concurrency = max(1, concurrency)
        self._timeout = timeout_seconds
        self._prefix = storage_key_prefix
        self._protocols: Dict[OperationKind, Callable[..., Awaitable[EntryOutcome]]] = {
            OperationKind.INSERT: self._insert_one,
            OperationKind.UPDATE: self._update_one,
            OperationKind.DELETE: self._delete_one,
        }

    async def reconcile(
        self,
        manifest: BatchManifest,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> BatchResult:
        """Run phase 1 (uploads, if any attachments) then phase 2 (manifest) and aggregate."""
        uploads = None
        if attachments:
            uploads = await self.upload_attachments(attachments)
        outcomes = await self.apply(manifest)
        result = aggregate(outcomes, uploads=uploads)
        for kind in outcomes:
            section = result.for_kind(kind)
            log.info(
                "reconcile %s: %d ok, %d failed",
                kind.value, len(section.success), len(section.failure),
            )
        return result

    async def upload_attachments(self, attachments: Sequence[Attachment]) -> UploadResult:
        """Phase 1: put each attachment under its derived storage key. Failures are collected."""
        result = UploadResult()

        async def upload(att: Attachment) -> None:
            key = storage_key_for(self._prefix, att.filename)
            try:
                await self._call_blob(self._blobs.put(key, att.content, att.content_type), "upload")
            except StorageError as e:
                log.warning("upload failed path=%s: %s", att.filename, e)
                result.failure.append(FailedEntry(file_path=att.filename, error=str(e)))
                return
            result.success.append(key)

        await self._bounded(upload, attachments)
        return result

    async def apply(self, manifest: BatchManifest) -> Dict[OperationKind, List[EntryOutcome]]:
        """Phase 2: apply each present operation kind in order. Absent kinds are not in the result."""
        log.info("apply manifest %s", manifest_summary(manifest))
        outcomes: Dict[OperationKind, List[EntryOutcome]] = {}
        for kind in manifest.kinds():
            protocol = self._protocols[kind]
            outcomes[kind] = await self._bounded(protocol, manifest.entries(kind) or [])
        return outcomes

    async def _bounded(self, fn: Callable[[T], Awaitable], items: Sequence[T]) -> list:
        """Run fn over items with at most self._concurrency in flight."""
        if not items:
            return []
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(item: T):
            async with semaphore:
                return await fn(item)

        return list(await asyncio.gather(*(run(i) for i in items)))

    async def _call_metadata(self, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise TransientError(f"timed out after {self._timeout:g}s") from e

    async def _call_blob(self, coro: Awaitable[T], action: str) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise StorageError(f"storage {action} failed: timed out after {self._timeout:g}s") from e

    async def _insert_one(self, entry: ManifestEntry) -> EntryOutcome:
        try:
            return await self._call_metadata(
                self._metadata.insert(
                    entry.file_path,
                    file_size=entry.file_size,
                    modified_time=entry.modified_time,
                    file_hash=entry.file_hash,
                )
            )
        except (ConflictError, TransientError) as e:
            log.warning("insert failed path=%s: %s", entry.file_path, e)
            return FailedEntry(file_path=entry.file_path, error=str(e))

    async def _update_one(self, entry: ManifestEntry) -> EntryOutcome:
        try:
            return await self._call_metadata(
                self._metadata.update(
                    entry.file_path,
                    file_size=entry.file_size,
                    modified_time=entry.modified_time,
                    file_hash=entry.file_hash,
                )
            )
        except (NotFoundError, TransientError) as e:
            log.warning("update failed path=%s: %s", entry.file_path, e)
            return FailedEntry(file_path=entry.file_path, error=str(e))

    async def _delete_one(self, entry: DeleteEntry) -> EntryOutcome:
        try:
            removed = await self._call_metadata(
                self._metadata.delete_returning_entry(entry.file_path)
            )
        except (NotFoundError, TransientError) as e:
            log.warning("delete failed path=%s: %s", entry.file_path, e)
            return FailedEntry(file_path=entry.file_path, error=str(e))
        try:
            await self._call_blob(self._blobs.delete(removed.storage_key), "delete")
        except StorageError as e:
            # Row is already gone: orphaned blob
            log.error(
                "delete path=%s: metadata removed but blob %s remains: %s",
                entry.file_path, removed.storage_key, e,
            )
            return FailedEntry(file_path=entry.file_path, error=str(e))
        return removed
