"""File API routes: batch sync, list metadata, presigned read URLs."""

import logging
from typing import Annotated, List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from pocketdrive.context import StoreContext, get_context
from pocketdrive.files.errors import StorageError, TransientError
from pocketdrive.files.manifest import BatchManifest, decode_manifest
from pocketdrive.files.models import FileEntry
from pocketdrive.files.reconcile import Attachment
from pocketdrive.limiter import limiter

router = APIRouter(prefix="/api/files", tags=["files"])
log = logging.getLogger(__name__)

MANIFEST_FIELD = "manifest"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _read_multipart(request: Request) -> Tuple[Union[str, bytes, None], List[Attachment]]:
    """
    Split a multipart body into the manifest text and the attached file parts.
    Each file part's filename is the file path it belongs to.
    """
    form = await request.form()
    manifest_raw: Union[str, bytes, None] = None
    attachments: List[Attachment] = []
    for name, value in form.multi_items():
        if name == MANIFEST_FIELD:
            manifest_raw = await value.read() if isinstance(value, UploadFile) else value
            continue
        if isinstance(value, UploadFile):
            attachments.append(
                Attachment(
                    filename=value.filename or name,
                    content=await value.read(),
                    content_type=value.content_type,
                )
            )
    return manifest_raw, attachments


@router.post("/sync", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit("600/minute")
async def sync_batch(
    request: Request,
    ctx: Annotated[StoreContext, Depends(get_context)],
) -> JSONResponse:
    """
    Apply a batch manifest. Body: JSON manifest, or multipart with a 'manifest' field
    plus file parts. Partial failures still return 202; see per-entry failure lists.
    """
    content_type = request.headers.get("content-type", "")
    attachments: List[Attachment] = []
    if content_type.startswith("multipart/form-data"):
        manifest_raw, attachments = await _read_multipart(request)
    else:
        manifest_raw = await request.body()
    # Raises MalformedManifest before any store call
    manifest: BatchManifest = decode_manifest(manifest_raw)
    log.info("sync_batch attachments=%d", len(attachments))
    result = await ctx.engine().reconcile(manifest, attachments)
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=result.to_payload())


@router.get("/list", response_model=List[FileEntry])
@limiter.limit("60/minute")
async def list_files(
    request: Request,
    ctx: Annotated[StoreContext, Depends(get_context)],
):
    """List all file metadata (no pagination)."""
    try:
        entries = await ctx.metadata.list_all()
    except TransientError as e:
        log.error("list_files failed: %s", e)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(e))
    log.info("list_files count=%d", len(entries))
    return entries


@router.get("/presign")
@limiter.limit("60/minute")
async def presign(
    request: Request,
    ctx: Annotated[StoreContext, Depends(get_context)],
    key: Optional[str] = None,
):
    """Presigned GET URL for a storage key. The object is not checked for existence."""
    if not key or not key.strip():
        return _error(status.HTTP_400_BAD_REQUEST, "Query parameter 'key' is required")
    try:
        url = await ctx.blobs.presign_read(key)
    except StorageError as e:
        return _error(status.HTTP_502_BAD_GATEWAY, str(e))
    return {"url": url, "expires_in_seconds": ctx.blobs.presign_ttl_seconds}
