"""Batch manifest: operation kinds and entry schemas, plus decoding from raw request data.

Operation-kind keys are exact lowercase (``insert``, ``update``, ``delete``). Any other
top-level key, including a differently-cased one, fails the whole decode.
"""

import json
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pocketdrive.files.errors import MalformedManifest

# Column bounds of the files table: String(2048) path, String(128) hash, BIGINT size and mtime.
MAX_PATH_LENGTH = 2048
MAX_HASH_LENGTH = 128
BIGINT_MIN = -(2 ** 63)
BIGINT_MAX = 2 ** 63 - 1


class OperationKind(str, Enum):
    """Closed set of batch operations, in processing order."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ManifestEntry(BaseModel):
    """Insert/update entry. storage_key is server-derived; a client-sent value is ignored."""

    model_config = ConfigDict(extra="ignore")

    file_path: str = Field(min_length=1, max_length=MAX_PATH_LENGTH)
    file_hash: Optional[str] = Field(default=None, max_length=MAX_HASH_LENGTH)
    file_size: int = Field(ge=0, le=BIGINT_MAX)
    modified_time: int = Field(ge=BIGINT_MIN, le=BIGINT_MAX)


class DeleteEntry(BaseModel):
    """Delete entry: only the path is needed."""

    model_config = ConfigDict(extra="ignore")

    file_path: str = Field(min_length=1, max_length=MAX_PATH_LENGTH)


class BatchManifest(BaseModel):
    """Mapping from operation kind to its ordered entries. Absent kinds stay None."""

    model_config = ConfigDict(extra="forbid")

    insert: Optional[List[ManifestEntry]] = None
    update: Optional[List[ManifestEntry]] = None
    delete: Optional[List[DeleteEntry]] = None

    def entries(self, kind: OperationKind) -> Optional[list]:
        """Entries for kind, or None if the kind was not in the manifest."""
        return getattr(self, kind.value)

    def kinds(self) -> List[OperationKind]:
        """Operation kinds present in the manifest, in processing order."""
        return [k for k in OperationKind if self.entries(k) is not None]


def decode_manifest(raw: Union[str, bytes, None]) -> BatchManifest:
    """
    Decode JSON text (request body or multipart field) into a BatchManifest.
    Raises MalformedManifest if raw is absent, not JSON, or not shaped like a manifest.
    """
    if raw is None:
        raise MalformedManifest("manifest is missing")
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedManifest(f"manifest is not valid UTF-8: {e}") from e
    if not raw.strip():
        raise MalformedManifest("manifest is empty")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedManifest(f"manifest is not valid JSON: {e}") from e
    return manifest_from_data(data)


def manifest_from_data(data: object) -> BatchManifest:
    """Validate already-parsed JSON data as a BatchManifest."""
    if not isinstance(data, dict):
        raise MalformedManifest("manifest must be a JSON object")
    for key, value in data.items():
        if value is None:
            raise MalformedManifest(f"operation {key!r} must be a list")
    try:
        return BatchManifest.model_validate(data)
    except ValidationError as e:
        raise MalformedManifest(_describe(e)) from e


def _describe(e: ValidationError) -> str:
    """Short one-line summary of the first few validation errors."""
    parts: List[str] = []
    for err in e.errors()[:3]:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "invalid manifest: " + "; ".join(parts)


def manifest_summary(manifest: BatchManifest) -> Dict[str, int]:
    """Entry counts per present operation kind (for logging)."""
    return {k.value: len(manifest.entries(k) or []) for k in manifest.kinds()}
