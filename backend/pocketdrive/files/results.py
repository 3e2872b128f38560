"""Result aggregation: per-kind success/failure lists assembled into the batch response."""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from pocketdrive.files.manifest import OperationKind
from pocketdrive.files.models import FailedEntry, FileEntry

EntryOutcome = Union[FileEntry, FailedEntry]


class OperationResult(BaseModel):
    success: List[FileEntry] = Field(default_factory=list)
    failure: List[FailedEntry] = Field(default_factory=list)


class UploadResult(BaseModel):
    """Phase-1 attachment uploads: storage keys written, and paths that failed."""

    success: List[str] = Field(default_factory=list)
    failure: List[FailedEntry] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Response body for one batch. Kinds absent from the manifest stay None and are omitted."""

    insert: Optional[OperationResult] = None
    update: Optional[OperationResult] = None
    delete: Optional[OperationResult] = None
    uploads: Optional[UploadResult] = None

    def for_kind(self, kind: OperationKind) -> Optional[OperationResult]:
        return getattr(self, kind.value)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict without the absent sections (entry fields like file_hash keep their nulls)."""
        out: Dict[str, Any] = {}
        for kind in OperationKind:
            result = self.for_kind(kind)
            if result is not None:
                out[kind.value] = result.model_dump()
        if self.uploads is not None:
            out["uploads"] = self.uploads.model_dump()
        return out


def collect(outcomes: Sequence[EntryOutcome]) -> OperationResult:
    """Split one kind's outcomes into success and failure lists."""
    result = OperationResult()
    for outcome in outcomes:
        if isinstance(outcome, FailedEntry):
            result.failure.append(outcome)
        else:
            result.success.append(outcome)
    return result


def aggregate(
    outcomes: Mapping[OperationKind, Sequence[EntryOutcome]],
    uploads: Optional[UploadResult] = None,
) -> BatchResult:
    """Assemble the response from per-kind outcomes. Only kinds present in outcomes appear."""
    sections = {kind.value: collect(items) for kind, items in outcomes.items()}
    return BatchResult(**sections, uploads=uploads)
