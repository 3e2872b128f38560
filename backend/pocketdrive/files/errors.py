"""Error taxonomy for batch reconciliation."""

from typing import Optional


class PocketDriveError(Exception):
    """Base exception for Pocket Drive."""


class MalformedManifest(PocketDriveError):
    """Batch payload missing, not JSON, or not shaped like a manifest. Fatal to the whole batch."""


class ConflictError(PocketDriveError):
    """Insert on a path that already exists."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__("file already exists in DB")


class NotFoundError(PocketDriveError):
    """Update or delete on a path that has no row."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__("file not found in DB")


class TransientError(PocketDriveError):
    """Metadata store unreachable or timed out."""

    def __init__(self, cause: object) -> None:
        self.cause = cause
        super().__init__(f"database unavailable: {cause}")


class StorageError(PocketDriveError):
    """Blob store unreachable or the operation failed. Carries the underlying cause."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
