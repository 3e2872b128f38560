"""Metadata store gateway: file records keyed by path. One short transaction per call."""

import logging
from typing import List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from pocketdrive.db.session import Database
from pocketdrive.files.errors import ConflictError, NotFoundError, TransientError
from pocketdrive.files.models import FileEntry, FileRecord, storage_key_for

log = logging.getLogger(__name__)

_COLUMNS = (
    FileRecord.path,
    FileRecord.file_hash,
    FileRecord.file_size,
    FileRecord.modified_time,
    FileRecord.storage_key,
)


def _to_entry(row) -> FileEntry:
    return FileEntry(
        file_path=row.path,
        file_hash=row.file_hash,
        file_size=row.file_size,
        modified_time=row.modified_time,
        storage_key=row.storage_key,
    )


class MetadataStore:
    """CRUD on the files table. Integrity violations are conflicts; other driver errors are transient."""

    def __init__(self, database: Database, storage_key_prefix: str = "data/") -> None:
        self._db = database
        self._prefix = storage_key_prefix

    async def insert(
        self,
        path: str,
        file_size: int,
        modified_time: int,
        file_hash: Optional[str] = None,
    ) -> FileEntry:
        """Insert a new row. Raises ConflictError if path exists, TransientError on store failure."""
        stmt = (
            insert(FileRecord)
            .values(
                path=path,
                file_hash=file_hash,
                file_size=file_size,
                modified_time=modified_time,
                storage_key=storage_key_for(self._prefix, path),
            )
            .returning(*_COLUMNS)
        )
        try:
            async with self._db.session() as session:
                row = (await session.execute(stmt)).one()
        except IntegrityError as e:
            log.debug("insert conflict path=%s: %s", path, e.orig)
            raise ConflictError(path) from e
        except (DBAPIError, OSError) as e:
            raise TransientError(e) from e
        log.debug("insert path=%s key=%s", path, row.storage_key)
        return _to_entry(row)

    async def update(
        self,
        path: str,
        file_size: int,
        modified_time: int,
        file_hash: Optional[str] = None,
    ) -> FileEntry:
        """Overwrite hash/size/mtime of an existing row. Raises NotFoundError if no row matches."""
        stmt = (
            update(FileRecord)
            .where(FileRecord.path == path)
            .values(file_hash=file_hash, file_size=file_size, modified_time=modified_time)
            .returning(*_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._db.session() as session:
                row = (await session.execute(stmt)).first()
        except (DBAPIError, OSError) as e:
            raise TransientError(e) from e
        if row is None:
            raise NotFoundError(path)
        log.debug("update path=%s size=%d", path, file_size)
        return _to_entry(row)

    async def delete_returning_entry(self, path: str) -> FileEntry:
        """
        Remove the row and return what it held (including storage_key) in one statement,
        so the caller can then remove the blob. Raises NotFoundError if no row matches.
        """
        stmt = (
            delete(FileRecord)
            .where(FileRecord.path == path)
            .returning(*_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._db.session() as session:
                row = (await session.execute(stmt)).first()
        except (DBAPIError, OSError) as e:
            raise TransientError(e) from e
        if row is None:
            raise NotFoundError(path)
        log.debug("delete path=%s key=%s", path, row.storage_key)
        return _to_entry(row)

    async def list_all(self) -> List[FileEntry]:
        """Full scan ordered by path (no pagination)."""
        try:
            async with self._db.session() as session:
                result = await session.execute(select(*_COLUMNS).order_by(FileRecord.path))
                rows = result.all()
        except (DBAPIError, OSError) as e:
            raise TransientError(e) from e
        return [_to_entry(r) for r in rows]
