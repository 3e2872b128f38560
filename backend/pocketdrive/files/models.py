"""File metadata SQLAlchemy model and Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel
from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from pocketdrive.db.session import Base


class FileRecord(Base):
    """One row per stored file. Path is the primary key and the join key to the blob store."""

    __tablename__ = "files"

    path: Mapped[str] = mapped_column(String(2048), primary_key=True)
    file_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    modified_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(4096), nullable=False)


# Pydantic schemas for API
class FileEntry(BaseModel):
    """File metadata as persisted and returned by the API."""

    file_path: str
    file_hash: Optional[str] = None
    file_size: int
    modified_time: int
    storage_key: str


class FailedEntry(BaseModel):
    """One entry that could not be applied."""

    file_path: str
    error: str


def storage_key_for(prefix: str, path: str) -> str:
    """Blob storage key for a file path: prefix + path, unchanged, so distinct paths never share a key."""
    return f"{prefix}{path}"
