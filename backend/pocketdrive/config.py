"""Configuration from environment (no hardcoded secrets)."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings from env."""

    model_config = SettingsConfigDict(env_prefix="POCKETDRIVE_", extra="ignore")

    # Metadata store (any async SQLAlchemy URL, e.g. postgresql+asyncpg://...)
    database_url: str = "sqlite+aiosqlite:////data/pocketdrive.db"

    # Blob store (S3 or any S3-compatible endpoint such as MinIO)
    s3_bucket_name: str = "pocket-drive"
    s3_endpoint_url: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_auto_create_bucket: bool = False

    # Presigned read URLs
    presign_ttl_seconds: int = 300

    # Storage key = prefix + file path
    storage_key_prefix: str = "data/"

    # Reconciliation: max entries in flight per operation kind (matches default pool size)
    sync_concurrency: int = 5
    # Per gateway call; a timeout fails that entry only
    store_timeout_seconds: float = 30.0

    # CORS: comma-separated string in env so pydantic-settings does not JSON-decode it
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # Server
    port: int = 8000

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
