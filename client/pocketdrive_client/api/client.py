"""HTTP client for the Pocket Drive backend API."""

import json
import logging
import os
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
MAX_ATTEMPTS = 5
RETRY_STATUSES = (429, 502, 503)


def get_base_url() -> str:
    """Base URL from POCKETDRIVE_URL, else localhost."""
    return os.environ.get("POCKETDRIVE_URL", "").strip() or DEFAULT_BASE_URL


def _retry_delay(response: httpx.Response, attempt: int) -> int:
    """Seconds to wait before retrying: Retry-After on 429, else exponential backoff."""
    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return min(65, int(retry_after))
        return 65
    return 2 * (2 ** attempt)


class PocketDriveAPI:
    """
    Client for the Pocket Drive backend: list metadata, submit batch manifests
    (optionally with file content), and request presigned read URLs.
    """

    def __init__(self, base_url: Optional[str] = None) -> None:
        self._base_url = (base_url or get_base_url()).rstrip("/")
        log.debug("API client base_url=%s", self._base_url)

    def set_base_url(self, base_url: str) -> None:
        """Update the base URL (e.g. after user changes settings)."""
        self._base_url = (base_url or "").rstrip("/")
        log.debug("API client base_url updated to %s", self._base_url)

    def health(self) -> bool:
        """GET /health. True if the server answers ok."""
        try:
            with httpx.Client(timeout=10.0) as client:
                r = client.get(f"{self._base_url}/health")
                return r.status_code == 200
        except httpx.HTTPError as e:
            log.debug("health check failed: %s", e)
            return False

    def list_files(self) -> List[Dict[str, Any]]:
        """GET /api/files/list. Returns [{file_path, file_hash, file_size, modified_time, storage_key}, ...]."""
        log.debug("GET /api/files/list")
        with httpx.Client(timeout=60.0) as client:
            r = client.get(f"{self._base_url}/api/files/list", headers={"Accept": "application/json"})
            r.raise_for_status()
            data = r.json()
            log.debug("list_files returned %d items", len(data))
            return data

    def sync(
        self,
        manifest: Mapping[str, List[Dict[str, Any]]],
        attachments: Optional[Mapping[str, bytes]] = None,
    ) -> Dict[str, Any]:
        """
        POST /api/files/sync. Sends JSON, or multipart (manifest field + one part per
        attachment, filename = file path) when attachments are given. Returns the
        per-operation result. Retries on 429/502/503 and on timeout.
        """
        total = sum(len(b) for b in (attachments or {}).values())
        # Generous timeout for large payloads: 10 min base + 60 sec per MB, cap 30 min
        timeout = 600.0 + min(1200.0, total / (1024 * 1024) * 60)
        log.debug("sync %s attachments=%d bytes=%d", {k: len(v) for k, v in manifest.items()}, len(attachments or {}), total)
        for attempt in range(MAX_ATTEMPTS):
            try:
                with httpx.Client(timeout=timeout) as client:
                    if attachments:
                        r = client.post(
                            f"{self._base_url}/api/files/sync",
                            data={"manifest": json.dumps(manifest)},
                            files=[
                                ("file", (path, body, "application/octet-stream"))
                                for path, body in attachments.items()
                            ],
                        )
                    else:
                        r = client.post(f"{self._base_url}/api/files/sync", json=dict(manifest))
                    if r.status_code in RETRY_STATUSES and attempt < MAX_ATTEMPTS - 1:
                        delay = _retry_delay(r, attempt)
                        log.warning(
                            "Sync: %s %s, retry in %ds (attempt %d/%d)",
                            r.status_code, r.reason_phrase, delay, attempt + 1, MAX_ATTEMPTS,
                        )
                        time.sleep(delay)
                        continue
                    r.raise_for_status()
                    return r.json()
            except httpx.TimeoutException:
                if attempt < MAX_ATTEMPTS - 1:
                    delay = 10 * (attempt + 1)  # 10s, 20s, 30s
                    log.warning("Sync: timeout, retry in %ds (attempt %d/%d)", delay, attempt + 1, MAX_ATTEMPTS)
                    time.sleep(delay)
                    continue
                raise

    def presign(self, key: str) -> Dict[str, Any]:
        """GET /api/files/presign?key=... Returns {url, expires_in_seconds}."""
        log.debug("presign key=%s", key)
        with httpx.Client(timeout=30.0) as client:
            r = client.get(f"{self._base_url}/api/files/presign", params={"key": key})
            r.raise_for_status()
            return r.json()
