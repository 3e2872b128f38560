"""Build a batch manifest by diffing a local folder against the server's metadata listing.

Local file missing on server -> insert. Present on both but hash, size or mtime differs
-> update. Listed on server but gone locally -> delete. Content for inserts and updates
is sent as attachments in the same request.
"""

import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

log = logging.getLogger(__name__)

# System / file-manager metadata files: never synced.
SYNC_IGNORE_BASENAMES: frozenset = frozenset({
    ".directory",   # KDE Dolphin view settings
    "Thumbs.db",    # Windows thumbnail cache
    "Desktop.ini",  # Windows folder customisation
    ".DS_Store",    # macOS Finder metadata
})

_HASH_CHUNK = 1024 * 1024


def _is_ignored(path_str: str) -> bool:
    """True if the path should be excluded from sync (ignore list or .git)."""
    normalized = path_str.replace("\\", "/")
    if "/.git/" in normalized or normalized.startswith(".git/"):
        return True
    parts = normalized.split("/")
    return parts[-1] in SYNC_IGNORE_BASENAMES if parts else False


def compute_hash(path: Path) -> str:
    """SHA-256 hex digest of a file, read in chunks."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def scan_local(root: Path) -> Dict[str, Dict[str, Any]]:
    """
    Describe every file under root as a manifest entry, keyed by relative path
    (forward slashes). Unreadable files are skipped.
    """
    out: Dict[str, Dict[str, Any]] = {}
    try:
        for f in root.rglob("*"):
            if not f.is_file():
                continue
            try:
                rel = str(f.relative_to(root)).replace("\\", "/")
                if _is_ignored(rel):
                    continue
                st = f.stat()
                out[rel] = {
                    "file_path": rel,
                    "file_hash": compute_hash(f),
                    "file_size": st.st_size,
                    "modified_time": int(st.st_mtime),
                }
            except (OSError, ValueError) as e:
                log.debug("scan_local skip %s: %s", f, e)
                continue
    except OSError as e:
        log.warning("scan_local failed under %s: %s", root, e)
    return out


def _changed(local: Dict[str, Any], remote: Dict[str, Any]) -> bool:
    if local.get("file_hash") and remote.get("file_hash"):
        if local["file_hash"] != remote["file_hash"]:
            return True
    return (
        local["file_size"] != remote.get("file_size")
        or local["modified_time"] != remote.get("modified_time")
    )


def build_manifest(
    root: Path,
    remote: Iterable[Dict[str, Any]],
    local: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Diff local files against the remote listing. Returns only non-empty operation
    kinds, e.g. {"insert": [...], "delete": [...]}.
    """
    local = scan_local(root) if local is None else local
    remote_by_path = {item["file_path"]: item for item in remote}
    insert: List[Dict[str, Any]] = []
    update: List[Dict[str, Any]] = []
    for path in sorted(local):
        entry = local[path]
        if path not in remote_by_path:
            insert.append(entry)
        elif _changed(entry, remote_by_path[path]):
            update.append(entry)
    delete = [
        {"file_path": path}
        for path in sorted(remote_by_path)
        if path not in local and not _is_ignored(path)
    ]
    manifest: Dict[str, List[Dict[str, Any]]] = {}
    if insert:
        manifest["insert"] = insert
    if update:
        manifest["update"] = update
    if delete:
        manifest["delete"] = delete
    log.info("build_manifest insert=%d update=%d delete=%d", len(insert), len(update), len(delete))
    return manifest


def collect_attachments(root: Path, manifest: Dict[str, List[Dict[str, Any]]]) -> Dict[str, bytes]:
    """Read content for every inserted or updated path (path -> bytes)."""
    out: Dict[str, bytes] = {}
    for kind in ("insert", "update"):
        for entry in manifest.get(kind, []):
            path = entry["file_path"]
            try:
                out[path] = (root / path).read_bytes()
            except OSError as e:
                log.warning("collect_attachments: cannot read %s: %s", path, e)
    return out


def sync_folder(api, root: Path) -> Dict[str, Any]:
    """
    One sync pass: list remote metadata, diff against root, send the manifest with
    content attached. Returns the server's per-operation result ({} if nothing to do).
    """
    remote = api.list_files()
    manifest = build_manifest(root, remote)
    if not manifest:
        log.info("sync_folder: nothing to do under %s", root)
        return {}
    attachments = collect_attachments(root, manifest)
    result = api.sync(manifest, attachments or None)
    for kind, section in result.items():
        for failure in section.get("failure", []):
            log.warning("sync %s failed for %s: %s", kind, failure.get("file_path"), failure.get("error"))
    return result
