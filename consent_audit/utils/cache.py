"""Audit result cache.

Static analysis results and finished audit results are persisted
as JSON files under ``.cache/audit/``.  Each
file wraps the payload with the time it was stored and its time to
live so that stale entries are detected (and removed) on read.
"""

from __future__ import annotations

import json
import pathlib
import shutil
import time
from typing import Any, TypeVar

import pydantic

from consent_audit.utils import logger

log = logger.create_logger("AuditCache")

# Root cache directory, one sub-directory per namespace.
_CACHE_ROOT = pathlib.Path.cwd() / ".cache" / "audit"

M = TypeVar("M", bound=pydantic.BaseModel)


class CacheEntry(pydantic.BaseModel):
    """On-disk wrapper around a cached payload."""

    key: str
    stored_at: float
    ttl_seconds: float
    payload: dict[str, Any]

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) - self.stored_at > self.ttl_seconds


def _entry_path(namespace: str, key: str) -> pathlib.Path:
    safe = "".join(c if c.isalnum() or c in ".-" else "_" for c in key.lower())[:100]
    return _CACHE_ROOT / namespace / f"{safe}.json"


def _remove(path: pathlib.Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        log.warn("Failed to remove cache file", {"path": str(path), "error": str(exc)})


def save(namespace: str, key: str, model: pydantic.BaseModel, ttl_seconds: float) -> None:
    """Store *model* under ``namespace/key`` for *ttl_seconds*."""
    path = _entry_path(namespace, key)
    entry = CacheEntry(
        key=key,
        stored_at=time.time(),
        ttl_seconds=ttl_seconds,
        payload=model.model_dump(mode="json"),
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(entry.model_dump_json(), encoding="utf-8")
    except OSError as exc:
        log.warn("Failed to write cache file", {"namespace": namespace, "key": key, "error": str(exc)})
        return
    log.debug("Cache entry saved", {"namespace": namespace, "key": key, "ttl": ttl_seconds})


def load(namespace: str, key: str, model_type: type[M]) -> M | None:
    """Load a cached model.

    Returns ``None`` when there is no entry, the entry has expired or
    the file cannot be validated.  Expired and malformed files are
    deleted.
    """
    path = _entry_path(namespace, key)
    if not path.exists():
        return None

    try:
        entry = CacheEntry.model_validate(json.loads(path.read_text(encoding="utf-8")))
        if entry.is_expired():
            log.debug("Cache entry expired", {"namespace": namespace, "key": key})
            _remove(path)
            return None
        return model_type.model_validate(entry.payload)
    except (OSError, ValueError) as exc:
        log.warn("Failed to read cache entry, removing", {"namespace": namespace, "key": key, "error": str(exc)})
        _remove(path)
        return None


def delete(namespace: str, key: str) -> bool:
    """Remove one entry.  Returns whether a file existed."""
    path = _entry_path(namespace, key)
    if not path.exists():
        return False
    _remove(path)
    return True


def clear_all() -> int:
    """Delete every file in all cache namespaces.

    Returns the number of files removed.  The namespace directories
    themselves are recreated (empty).
    """
    if not _CACHE_ROOT.exists():
        log.info("No cache directory to clear", {"path": str(_CACHE_ROOT)})
        return 0

    removed = 0
    for child in sorted(_CACHE_ROOT.iterdir()):
        if child.is_dir():
            count = sum(1 for f in child.iterdir() if f.is_file())
            if count:
                shutil.rmtree(child)
                child.mkdir(parents=True, exist_ok=True)
                removed += count
        elif child.is_file():
            child.unlink()
            removed += 1

    log.success("Audit cache cleared", {"filesRemoved": removed})
    return removed
