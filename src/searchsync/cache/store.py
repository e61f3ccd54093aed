"""Load/save of the persisted ``indexKey -> ID -> hash`` snapshot."""

from __future__ import annotations

import copy
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from searchsync.core.logging import Logger, get_logger

from .backups import backup_cache
from .errors import CacheReadError, CacheWriteError
from .locks import CacheLock, lock_path_for

__all__ = [
    "CACHE_FORMAT_VERSION",
    "HashSnapshot",
    "HashCacheStore",
    "CacheStoreSettings",
    "JsonHashCacheStore",
    "MemoryHashCacheStore",
]

CACHE_FORMAT_VERSION = 1

HashSnapshot = dict[str, dict[str, str]]


@runtime_checkable
class HashCacheStore(Protocol):
    """Persistence collaborator used once at start and once on success."""

    def load(self) -> HashSnapshot:
        """Return the last persisted snapshot, empty when none exists."""

    def save(self, snapshot: Mapping[str, Mapping[str, str]]) -> None:
        """Replace the persisted snapshot with ``snapshot``."""


@dataclass(frozen=True, slots=True)
class CacheStoreSettings:
    """Tuning knobs for :class:`JsonHashCacheStore`."""

    backups_enabled: bool = True
    backup_retention: int = 3
    lock_timeout: float = 5.0
    lock_poll_interval: float = 0.1
    lock_suffix: str = ".lock"
    backup_suffix: str = ".bak"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "CacheStoreSettings":
        """Build settings from a ``[cache]`` config table, ignoring unknowns."""

        if not payload:
            return cls()
        known = {
            key: payload[key]
            for key in (
                "backups_enabled",
                "backup_retention",
                "lock_timeout",
                "lock_poll_interval",
            )
            if key in payload
        }
        return cls(**known)


def _copy_snapshot(snapshot: Mapping[str, Mapping[str, str]]) -> HashSnapshot:
    return {str(key): dict(entries) for key, entries in snapshot.items()}


def _validate_entries(payload: Any, *, path: Path) -> HashSnapshot:
    if not isinstance(payload, dict):
        raise CacheReadError(f"Hash cache at {path} is not a JSON object")
    version = payload.get("version")
    if version != CACHE_FORMAT_VERSION:
        raise CacheReadError(
            f"Unsupported hash cache version {version!r} at {path}"
        )
    entries = payload.get("entries", {})
    if not isinstance(entries, dict):
        raise CacheReadError(f"Hash cache entries at {path} must be an object")

    snapshot: HashSnapshot = {}
    for key, hashes in entries.items():
        if not isinstance(hashes, dict) or not all(
            isinstance(value, str) for value in hashes.values()
        ):
            raise CacheReadError(
                f"Hash cache entry {key!r} at {path} must map IDs to hashes"
            )
        snapshot[key] = dict(hashes)
    return snapshot


class JsonHashCacheStore:
    """JSON file store with lock-guarded atomic writes and backups."""

    def __init__(
        self,
        path: Path,
        *,
        settings: CacheStoreSettings | None = None,
        logger: Logger | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = path
        self._settings = settings or CacheStoreSettings()
        self._logger = logger or get_logger(__name__, component="hash-cache")
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> HashSnapshot:
        path = self._path
        if not path.exists():
            return {}
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CacheReadError(
                f"Failed to read hash cache at {path}: {exc}"
            ) from exc
        if not text.strip():
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CacheReadError(
                f"Malformed hash cache at {path}: {exc}"
            ) from exc
        snapshot = _validate_entries(payload, path=path)
        self._logger.debug(
            "hash-cache-load",
            path=str(path),
            keys=len(snapshot),
        )
        return snapshot

    def save(self, snapshot: Mapping[str, Mapping[str, str]]) -> None:
        path = self._path
        document = {
            "version": CACHE_FORMAT_VERSION,
            "saved_at": self._now().isoformat(),
            "entries": _copy_snapshot(snapshot),
        }
        with self._lock():
            path.parent.mkdir(parents=True, exist_ok=True)
            if self._settings.backups_enabled:
                backup_cache(
                    path,
                    retention=self._settings.backup_retention,
                    suffix=self._settings.backup_suffix,
                    timestamp=self._now(),
                )
            self._replace(path, json.dumps(document, indent=2, sort_keys=True))

        self._logger.info(
            "hash-cache-write",
            path=str(path),
            keys=len(document["entries"]),
            records=sum(len(v) for v in document["entries"].values()),
        )

    def clear(self) -> bool:
        """Delete the cache file; return ``True`` when one was removed."""

        with self._lock():
            try:
                self._path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise CacheWriteError(
                    f"Failed removing hash cache at {self._path}: {exc}"
                ) from exc
        self._logger.info("hash-cache-cleared", path=str(self._path))
        return True

    def _lock(self) -> CacheLock:
        return CacheLock(
            path=lock_path_for(self._path, suffix=self._settings.lock_suffix),
            timeout=self._settings.lock_timeout,
            poll_interval=self._settings.lock_poll_interval,
        )

    @staticmethod
    def _replace(path: Path, payload: str) -> None:
        try:
            handle = tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                delete=False,
            )
        except OSError as exc:
            raise CacheWriteError(
                f"Failed staging hash cache for {path}: {exc}"
            ) from exc

        staged = Path(handle.name)
        try:
            with handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            staged.unlink(missing_ok=True)
            raise CacheWriteError(
                f"Failed staging hash cache for {path}: {exc}"
            ) from exc

        try:
            os.replace(staged, path)
        except OSError as exc:
            staged.unlink(missing_ok=True)
            raise CacheWriteError(
                f"Failed writing hash cache to {path}: {exc}"
            ) from exc


class MemoryHashCacheStore:
    """In-memory store for dry runs and tests."""

    def __init__(
        self,
        initial: Mapping[str, Mapping[str, str]] | None = None,
    ) -> None:
        self.data: HashSnapshot = _copy_snapshot(initial or {})
        self.saves = 0

    def load(self) -> HashSnapshot:
        return copy.deepcopy(self.data)

    def save(self, snapshot: Mapping[str, Mapping[str, str]]) -> None:
        self.data = _copy_snapshot(snapshot)
        self.saves += 1
