"""Timestamped backup rotation for the hash cache file."""

from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .errors import CacheWriteError

__all__ = ["backup_cache", "prune_backups", "list_backups"]

_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


def list_backups(cache_path: Path, *, suffix: str = ".bak") -> list[Path]:
    """Return existing backups for ``cache_path``, oldest first."""

    def _candidates() -> Iterator[Path]:
        prefix = f"{cache_path.name}."
        for candidate in cache_path.parent.glob(f"{cache_path.name}.*{suffix}"):
            if candidate.name.startswith(prefix):
                yield candidate

    # Timestamps sort lexically; fall back to mtime only to break ties.
    return sorted(
        _candidates(),
        key=lambda path: (path.name, path.stat().st_mtime_ns),
    )


def backup_cache(
    cache_path: Path,
    *,
    retention: int,
    suffix: str = ".bak",
    timestamp: datetime | None = None,
) -> Path | None:
    """Copy ``cache_path`` aside before it is overwritten.

    Returns the backup path, or ``None`` when there is nothing to back up or
    retention is disabled.

    Raises:
        CacheWriteError: If copying or pruning fails.
    """

    if retention <= 0 or not cache_path.exists():
        return None

    moment = timestamp or datetime.now(timezone.utc)
    label = moment.strftime(_TIMESTAMP_FORMAT)
    destination = cache_path.with_name(f"{cache_path.name}.{label}{suffix}")
    try:
        shutil.copy2(cache_path, destination)
    except OSError as exc:
        raise CacheWriteError(
            f"Failed backing up hash cache to {destination}: {exc}"
        ) from exc

    prune_backups(cache_path, retention=retention, suffix=suffix)
    return destination


def prune_backups(
    cache_path: Path,
    *,
    retention: int,
    suffix: str = ".bak",
) -> list[Path]:
    """Delete all but the newest ``retention`` backups; return the removed."""

    if retention <= 0:
        return []

    backups = list_backups(cache_path, suffix=suffix)
    removed: list[Path] = []
    for path in backups[: max(len(backups) - retention, 0)]:
        try:
            path.unlink()
        except FileNotFoundError:  # pragma: no cover - raced with another prune
            continue
        except OSError as exc:  # pragma: no cover - surfaced at runtime
            raise CacheWriteError(
                f"Failed pruning hash cache backup {path}: {exc}"
            ) from exc
        removed.append(path)
    return removed
