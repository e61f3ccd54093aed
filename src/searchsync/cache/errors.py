"""Errors raised by hash cache persistence."""

from __future__ import annotations

from searchsync.errors import SearchSyncError

__all__ = [
    "CacheError",
    "CacheReadError",
    "CacheWriteError",
    "CacheLockError",
    "CacheLockTimeoutError",
]


class CacheError(SearchSyncError):
    """Base error for hash cache operations."""


class CacheReadError(CacheError):
    """Raised when the cache file cannot be read or parsed."""


class CacheWriteError(CacheError):
    """Raised when persisting the cache fails."""


class CacheLockError(CacheError):
    """Raised when the cache lock cannot be managed."""


class CacheLockTimeoutError(CacheLockError):
    """Raised when acquiring the cache lock times out."""
