"""Hash cache persistence exports."""

from __future__ import annotations

from .errors import (
    CacheError,
    CacheLockError,
    CacheLockTimeoutError,
    CacheReadError,
    CacheWriteError,
)
from .store import (
    CACHE_FORMAT_VERSION,
    CacheStoreSettings,
    HashCacheStore,
    HashSnapshot,
    JsonHashCacheStore,
    MemoryHashCacheStore,
)

__all__ = [
    "CACHE_FORMAT_VERSION",
    "CacheError",
    "CacheLockError",
    "CacheLockTimeoutError",
    "CacheReadError",
    "CacheStoreSettings",
    "CacheWriteError",
    "HashCacheStore",
    "HashSnapshot",
    "JsonHashCacheStore",
    "MemoryHashCacheStore",
]
