"""Typed error hierarchy shared across :mod:`searchsync`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from searchsync.sync.models import SyncReport

__all__ = [
    "SearchSyncError",
    "ConfigError",
    "DataError",
    "MissingIdentifierError",
    "RemoteError",
    "RemoteRequestError",
    "RemoteRetryableError",
    "RemoteTaskError",
    "SyncFailedError",
]


class SearchSyncError(RuntimeError):
    """Base error for synchronization failures."""


class ConfigError(SearchSyncError):
    """Raised when configuration is unusable; no remote call has been made."""


class DataError(SearchSyncError):
    """Raised when a source produced records that cannot be indexed."""


class MissingIdentifierError(DataError):
    """Raised when a record lacks a usable ``objectID``."""

    def __init__(self, *, index: str, position: int) -> None:
        super().__init__(
            f"Record {position} for index {index!r} does not have an "
            "'objectID' key"
        )
        self.index = index
        self.position = position


@dataclass(slots=True, eq=False)
class RemoteError(SearchSyncError):
    """Base error raised by search backends."""

    message: str
    operation: str
    index: str | None = None
    status_code: int | None = None

    def __post_init__(self) -> None:
        RuntimeError.__init__(self, self.message)


@dataclass(slots=True, eq=False)
class RemoteRequestError(RemoteError):
    """Raised for non-retryable request failures."""


@dataclass(slots=True, eq=False)
class RemoteRetryableError(RemoteError):
    """Raised when transport or server errors outlast the retry budget."""

    attempts: int = 0


@dataclass(slots=True, eq=False)
class RemoteTaskError(RemoteError):
    """Raised when a remote task reports an unexpected status."""

    task_id: int | None = None


class SyncFailedError(SearchSyncError):
    """Raised when at least one source or index cleanup failed."""

    def __init__(self, message: str, *, report: SyncReport) -> None:
        super().__init__(message)
        self.report = report
