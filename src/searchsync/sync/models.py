"""Typed representations shared by the synchronization engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from searchsync.errors import ConfigError

if TYPE_CHECKING:
    from searchsync.core.config import SyncSettings

__all__ = [
    "OBJECT_ID",
    "Record",
    "DiffStrategy",
    "SyncMode",
    "SourceSpec",
    "IndexKey",
    "SourceReport",
    "IndexReport",
    "SyncReport",
]

OBJECT_ID = "objectID"

# Records are opaque mappings; only ``objectID`` is interpreted by the engine.
Record = Mapping[str, Any]


class DiffStrategy(StrEnum):
    """How a run decides which records need to be written."""

    FULL = "full"
    LIVE_DIFF = "live-diff"
    HASH_CACHE = "hash-cache"


@dataclass(frozen=True, slots=True)
class SyncMode:
    """Run-wide switches selecting the diff strategy and batch size.

    Example:
        >>> SyncMode(enable_partial_updates=True).strategy
        <DiffStrategy.LIVE_DIFF: 'live-diff'>
        >>> SyncMode().rebuild
        True
    """

    enable_partial_updates: bool = False
    enable_hash_cache: bool = False
    chunk_size: int = 1000
    shadow_suffix: str = "_tmp"

    def __post_init__(self) -> None:
        if (
            not isinstance(self.chunk_size, int)
            or isinstance(self.chunk_size, bool)
            or self.chunk_size < 1
        ):
            raise ConfigError(
                f"chunk_size must be a positive integer (got {self.chunk_size!r})"
            )
        if self.enable_partial_updates and self.enable_hash_cache:
            raise ConfigError(
                "enable_partial_updates and enable_hash_cache are mutually "
                "exclusive"
            )
        if not self.shadow_suffix.strip():
            raise ConfigError("shadow_suffix cannot be blank")

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "SyncMode":
        """Build the engine-facing mode from the ``[sync]`` config table."""

        return cls(
            enable_partial_updates=settings.enable_partial_updates,
            enable_hash_cache=settings.enable_hash_cache,
            chunk_size=settings.chunk_size,
            shadow_suffix=settings.shadow_suffix,
        )

    @property
    def strategy(self) -> DiffStrategy:
        if self.enable_hash_cache:
            return DiffStrategy.HASH_CACHE
        if self.enable_partial_updates:
            return DiffStrategy.LIVE_DIFF
        return DiffStrategy.FULL

    @property
    def rebuild(self) -> bool:
        """Return ``True`` when every record is rewritten from scratch."""

        return self.strategy is DiffStrategy.FULL


def _normalize_match_fields(value: Iterable[str] | None) -> tuple[str, ...]:
    if value is None or isinstance(value, str):
        raise ConfigError(
            "matchFields has to be a non-empty list of field names"
        )
    fields: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(
                f"matchFields entries must be non-blank strings (got {item!r})"
            )
        fields.append(item.strip())
    if not fields:
        raise ConfigError(
            "matchFields has to be a non-empty list of field names"
        )
    return tuple(dict.fromkeys(fields))


@dataclass(frozen=True, slots=True)
class SourceSpec:
    """One logical producer of records bound to a destination index."""

    index_name: str
    records: Sequence[Record]
    match_fields: tuple[str, ...] = ("modified",)
    settings: Mapping[str, Any] | None = None
    label: str | None = None

    def __post_init__(self) -> None:
        name = (self.index_name or "").strip()
        if not name:
            raise ConfigError("Every source needs a destination index name")
        object.__setattr__(self, "index_name", name)
        object.__setattr__(self, "records", tuple(self.records))
        object.__setattr__(
            self,
            "match_fields",
            _normalize_match_fields(self.match_fields),
        )
        if self.settings is not None:
            if not isinstance(self.settings, Mapping):
                raise ConfigError(
                    f"settings for index {name!r} must be a mapping"
                )
            object.__setattr__(
                self,
                "settings",
                MappingProxyType(dict(self.settings)),
            )


@dataclass(frozen=True, slots=True, order=True)
class IndexKey:
    """Cache identity of a source: destination index plus source ordinal.

    Example:
        >>> str(IndexKey("docs", 2))
        'docs#2'
        >>> IndexKey.parse("team#docs#0")
        IndexKey(index='team#docs', ordinal=0)
    """

    index: str
    ordinal: int

    def __str__(self) -> str:
        return f"{self.index}#{self.ordinal}"

    @classmethod
    def parse(cls, raw: str) -> "IndexKey":
        index, sep, ordinal = raw.rpartition("#")
        if not sep or not index:
            raise ValueError(f"Malformed index key: {raw!r}")
        try:
            return cls(index=index, ordinal=int(ordinal))
        except ValueError as exc:
            raise ValueError(f"Malformed index key: {raw!r}") from exc


@dataclass(slots=True)
class SourceReport:
    """Outcome of a single source's upload phase."""

    index_name: str
    ordinal: int
    total: int = 0
    changed: int = 0
    batches: int = 0
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class IndexReport:
    """Outcome of the per-index finalization phase."""

    index_name: str
    write_target: str | None = None
    swapped: bool = False
    deleted: int = 0
    skipped: bool = False
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


@dataclass(slots=True)
class SyncReport:
    """Aggregated outcome of an engine run."""

    strategy: DiffStrategy
    sources: list[SourceReport] = field(default_factory=list)
    indexes: list[IndexReport] = field(default_factory=list)
    persisted: bool = False

    @property
    def ok(self) -> bool:
        return all(report.ok for report in self.sources) and all(
            report.error is None for report in self.indexes
        )

    @property
    def first_error(self) -> BaseException | None:
        for source in self.sources:
            if source.error is not None:
                return source.error
        for index in self.indexes:
            if index.error is not None:
                return index.error
        return None

    @property
    def changed(self) -> int:
        return sum(report.changed for report in self.sources)

    @property
    def batches(self) -> int:
        return sum(report.batches for report in self.sources)

    @property
    def deleted(self) -> int:
        return sum(report.deleted for report in self.indexes)
