"""Change detection strategies deciding which records need writing."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from searchsync.errors import MissingIdentifierError

from .models import OBJECT_ID, Record

__all__ = [
    "ChangeSet",
    "ChangeDetector",
    "FullDetector",
    "HashCacheDetector",
    "LiveDiffDetector",
    "content_hash",
    "ensure_identifiers",
]

_MISSING = object()


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return str(value)


def content_hash(record: Record) -> str:
    """Return a deterministic SHA-256 over the record's canonical JSON.

    Key order does not matter:

    >>> content_hash({"a": 1, "b": 2}) == content_hash({"b": 2, "a": 1})
    True
    """

    serialized = json.dumps(
        record,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def ensure_identifiers(records: Sequence[Record], *, index: str) -> None:
    """Fail fast when any record lacks a non-empty string ``objectID``.

    Raises:
        MissingIdentifierError: Naming the first offending position.
    """

    for position, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise MissingIdentifierError(index=index, position=position)
        object_id = record.get(OBJECT_ID)
        if not isinstance(object_id, str) or not object_id:
            raise MissingIdentifierError(index=index, position=position)


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Records to write plus the bookkeeping needed for deletions."""

    changed: tuple[Record, ...]
    seen_ids: frozenset[str]
    hashes: dict[str, str] | None = field(default=None)


class ChangeDetector(Protocol):
    def detect(self, records: Sequence[Record]) -> ChangeSet: ...


class FullDetector:
    """Every record is written; used for rebuilds."""

    def detect(self, records: Sequence[Record]) -> ChangeSet:
        return ChangeSet(
            changed=tuple(records),
            seen_ids=frozenset(record[OBJECT_ID] for record in records),
        )


class HashCacheDetector:
    """Compare content hashes against the previous run's snapshot."""

    def __init__(self, previous: Mapping[str, str] | None = None) -> None:
        self._previous = dict(previous or {})

    def detect(self, records: Sequence[Record]) -> ChangeSet:
        hashes: dict[str, str] = {}
        changed: list[Record] = []
        for record in records:
            object_id = record[OBJECT_ID]
            digest = content_hash(record)
            hashes[object_id] = digest
            if self._previous.get(object_id) != digest:
                changed.append(record)
        return ChangeSet(
            changed=tuple(changed),
            seen_ids=frozenset(hashes),
            hashes=hashes,
        )


class LiveDiffDetector:
    """Compare match fields against what the remote index holds."""

    def __init__(
        self,
        remote: Mapping[str, Mapping[str, Any]],
        match_fields: Sequence[str],
    ) -> None:
        self._remote = remote
        self._fields = tuple(match_fields)

    def _differs(self, record: Record) -> bool:
        existing = self._remote.get(record[OBJECT_ID])
        if existing is None:
            return True
        return any(
            existing.get(name, _MISSING) != record.get(name, _MISSING)
            for name in self._fields
        )

    def detect(self, records: Sequence[Record]) -> ChangeSet:
        if not self._remote:
            return FullDetector().detect(records)
        return ChangeSet(
            changed=tuple(record for record in records if self._differs(record)),
            seen_ids=frozenset(record[OBJECT_ID] for record in records),
        )
