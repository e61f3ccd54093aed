"""Per-index shared state for one synchronization run."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from searchsync.core.logging import Logger, get_logger
from searchsync.remote.base import SearchBackend

from .models import SyncMode

__all__ = ["IndexState", "IndexStateRegistry"]

RemoteSnapshot = Mapping[str, Mapping[str, Any]]


@dataclass(slots=True)
class IndexState:
    """Mutable bookkeeping for one destination index.

    Fields are only mutated while ``lock`` is held.
    """

    name: str
    write_target: str | None = None
    using_shadow: bool = False
    remote_snapshot: RemoteSnapshot | None = None
    pending_fetch: asyncio.Task[RemoteSnapshot] | None = field(
        default=None,
        repr=False,
    )
    match_fields: dict[str, None] = field(default_factory=dict)
    declared: set[int] = field(default_factory=set)
    seen_ids: dict[int, frozenset[str]] = field(default_factory=dict)
    failures: list[BaseException] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    @property
    def shadow_name(self) -> str | None:
        return self.write_target if self.using_shadow else None

    def all_seen(self) -> set[str]:
        seen: set[str] = set()
        for ids in self.seen_ids.values():
            seen.update(ids)
        return seen


class IndexStateRegistry:
    """Create and guard :class:`IndexState` entries keyed by index name.

    One registry is built per run and handed to every source task. Entries
    for different indexes are independent; each carries its own lock.
    """

    def __init__(
        self,
        backend: SearchBackend,
        *,
        mode: SyncMode,
        logger: Logger | None = None,
    ) -> None:
        self._backend = backend
        self._mode = mode
        self._logger = logger or get_logger(__name__, component="index-state")
        self._states: dict[str, IndexState] = {}

    def get(self, name: str) -> IndexState:
        state = self._states.get(name)
        if state is None:
            state = IndexState(name=name)
            self._states[name] = state
        return state

    def declare(
        self,
        name: str,
        ordinal: int,
        match_fields: Iterable[str] = (),
    ) -> IndexState:
        """Register a source for ``name`` before any task starts."""

        state = self.get(name)
        state.declared.add(ordinal)
        for field_name in match_fields:
            state.match_fields.setdefault(field_name, None)
        return state

    async def _probe(self, name: str) -> bool:
        try:
            return await self._backend.has_records(name)
        except Exception as exc:
            # A failed probe means the index is not there yet (first run).
            self._logger.info(
                "index-probe-failed",
                index=name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False

    async def resolve_write_target(self, name: str) -> IndexState:
        """Decide once per index where records are written."""

        state = self.get(name)
        async with state.lock:
            if state.write_target is not None:
                return state
            if self._mode.rebuild and await self._probe(name):
                state.write_target = f"{name}{self._mode.shadow_suffix}"
                state.using_shadow = True
            else:
                state.write_target = name
            self._logger.debug(
                "index-write-target",
                index=name,
                write_target=state.write_target,
                using_shadow=state.using_shadow,
            )
        return state

    async def remote_snapshot(self, name: str) -> RemoteSnapshot:
        """Return the remote records of ``name``, fetching at most once.

        The first caller installs the fetch task; concurrent callers await
        that same task. A failed fetch is raised to every waiter and is not
        memoized.
        """

        state = self.get(name)
        async with state.lock:
            if state.remote_snapshot is not None:
                return state.remote_snapshot
            task = state.pending_fetch
            if task is None:
                target = state.write_target or name
                attributes = tuple(state.match_fields) or ("modified",)
                task = asyncio.create_task(
                    self._fetch(state, target, attributes),
                    name=f"fetch-{name}",
                )
                state.pending_fetch = task
        # Shielded so a cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(task)

    async def _fetch(
        self,
        state: IndexState,
        target: str,
        attributes: tuple[str, ...],
    ) -> RemoteSnapshot:
        try:
            hits = await self._backend.browse(target, attributes)
        except BaseException:
            async with state.lock:
                state.pending_fetch = None
            raise
        snapshot = MappingProxyType(dict(hits))
        async with state.lock:
            state.remote_snapshot = snapshot
            state.pending_fetch = None
        self._logger.debug(
            "index-snapshot-fetched",
            index=state.name,
            records=len(snapshot),
            attributes=list(attributes),
        )
        return snapshot

    async def record_seen(
        self,
        name: str,
        ordinal: int,
        object_ids: Iterable[str],
    ) -> None:
        state = self.get(name)
        async with state.lock:
            state.seen_ids[ordinal] = frozenset(object_ids)

    async def mark_failed(self, name: str, error: BaseException) -> None:
        state = self.get(name)
        async with state.lock:
            state.failures.append(error)

    def removal_set(self, name: str, candidates: Iterable[str]) -> list[str]:
        """Return ``candidates`` not re-affirmed by any source, sorted."""

        seen = self.get(name).all_seen()
        return sorted(set(candidates) - seen)
