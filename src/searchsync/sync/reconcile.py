"""Delete remote records that no source re-affirmed during a run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from searchsync.core.logging import Logger, get_logger
from searchsync.remote.base import SearchBackend

from .models import DiffStrategy, IndexKey
from .state import IndexStateRegistry

__all__ = ["ReconcileReport", "removal_candidates", "reconcile_index"]


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    index: str
    target: str
    deleted: tuple[str, ...] = ()


def removal_candidates(
    registry: IndexStateRegistry,
    name: str,
    strategy: DiffStrategy,
    previous: Mapping[str, Mapping[str, str]] | None = None,
) -> set[str]:
    """Return the IDs that existed before this run for index ``name``.

    Live-diff runs use the remote snapshot fetched during the run; hash-cache
    runs use every prior cache entry whose key belongs to ``name``.
    """

    if strategy is DiffStrategy.LIVE_DIFF:
        snapshot = registry.get(name).remote_snapshot
        return set(snapshot or ())
    if strategy is DiffStrategy.HASH_CACHE:
        candidates: set[str] = set()
        for raw_key, hashes in (previous or {}).items():
            try:
                key = IndexKey.parse(raw_key)
            except ValueError:
                continue
            if key.index == name:
                candidates.update(hashes)
        return candidates
    return set()


async def reconcile_index(
    backend: SearchBackend,
    registry: IndexStateRegistry,
    name: str,
    candidates: Iterable[str],
    *,
    logger: Logger | None = None,
) -> ReconcileReport:
    """Issue a single delete request for the stale records of ``name``."""

    log = logger or get_logger(__name__, index=name)
    state = registry.get(name)
    target = state.write_target or name
    removal = registry.removal_set(name, candidates)
    if not removal:
        log.debug("reconcile-nothing-stale", target=target)
        return ReconcileReport(index=name, target=target)

    task = await backend.delete_records(target, removal)
    await backend.wait_task(task)
    log.info("reconcile-deleted", target=target, deleted=len(removal))
    return ReconcileReport(index=name, target=target, deleted=tuple(removal))
