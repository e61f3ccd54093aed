"""Coordinate sources, uploads, cutover and cleanup for one sync run."""

from __future__ import annotations

import asyncio
import uuid
from typing import Mapping, Sequence

from searchsync.cache.store import HashCacheStore, HashSnapshot
from searchsync.core.logging import Logger, bound_context, get_logger
from searchsync.errors import ConfigError, SyncFailedError
from searchsync.remote.base import SearchBackend

from .activity import Activity, ProgressReporter
from .batches import apply_settings, upload_batches
from .changes import (
    ChangeDetector,
    FullDetector,
    HashCacheDetector,
    LiveDiffDetector,
    ensure_identifiers,
)
from .models import (
    DiffStrategy,
    IndexKey,
    IndexReport,
    SourceReport,
    SourceSpec,
    SyncMode,
    SyncReport,
)
from .reconcile import reconcile_index, removal_candidates
from .state import IndexStateRegistry
from .swap import IndexSwap

__all__ = ["SyncEngine", "merge_snapshot"]


def merge_snapshot(
    previous: Mapping[str, Mapping[str, str]],
    fresh: Mapping[str, Mapping[str, str]],
    participating: set[str],
) -> HashSnapshot:
    """Build the snapshot persisted after a successful hash-cache run.

    Entries of indexes that took no part in the run are carried over; every
    prior key of a participating index is replaced by ``fresh``.

    Example:
        >>> merge_snapshot(
        ...     {"a#0": {"1": "x"}, "b#1": {"2": "y"}},
        ...     {"a#0": {"3": "z"}},
        ...     {"a"},
        ... )
        {'b#1': {'2': 'y'}, 'a#0': {'3': 'z'}}
    """

    merged: HashSnapshot = {}
    for raw_key, hashes in previous.items():
        try:
            index = IndexKey.parse(raw_key).index
        except ValueError:
            index = None
        if index in participating:
            continue
        merged[raw_key] = dict(hashes)
    for raw_key, hashes in fresh.items():
        merged[raw_key] = dict(hashes)
    return merged


class SyncEngine:
    """Run every source concurrently and finalize each destination index.

    Example:
        >>> from searchsync.remote import MemoryBackend
        >>> engine = SyncEngine(MemoryBackend(), SyncMode())
        >>> report = asyncio.run(
        ...     engine.run([SourceSpec("docs", [{"objectID": "1"}])])
        ... )
        >>> report.batches
        1
    """

    def __init__(
        self,
        backend: SearchBackend,
        mode: SyncMode,
        *,
        store: HashCacheStore | None = None,
        reporter: ProgressReporter | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._backend = backend
        self._mode = mode
        self._store = store
        self._logger = logger or get_logger(__name__, component="sync-engine")
        self._reporter = reporter or Activity("searchsync", logger=self._logger)

    @property
    def mode(self) -> SyncMode:
        return self._mode

    def _validate(self, sources: Sequence[SourceSpec]) -> list[SourceSpec]:
        if isinstance(sources, (str, bytes)):
            raise ConfigError("sources must be a sequence of SourceSpec")
        validated = list(sources)
        for position, source in enumerate(validated):
            if not isinstance(source, SourceSpec):
                raise ConfigError(
                    f"Source {position} is not a SourceSpec "
                    f"(got {type(source).__name__})"
                )
        if self._mode.strategy is DiffStrategy.HASH_CACHE and self._store is None:
            raise ConfigError("enable_hash_cache requires a hash cache store")
        return validated

    async def run(self, sources: Sequence[SourceSpec]) -> SyncReport:
        """Synchronize ``sources`` and return per-source and per-index outcomes.

        Raises:
            ConfigError: Before any remote call when the setup is invalid.
            SyncFailedError: When any source or index finalization failed;
                chained from the first failure. The hash cache is not saved.
        """

        validated = self._validate(sources)
        strategy = self._mode.strategy
        with bound_context(run_id=uuid.uuid4().hex[:12]):
            self._reporter.start()
            try:
                return await self._run(validated, strategy)
            finally:
                self._reporter.end()

    async def _run(
        self,
        sources: list[SourceSpec],
        strategy: DiffStrategy,
    ) -> SyncReport:
        registry = IndexStateRegistry(
            self._backend,
            mode=self._mode,
            logger=self._logger,
        )
        swaps: dict[str, IndexSwap] = {}
        for ordinal, source in enumerate(sources):
            registry.declare(source.index_name, ordinal, source.match_fields)
            if source.index_name not in swaps:
                swaps[source.index_name] = IndexSwap(
                    self._backend,
                    registry,
                    source.index_name,
                    logger=self._logger.bind(index=source.index_name),
                )

        previous: HashSnapshot = {}
        if strategy is DiffStrategy.HASH_CACHE:
            assert self._store is not None
            previous = await asyncio.to_thread(self._store.load)

        self._logger.info(
            "sync-start",
            strategy=str(strategy),
            sources=len(sources),
            indexes=list(swaps),
            chunk_size=self._mode.chunk_size,
        )
        self._reporter.report(f"{len(sources)} queries to index")

        fresh: dict[str, dict[str, str]] = {}
        source_reports = await asyncio.gather(
            *(
                self._sync_source(registry, swaps, ordinal, source, previous, fresh)
                for ordinal, source in enumerate(sources)
            )
        )
        index_reports = await asyncio.gather(
            *(
                self._finalize_index(registry, swap, strategy, previous)
                for swap in swaps.values()
            )
        )
        report = SyncReport(
            strategy=strategy,
            sources=list(source_reports),
            indexes=list(index_reports),
        )

        if not report.ok:
            first = report.first_error
            message = f"Synchronization failed: {first}"
            self._reporter.error(message, first)
            self._logger.error(
                "sync-failed",
                failed_sources=[
                    item.ordinal for item in report.sources if not item.ok
                ],
                failed_indexes=[
                    item.index_name
                    for item in report.indexes
                    if item.error is not None
                ],
            )
            raise SyncFailedError(message, report=report) from first

        if strategy is DiffStrategy.HASH_CACHE:
            assert self._store is not None
            snapshot = merge_snapshot(previous, fresh, set(swaps))
            await asyncio.to_thread(self._store.save, snapshot)
            report.persisted = True

        self._logger.info(
            "sync-complete",
            changed=report.changed,
            batches=report.batches,
            deleted=report.deleted,
            persisted=report.persisted,
        )
        return report

    async def _detector(
        self,
        registry: IndexStateRegistry,
        source: SourceSpec,
        ordinal: int,
        previous: HashSnapshot,
    ) -> ChangeDetector:
        strategy = self._mode.strategy
        if strategy is DiffStrategy.HASH_CACHE:
            key = str(IndexKey(source.index_name, ordinal))
            return HashCacheDetector(previous.get(key))
        if strategy is DiffStrategy.LIVE_DIFF:
            remote = await registry.remote_snapshot(source.index_name)
            self._reporter.report(
                f"query {ordinal}: found {len(remote)} existing records"
            )
            return LiveDiffDetector(remote, source.match_fields)
        return FullDetector()

    async def _sync_source(
        self,
        registry: IndexStateRegistry,
        swaps: Mapping[str, IndexSwap],
        ordinal: int,
        source: SourceSpec,
        previous: HashSnapshot,
        fresh: dict[str, dict[str, str]],
    ) -> SourceReport:
        name = source.index_name
        label = f"query {ordinal}"
        report = SourceReport(
            index_name=name,
            ordinal=ordinal,
            total=len(source.records),
        )
        log = self._logger.bind(index=name, ordinal=ordinal)
        try:
            self._reporter.report(f"{label}: {report.total} records")
            ensure_identifiers(source.records, index=name)
            index_state = await swaps[name].begin()
            target = index_state.write_target or name

            detector = await self._detector(registry, source, ordinal, previous)
            changes = detector.detect(source.records)
            report.changed = len(changes.changed)
            if self._mode.strategy is not DiffStrategy.FULL:
                self._reporter.report(
                    f"{label}: partial updates "
                    f"[insert/update: {report.changed}, total: {report.total}]"
                )

            uploaded = await upload_batches(
                self._backend,
                target,
                changes.changed,
                self._mode.chunk_size,
            )
            report.batches = uploaded.batches
            self._reporter.report(f"{label}: uploaded in {uploaded.batches} jobs")

            if source.settings:
                await apply_settings(self._backend, target, source.settings)

            await registry.record_seen(name, ordinal, changes.seen_ids)
            if changes.hashes is not None:
                fresh[str(IndexKey(name, ordinal))] = changes.hashes
        except Exception as exc:
            report.error = exc
            await registry.mark_failed(name, exc)
            log.error(
                "sync-source-failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._reporter.error(f"{label}: failed", exc)
            return report

        log.info(
            "sync-source-complete",
            target=target,
            total=report.total,
            changed=report.changed,
            batches=report.batches,
        )
        return report

    async def _finalize_index(
        self,
        registry: IndexStateRegistry,
        swap: IndexSwap,
        strategy: DiffStrategy,
        previous: HashSnapshot,
    ) -> IndexReport:
        name = swap.name
        index_state = registry.get(name)
        report = IndexReport(index_name=name, write_target=index_state.write_target)
        log = self._logger.bind(index=name)
        if index_state.failed:
            report.skipped = True
            log.warning(
                "sync-index-skipped",
                failures=len(index_state.failures),
                using_shadow=index_state.using_shadow,
            )
            return report

        try:
            if self._mode.rebuild:
                report.swapped = await swap.cutover()
                if report.swapped:
                    self._reporter.report(
                        f"moving copied index to main index {name}"
                    )
            else:
                candidates = removal_candidates(registry, name, strategy, previous)
                result = await reconcile_index(
                    self._backend,
                    registry,
                    name,
                    candidates,
                    logger=log,
                )
                report.deleted = len(result.deleted)
                if result.deleted:
                    self._reporter.report(
                        f"deleting {report.deleted} objects from {name} index"
                    )
        except Exception as exc:
            report.error = exc
            log.error(
                "sync-index-failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._reporter.error(f"index {name}: finalization failed", exc)
        return report
