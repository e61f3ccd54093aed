"""Implementation of the ``searchsync sync`` command."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Sequence

import typer

from searchsync.cache import (
    CacheError,
    CacheStoreSettings,
    HashCacheStore,
    JsonHashCacheStore,
    MemoryHashCacheStore,
)
from searchsync.core.config import AppConfig
from searchsync.core.logging import Logger, configure_logging, get_logger
from searchsync.core.paths import WorkspacePaths
from searchsync.errors import ConfigError, DataError, SyncFailedError
from searchsync.remote import MemoryBackend, SearchBackend, create_backend
from searchsync.sources import build_sources
from searchsync.sync import (
    Activity,
    DiffStrategy,
    SourceSpec,
    SyncEngine,
    SyncMode,
    SyncReport,
)

from .init import load_workspace

__all__ = ["sync_overrides", "run_sync", "sync_command"]


def sync_overrides(
    *,
    partial: bool | None,
    hash_cache: bool | None,
    chunk_size: int | None,
) -> dict[str, Any]:
    """Translate sync flags into a config layer.

    Turning one diff mode on implicitly turns the other off unless both flags
    are given explicitly.

    Example:
        >>> sync_overrides(partial=True, hash_cache=None, chunk_size=None)
        {'sync': {'enable_partial_updates': True, 'enable_hash_cache': False}}
    """

    sync: dict[str, Any] = {}
    if partial is not None:
        sync["enable_partial_updates"] = partial
        if partial and hash_cache is None:
            sync["enable_hash_cache"] = False
    if hash_cache is not None:
        sync["enable_hash_cache"] = hash_cache
        if hash_cache and partial is None:
            sync["enable_partial_updates"] = False
    if chunk_size is not None:
        sync["chunk_size"] = chunk_size
    return {"sync": sync} if sync else {}


def _build_store(
    config: AppConfig,
    paths: WorkspacePaths,
    *,
    dry_run: bool,
    logger: Logger,
) -> HashCacheStore:
    store = JsonHashCacheStore(
        paths.cache_file(config.cache.path),
        settings=CacheStoreSettings.from_mapping(config.cache.model_dump()),
        logger=logger,
    )
    if dry_run:
        # Dry runs diff against the real cache but never write it.
        return MemoryHashCacheStore(store.load())
    return store


async def _execute(
    backend: SearchBackend,
    mode: SyncMode,
    sources: Sequence[SourceSpec],
    *,
    store: HashCacheStore | None,
    logger: Logger,
) -> SyncReport:
    engine = SyncEngine(
        backend,
        mode,
        store=store,
        reporter=Activity("searchsync sync", logger=logger),
        logger=logger,
    )
    try:
        return await engine.run(sources)
    finally:
        await backend.aclose()


def run_sync(
    config: AppConfig,
    paths: WorkspacePaths,
    *,
    dry_run: bool = False,
    backend: SearchBackend | None = None,
    logger: Logger | None = None,
) -> SyncReport:
    """Load sources, build collaborators and run the engine to completion.

    Raises:
        ConfigError: On invalid setup, before any remote call.
        SyncFailedError: When any source or index failed.
    """

    log = logger or get_logger(__name__, command="sync")
    mode = SyncMode.from_settings(config.sync)
    sources = build_sources(config, paths)

    store: HashCacheStore | None = None
    if mode.strategy is DiffStrategy.HASH_CACHE:
        store = _build_store(config, paths, dry_run=dry_run, logger=log)

    if backend is None:
        backend = MemoryBackend() if dry_run else create_backend(
            config.remote,
            logger=log,
        )

    return asyncio.run(_execute(backend, mode, sources, store=store, logger=log))


def _emit_report(report: SyncReport) -> None:
    for source in report.sources:
        line = (
            f"  query {source.ordinal} -> {source.index_name}: "
            f"{source.changed}/{source.total} changed, {source.batches} batches"
        )
        if source.ok:
            typer.echo(line)
        else:
            typer.secho(f"{line} (failed: {source.error})", fg=typer.colors.RED)
    for index in report.indexes:
        if index.error is not None:
            typer.secho(
                f"  index {index.index_name}: failed ({index.error})",
                fg=typer.colors.RED,
            )
        elif index.skipped:
            typer.secho(
                f"  index {index.index_name}: skipped after source failure",
                fg=typer.colors.YELLOW,
            )
        else:
            detail = "swapped from shadow" if index.swapped else (
                f"{index.deleted} deleted"
            )
            typer.echo(f"  index {index.index_name}: {detail}")


def sync_command(
    workspace: Path | None = typer.Option(
        None,
        "--workspace",
        "-w",
        help="Override the workspace directory (defaults to SEARCHSYNC_WORKSPACE or cwd).",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Override the logging level (DEBUG/INFO/WARNING/ERROR).",
    ),
    partial: bool | None = typer.Option(
        None,
        "--partial/--no-partial",
        help="Only write records whose match fields differ from the live index.",
    ),
    hash_cache: bool | None = typer.Option(
        None,
        "--hash-cache/--no-hash-cache",
        help="Only write records whose content hash changed since the last run.",
    ),
    chunk_size: int | None = typer.Option(
        None,
        "--chunk-size",
        min=1,
        help="Maximum number of records per upload batch.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Run against an in-memory index and leave the hash cache untouched.",
    ),
) -> None:
    """Push every configured source into its search index."""

    try:
        paths, config = load_workspace(
            workspace,
            log_level=log_level,
            cli_overrides=sync_overrides(
                partial=partial,
                hash_cache=hash_cache,
                chunk_size=chunk_size,
            ),
        )
        configure_logging(level=config.log_level, workspace_path=config.workspace)
    except (ConfigError, ValueError) as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    logger = get_logger(__name__, command="sync", dry_run=dry_run)
    try:
        report = run_sync(config, paths, dry_run=dry_run, logger=logger)
    except (ConfigError, DataError, CacheError) as exc:
        logger.error("sync-command-failed", error=str(exc))
        typer.secho(f"Sync failed: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    except SyncFailedError as exc:
        typer.secho("Sync failed", fg=typer.colors.RED, bold=True)
        _emit_report(exc.report)
        raise typer.Exit(code=1) from exc

    header = "Dry run complete" if dry_run else "Sync complete"
    typer.secho(header, fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  strategy: {report.strategy}")
    _emit_report(report)
    typer.echo(
        f"  totals: {report.changed} changed, {report.batches} batches, "
        f"{report.deleted} deleted"
    )
    if report.persisted and not dry_run:
        typer.echo(f"  hash cache: {paths.cache_file(config.cache.path)}")
