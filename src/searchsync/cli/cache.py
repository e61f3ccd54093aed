"""Typer command group for inspecting the hash cache."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from searchsync.cache import CacheError, CacheStoreSettings, JsonHashCacheStore
from searchsync.core.logging import Logger, configure_logging, get_logger
from searchsync.errors import ConfigError
from searchsync.sync import IndexKey

from .init import load_workspace

__all__ = ["create_cache_app"]


@dataclass(slots=True)
class CacheCLIContext:
    """Shared context object carried across `searchsync cache` commands."""

    store: JsonHashCacheStore
    logger: Logger


def _require_context(ctx: typer.Context) -> CacheCLIContext:
    context = getattr(ctx, "obj", None)
    if not isinstance(context, CacheCLIContext):
        typer.secho("Internal error: cache context not initialized.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return context


def _fail(context: CacheCLIContext, *, action: str, error: Exception) -> None:
    typer.secho(f"{action} failed: {error}", fg=typer.colors.RED)
    context.logger.error("cache-command-failed", action=action, error=str(error))
    raise typer.Exit(code=1) from error


def create_cache_app() -> typer.Typer:
    """Return the ``cache`` command group."""

    app = typer.Typer(
        name="cache",
        help="Inspect or clear the hash cache used by --hash-cache runs.",
        no_args_is_help=True,
        invoke_without_command=False,
    )

    @app.callback()
    def configure_cache_commands(
        ctx: typer.Context,
        workspace: Path | None = typer.Option(
            None,
            "--workspace",
            "-w",
            help="Override the workspace directory (defaults to SEARCHSYNC_WORKSPACE or cwd).",
        ),
    ) -> None:
        try:
            paths, config = load_workspace(workspace)
            configure_logging(level=config.log_level, workspace_path=config.workspace)
        except (ConfigError, ValueError) as exc:
            typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

        logger = get_logger(__name__, command="cache")
        store = JsonHashCacheStore(
            paths.cache_file(config.cache.path),
            settings=CacheStoreSettings.from_mapping(config.cache.model_dump()),
            logger=logger,
        )
        ctx.obj = CacheCLIContext(store=store, logger=logger)

    @app.command("show", help="Summarize the persisted hash cache per source.")
    def show_command(ctx: typer.Context) -> None:
        context = _require_context(ctx)
        try:
            snapshot = context.store.load()
        except CacheError as exc:
            _fail(context, action="cache show", error=exc)
            return

        typer.secho(f"hash cache: {context.store.path}", fg=typer.colors.CYAN, bold=True)
        if not snapshot:
            typer.echo("  (empty)")
            return
        for raw_key in sorted(snapshot):
            try:
                key = IndexKey.parse(raw_key)
                label = f"{key.index} (query {key.ordinal})"
            except ValueError:
                label = raw_key
            typer.echo(f"  {label}: {len(snapshot[raw_key])} records")

    @app.command("clear", help="Delete the hash cache so the next run rewrites everything.")
    def clear_command(
        ctx: typer.Context,
        yes: bool = typer.Option(
            False,
            "--yes",
            "-y",
            help="Skip the confirmation prompt.",
        ),
    ) -> None:
        context = _require_context(ctx)
        if not yes and not typer.confirm(
            f"Delete {context.store.path}?", default=False
        ):
            typer.echo("Operation cancelled.")
            raise typer.Exit(code=1)
        try:
            removed = context.store.clear()
        except CacheError as exc:
            _fail(context, action="cache clear", error=exc)
            return
        if removed:
            typer.secho("Hash cache cleared", fg=typer.colors.GREEN)
        else:
            typer.echo("No hash cache to clear")

    return app
