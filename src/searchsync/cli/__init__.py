"""Command-line interface primitives for :mod:`searchsync`.

This module exposes the Typer application behind the ``searchsync`` console
script.

Example:
    >>> import typer
    >>> from searchsync.cli import create_app
    >>> app = create_app()
    >>> isinstance(app, typer.Typer)
    True
"""

from __future__ import annotations

from pathlib import Path

import typer

from searchsync.cli.cache import create_cache_app
from searchsync.cli.init import init_workspace
from searchsync.cli.sync import sync_command
from searchsync.core.config import DEFAULTS_RESOURCE_NAME, AppConfig
from searchsync.core.logging import configure_logging, get_logger
from searchsync.core.paths import CONFIG_FILENAME
from searchsync.errors import ConfigError

_app_help = (
    "Synchronize local records into hosted search indexes."
    "\n\n"
    "Use `searchsync init` to create `searchsync.toml`, then `searchsync sync`."
)


def _emit_workspace_summary(*, config: AppConfig, written: bool) -> None:
    typer.secho("Workspace initialized", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  workspace: {config.workspace}")
    typer.echo(f"  config: {config.workspace / CONFIG_FILENAME}")
    typer.echo(f"  defaults: packaged resource ({DEFAULTS_RESOURCE_NAME})")
    typer.echo(f"  log level: {config.log_level}")
    if not written:
        typer.echo("  note: existing config left untouched (use --force)")


def create_app() -> "typer.Typer":
    """Return the Typer application powering the ``searchsync`` CLI."""

    app = typer.Typer(
        help=_app_help,
        no_args_is_help=True,
        rich_markup_mode="rich",
        invoke_without_command=False,
        cls=typer.core.TyperGroup,
    )

    app.add_typer(create_cache_app(), name="cache")
    app.command(
        "sync",
        help="Push every configured source into its search index.",
    )(sync_command)

    @app.callback()
    def main_callback() -> None:
        return None

    @app.command(
        "init",
        help="Create the workspace layout and seed searchsync.toml.",
    )
    def init_command(
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
        force: bool = typer.Option(
            False,
            "--force",
            help="Overwrite an existing searchsync.toml.",
        ),
    ) -> None:
        """Initialize the workspace.

        Example:
            >>> from typer.testing import CliRunner
            >>> runner = CliRunner()
            >>> result = runner.invoke(create_app(), ["init", "--help"])
            >>> result.exit_code
            0
        """

        try:
            config, written = init_workspace(
                workspace=workspace,
                force=force,
                log_level=log_level,
            )
            configure_logging(
                level=config.log_level,
                workspace_path=config.workspace,
            )
        except (ConfigError, ValueError, OSError) as exc:
            typer.secho(f"Failed to initialize workspace: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

        logger = get_logger(__name__, command="init")
        logger.info(
            "init-complete",
            workspace=str(config.workspace),
            config_written=written,
        )
        _emit_workspace_summary(config=config, written=written)

    return app


__all__ = ["create_app"]
