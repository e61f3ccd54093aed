"""Workspace bootstrap and configuration loading shared by CLI commands."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

from searchsync.core.config import (
    AppConfig,
    environment_overrides,
    load_config,
    load_packaged_defaults,
    read_user_config,
    render_user_config,
)
from searchsync.core.paths import WorkspacePaths, resolve_workspace
from searchsync.errors import ConfigError

__all__ = ["init_workspace", "load_workspace", "workspace_paths"]


def workspace_paths(
    workspace: Path | None,
    *,
    environ: Mapping[str, str] | None = None,
) -> WorkspacePaths:
    """Resolve the workspace from the CLI flag or ``SEARCHSYNC_WORKSPACE``.

    Raises:
        ConfigError: If the workspace path points to a file.
    """

    environ = os.environ if environ is None else environ
    env_workspace = environ.get("SEARCHSYNC_WORKSPACE")
    env_override = Path(env_workspace).expanduser() if env_workspace else None
    try:
        return resolve_workspace(
            workspace_override=workspace,
            env_override=env_override,
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def load_workspace(
    workspace: Path | None = None,
    *,
    log_level: str | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[WorkspacePaths, AppConfig]:
    """Resolve the workspace and load its layered configuration.

    A missing ``searchsync.toml`` is not an error; defaults, environment and
    CLI flags still apply.
    """

    environ = os.environ if environ is None else environ
    paths = workspace_paths(workspace, environ=environ)
    user_config = read_user_config(paths.config_file)

    overrides: dict[str, Any] = {"workspace": str(paths.workspace)}
    if log_level:
        overrides["log_level"] = log_level
    if cli_overrides:
        overrides.update(cli_overrides)

    config = load_config(
        defaults=load_packaged_defaults(),
        user_config=user_config,
        env_config=environment_overrides(environ),
        cli_overrides=overrides,
    )
    return paths, config


def init_workspace(
    *,
    workspace: Path | None = None,
    force: bool = False,
    log_level: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[AppConfig, bool]:
    """Create the workspace layout and seed ``searchsync.toml``.

    Example:
        >>> from pathlib import Path
        >>> config, written = init_workspace(
        ...     workspace=Path("/tmp/searchsync-example"), force=True
        ... )
        >>> written
        True

    Args:
        workspace: Target directory for the workspace.
        force: Overwrite an existing ``searchsync.toml``.
        log_level: Optional override for the configured logging level.
        environ: Environment consulted for ``SEARCHSYNC_*`` overrides.

    Returns:
        The resolved configuration and whether the config file was written.
    """

    environ = os.environ if environ is None else environ
    paths = workspace_paths(workspace, environ=environ)
    paths.ensure_directories()

    cli_overrides: dict[str, Any] = {"workspace": str(paths.workspace)}
    if log_level:
        cli_overrides["log_level"] = log_level

    config = load_config(
        defaults=load_packaged_defaults(),
        env_config=environment_overrides(environ),
        cli_overrides=cli_overrides,
    )

    written = False
    if force or not paths.config_file.exists():
        paths.config_file.write_text(render_user_config(config), encoding="utf-8")
        written = True
    return config, written
