"""Workspace, configuration and logging helpers for :mod:`searchsync`.

The CLI resolves a workspace, layers ``searchsync.toml`` over the packaged
defaults and the ``SEARCHSYNC_*`` environment, then configures logging before
handing a validated :class:`AppConfig` to the sync engine.

Example:
    >>> from searchsync.core import bound_context, get_logger
    >>> with bound_context(run_id="abc123"):
    ...     logger = get_logger(__name__, component="example")
"""

from __future__ import annotations

from .config import (
    AppConfig,
    environment_overrides,
    load_config,
    render_user_config,
)
from .logging import bound_context, configure_logging, get_logger
from .paths import CONFIG_FILENAME, WorkspacePaths, resolve_workspace

__all__ = [
    "AppConfig",
    "CONFIG_FILENAME",
    "WorkspacePaths",
    "bound_context",
    "configure_logging",
    "environment_overrides",
    "get_logger",
    "load_config",
    "render_user_config",
    "resolve_workspace",
]
