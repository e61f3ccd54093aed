"""Workspace path helpers for :mod:`searchsync`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

__all__ = [
    "CONFIG_FILENAME",
    "WorkspacePaths",
    "resolve_workspace",
]

CONFIG_FILENAME = "searchsync.toml"
_DEFAULT_CACHE_FILENAME = "hash-cache.json"


@dataclass(frozen=True, slots=True)
class WorkspacePaths:
    """Resolved locations for a workspace instance.

    Example:
        >>> from pathlib import Path
        >>> paths = WorkspacePaths(
        ...     workspace=Path("/tmp/searchsync"),
        ...     config_file=Path("/tmp/searchsync/searchsync.toml"),
        ...     logs_dir=Path("/tmp/searchsync/logs"),
        ...     cache_dir=Path("/tmp/searchsync/cache"),
        ... )
        >>> paths.cache_file().name
        'hash-cache.json'
    """

    workspace: Path
    config_file: Path
    logs_dir: Path
    cache_dir: Path

    def iter_all(self) -> Iterable[Path]:
        """Yield every path managed within the workspace."""

        yield from (
            self.workspace,
            self.config_file,
            self.logs_dir,
            self.cache_dir,
        )

    def cache_file(self, relative: str | Path | None = None) -> Path:
        """Return the hash cache location, honoring a configured override.

        Relative overrides resolve against the workspace root.
        """

        if relative is None:
            return self.cache_dir / _DEFAULT_CACHE_FILENAME
        candidate = Path(relative).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.workspace / candidate

    def resolve(self, relative: str | Path) -> Path:
        """Resolve a user-supplied path against the workspace root."""

        candidate = Path(relative).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.workspace / candidate

    def ensure_directories(self) -> None:
        """Create the workspace directories if they are missing."""

        self.workspace.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)


def resolve_workspace(
    *,
    workspace_override: Path | None = None,
    env_override: Path | None = None,
) -> WorkspacePaths:
    """Resolve canonical workspace locations.

    Precedence is CLI override, then environment, then the current directory.

    Raises:
        ValueError: If the resolved workspace points to a regular file.
    """

    base = workspace_override or env_override or Path.cwd()
    raw = Path(base).expanduser()
    if not raw.is_absolute():
        raw = Path.cwd() / raw
    workspace = raw.resolve(strict=False)

    if workspace.exists() and workspace.is_file():
        raise ValueError(f"Workspace file path not allowed: {workspace}")

    return WorkspacePaths(
        workspace=workspace,
        config_file=workspace / CONFIG_FILENAME,
        logs_dir=workspace / "logs",
        cache_dir=workspace / "cache",
    )
