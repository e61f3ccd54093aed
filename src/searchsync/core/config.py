"""Configuration models and loaders for :mod:`searchsync`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from pathlib import Path
from typing import Any, Literal, Mapping

import tomllib
import tomlkit
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from searchsync.errors import ConfigError
from searchsync.resources import get_resource

DEFAULTS_RESOURCE_NAME = "searchsync.defaults.toml"

RemoteProvider = Literal["algolia", "memory"]

_ENV_PREFIX = "SEARCHSYNC_"


def _validate_match_fields(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    normalized = [item.strip() for item in value]
    if not normalized or any(not item for item in normalized):
        raise ValueError("match_fields must be a non-empty list of field names")
    return list(dict.fromkeys(normalized))


class RemoteSettings(BaseModel):
    """Connection settings for the remote search service."""

    provider: RemoteProvider = Field(
        default="algolia",
        description="Search backend implementation to use.",
    )
    app_id: str = Field(
        default="",
        description="Application identifier for the search service.",
    )
    api_key: str = Field(
        default="",
        repr=False,
        description="Admin API key; prefer SEARCHSYNC_API_KEY over the file.",
    )
    host: str | None = Field(
        default=None,
        description="Optional base URL override for the REST API.",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request timeout in seconds.",
    )
    task_poll_interval: float = Field(
        default=0.5,
        gt=0.0,
        description="Seconds between remote task status polls.",
    )
    max_attempts: int = Field(
        default=4,
        ge=1,
        description="Attempts per request before giving up on retryable errors.",
    )

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }


class SyncSettings(BaseModel):
    """Run-wide synchronization switches."""

    index_name: str = Field(
        default="",
        description="Default destination index for sources without one.",
    )
    chunk_size: int = Field(
        default=1000,
        gt=0,
        description="Maximum number of records per upload batch.",
    )
    enable_partial_updates: bool = Field(
        default=False,
        description="Diff against the live index and only write changes.",
    )
    enable_hash_cache: bool = Field(
        default=False,
        description="Diff against content hashes persisted by the last run.",
    )
    match_fields: list[str] = Field(
        default_factory=lambda: ["modified"],
        description="Fields compared to detect changes in live-diff mode.",
    )
    shadow_suffix: str = Field(
        default="_tmp",
        min_length=1,
        description="Suffix naming the shadow index used during rebuilds.",
    )

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("match_fields")
    @classmethod
    def _check_match_fields(cls, value: list[str]) -> list[str]:
        return _validate_match_fields(value) or []

    @model_validator(mode="after")
    def _check_modes(self) -> "SyncSettings":
        if self.enable_partial_updates and self.enable_hash_cache:
            raise ValueError(
                "enable_partial_updates and enable_hash_cache are mutually "
                "exclusive"
            )
        return self


class SourceSettings(BaseModel):
    """A configured record source."""

    records: Path = Field(
        description="JSON array or JSON Lines file holding the records.",
    )
    index_name: str | None = Field(
        default=None,
        description="Destination index; falls back to sync.index_name.",
    )
    match_fields: list[str] | None = Field(
        default=None,
        description="Per-source override of sync.match_fields.",
    )
    settings: dict[str, Any] | None = Field(
        default=None,
        description="Index settings applied after this source's upload.",
    )

    model_config = {
        "str_strip_whitespace": True,
        "frozen": True,
    }

    @field_validator("match_fields")
    @classmethod
    def _check_match_fields(cls, value: list[str] | None) -> list[str] | None:
        return _validate_match_fields(value)


class CacheSettings(BaseModel):
    """Hash cache persistence settings."""

    path: Path = Field(
        default=Path("cache/hash-cache.json"),
        description="Cache file location, relative to the workspace.",
    )
    backups_enabled: bool = Field(
        default=True,
        description="Whether the previous cache is backed up before writes.",
    )
    backup_retention: int = Field(
        default=3,
        ge=0,
        description="Number of cache backups retained.",
    )
    lock_timeout: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds to wait for the cache lock.",
    )
    lock_poll_interval: float = Field(
        default=0.1,
        gt=0.0,
        description="Polling interval in seconds while waiting on the lock.",
    )

    model_config = {
        "validate_assignment": True,
    }


class AppConfig(BaseModel):
    """Root configuration for :mod:`searchsync`."""

    workspace: Path = Field(
        default_factory=Path.cwd,
        description="Workspace root holding config, logs and cache.",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level for the application runtime.",
    )
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    sources: list[SourceSettings] = Field(default_factory=list)

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @model_validator(mode="after")
    def _post_process(self) -> "AppConfig":
        object.__setattr__(self, "log_level", self.log_level.upper())
        object.__setattr__(self, "workspace", self.workspace.expanduser())
        return self

    def index_for(self, source: SourceSettings) -> str:
        """Return the destination index for ``source``.

        Raises:
            ConfigError: If neither the source nor ``sync`` names an index.
        """

        name = source.index_name or self.sync.index_name
        if not name:
            raise ConfigError(
                f"Source {source.records} has no index_name and "
                "sync.index_name is empty"
            )
        return name

    def match_fields_for(self, source: SourceSettings) -> list[str]:
        return list(source.match_fields or self.sync.match_fields)


def read_packaged_defaults_text() -> str:
    """Return the raw packaged defaults TOML content."""

    return get_resource(DEFAULTS_RESOURCE_NAME).read_text(encoding="utf-8")


def load_packaged_defaults() -> dict[str, Any]:
    """Load the packaged defaults as a plain dictionary.

    Example:
        >>> load_packaged_defaults()["sync"]["chunk_size"]
        1000
    """

    return tomllib.loads(read_packaged_defaults_text())


def read_user_config(path: Path) -> dict[str, Any]:
    """Parse the user ``searchsync.toml``; a missing file yields ``{}``.

    Raises:
        ConfigError: If the file exists but is not valid TOML.
    """

    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read config at {path}: {exc}") from exc


def environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``SEARCHSYNC_*`` variables into a config layer."""

    layer: dict[str, Any] = {}
    remote: dict[str, Any] = {}
    if value := environ.get(f"{_ENV_PREFIX}APP_ID"):
        remote["app_id"] = value
    if value := environ.get(f"{_ENV_PREFIX}API_KEY"):
        remote["api_key"] = value
    if value := environ.get(f"{_ENV_PREFIX}PROVIDER"):
        remote["provider"] = value
    if remote:
        layer["remote"] = remote
    if value := environ.get(f"{_ENV_PREFIX}LOG_LEVEL"):
        layer["log_level"] = value
    return layer


def _deep_merge(
    base: Mapping[str, Any],
    overlay: Mapping[str, Any],
) -> dict[str, Any]:
    """Recursively merge ``overlay`` into ``base`` returning a new dict."""

    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MappingABC)
            and isinstance(value, MappingABC)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    *,
    defaults: Mapping[str, Any],
    user_config: Mapping[str, Any] | None = None,
    env_config: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load configuration according to the precedence stack.

    Args:
        defaults: Packaged defaults shipped with the application.
        user_config: Parsed user ``searchsync.toml`` content.
        env_config: Settings derived from environment variables.
        cli_overrides: Settings supplied via CLI flags.

    Raises:
        ConfigError: If the merged configuration fails validation.
    """

    stack = dict(defaults)
    for layer in (user_config, env_config, cli_overrides):
        if layer:
            stack = _deep_merge(stack, layer)

    try:
        return AppConfig(**stack)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def render_user_config(config: AppConfig) -> str:
    """Render a commented ``searchsync.toml`` for users to customize."""

    document = tomlkit.document()
    document.add(tomlkit.comment("Generated by searchsync init"))
    document.add(
        tomlkit.comment(
            "Precedence: CLI flags > env vars > searchsync.toml > defaults"
        )
    )
    document.add(tomlkit.comment("Environment overrides:"))
    document.add(tomlkit.comment("  SEARCHSYNC_APP_ID / SEARCHSYNC_API_KEY"))
    document.add(tomlkit.comment("  SEARCHSYNC_LOG_LEVEL=info"))
    document.add(tomlkit.nl())

    document["log_level"] = config.log_level

    remote = tomlkit.table()
    remote["provider"] = config.remote.provider
    remote["app_id"] = config.remote.app_id
    remote.add(tomlkit.comment("api_key is read from SEARCHSYNC_API_KEY"))
    remote["timeout"] = config.remote.timeout
    remote["task_poll_interval"] = config.remote.task_poll_interval
    remote["max_attempts"] = config.remote.max_attempts
    if config.remote.host:
        remote["host"] = config.remote.host
    document["remote"] = remote

    sync = tomlkit.table()
    sync["index_name"] = config.sync.index_name
    sync["chunk_size"] = config.sync.chunk_size
    sync["enable_partial_updates"] = config.sync.enable_partial_updates
    sync["enable_hash_cache"] = config.sync.enable_hash_cache
    sync["match_fields"] = list(config.sync.match_fields)
    sync["shadow_suffix"] = config.sync.shadow_suffix
    document["sync"] = sync

    cache = tomlkit.table()
    cache["path"] = config.cache.path.as_posix()
    cache["backups_enabled"] = config.cache.backups_enabled
    cache["backup_retention"] = config.cache.backup_retention
    cache["lock_timeout"] = config.cache.lock_timeout
    cache["lock_poll_interval"] = config.cache.lock_poll_interval
    document["cache"] = cache

    if config.sources:
        sources = tomlkit.aot()
        for source in config.sources:
            entry = tomlkit.table()
            entry["records"] = source.records.as_posix()
            if source.index_name:
                entry["index_name"] = source.index_name
            if source.match_fields:
                entry["match_fields"] = list(source.match_fields)
            if source.settings:
                entry["settings"] = dict(source.settings)
            sources.append(entry)
        document["sources"] = sources
    else:
        document.add(tomlkit.nl())
        document.add(tomlkit.comment("[[sources]]"))
        document.add(tomlkit.comment('records = "data/docs.json"'))
        document.add(tomlkit.comment('index_name = "docs"'))

    return tomlkit.dumps(document)


__all__ = [
    "AppConfig",
    "CacheSettings",
    "DEFAULTS_RESOURCE_NAME",
    "RemoteSettings",
    "SourceSettings",
    "SyncSettings",
    "environment_overrides",
    "load_config",
    "load_packaged_defaults",
    "read_packaged_defaults_text",
    "read_user_config",
    "render_user_config",
]
