"""Tests for :mod:`searchsync.core.config`."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from searchsync.core.config import (
    AppConfig,
    SourceSettings,
    environment_overrides,
    load_config,
    load_packaged_defaults,
    read_user_config,
    render_user_config,
)
from searchsync.errors import ConfigError
from searchsync.sync.models import DiffStrategy, SyncMode


def test_packaged_defaults_match_model_defaults() -> None:
    defaults = load_packaged_defaults()

    config = load_config(defaults=defaults)

    assert config.log_level == "INFO"
    assert config.remote.provider == "algolia"
    assert config.sync.chunk_size == 1000
    assert config.sync.match_fields == ["modified"]
    assert config.sync.shadow_suffix == "_tmp"
    assert SyncMode.from_settings(config.sync).strategy is DiffStrategy.FULL
    assert config.cache.path == Path("cache/hash-cache.json")
    assert config.sources == []


def test_load_config_precedence_layers() -> None:
    config = load_config(
        defaults=load_packaged_defaults(),
        user_config={
            "log_level": "debug",
            "sync": {"chunk_size": 50, "index_name": "docs"},
            "remote": {"app_id": "from-file"},
        },
        env_config={"remote": {"app_id": "from-env"}},
        cli_overrides={"sync": {"chunk_size": 10}},
    )

    assert config.log_level == "DEBUG"
    assert config.remote.app_id == "from-env"
    assert config.sync.chunk_size == 10
    # Sibling keys of a merged table survive the override.
    assert config.sync.index_name == "docs"
    assert config.sync.enable_partial_updates is False


def test_load_config_rejects_both_diff_modes() -> None:
    with pytest.raises(ConfigError, match="mutually exclusive"):
        load_config(
            defaults=load_packaged_defaults(),
            user_config={
                "sync": {
                    "enable_partial_updates": True,
                    "enable_hash_cache": True,
                }
            },
        )


@pytest.mark.parametrize(
    "sync",
    [
        {"chunk_size": 0},
        {"match_fields": []},
        {"match_fields": ["modified", "  "]},
    ],
)
def test_load_config_rejects_invalid_sync_settings(sync: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        load_config(defaults=load_packaged_defaults(), user_config={"sync": sync})


def test_source_requires_records_path() -> None:
    with pytest.raises(ConfigError):
        load_config(
            defaults=load_packaged_defaults(),
            user_config={"sources": [{"index_name": "docs"}]},
        )


def test_index_and_match_fields_fall_back_to_sync_settings() -> None:
    config = load_config(
        defaults=load_packaged_defaults(),
        user_config={
            "sync": {"index_name": "docs", "match_fields": ["updated_at"]},
            "sources": [
                {"records": "a.json"},
                {"records": "b.json", "index_name": "blog", "match_fields": ["rev"]},
            ],
        },
    )

    first, second = config.sources
    assert config.index_for(first) == "docs"
    assert config.match_fields_for(first) == ["updated_at"]
    assert config.index_for(second) == "blog"
    assert config.match_fields_for(second) == ["rev"]


def test_index_for_requires_some_index_name() -> None:
    config = AppConfig(sources=[SourceSettings(records=Path("a.json"))])

    with pytest.raises(ConfigError, match="no index_name"):
        config.index_for(config.sources[0])


def test_environment_overrides_maps_known_variables() -> None:
    layer = environment_overrides(
        {
            "SEARCHSYNC_APP_ID": "APP",
            "SEARCHSYNC_API_KEY": "secret",
            "SEARCHSYNC_LOG_LEVEL": "warning",
            "SEARCHSYNC_PROVIDER": "memory",
            "UNRELATED": "x",
        }
    )

    assert layer == {
        "remote": {"app_id": "APP", "api_key": "secret", "provider": "memory"},
        "log_level": "warning",
    }
    assert environment_overrides({}) == {}


def test_api_key_hidden_from_repr() -> None:
    config = load_config(
        defaults=load_packaged_defaults(),
        env_config={"remote": {"api_key": "super-secret"}},
    )

    assert "super-secret" not in repr(config.remote)


def test_read_user_config_handles_missing_and_invalid(tmp_path: Path) -> None:
    assert read_user_config(tmp_path / "missing.toml") == {}

    broken = tmp_path / "searchsync.toml"
    broken.write_text("[sync\nchunk_size = ", encoding="utf-8")

    with pytest.raises(ConfigError):
        read_user_config(broken)


def test_render_user_config_round_trips_through_loader() -> None:
    config = load_config(
        defaults=load_packaged_defaults(),
        user_config={
            "sync": {"index_name": "docs", "enable_hash_cache": True},
            "cache": {"lock_timeout": 1.5, "lock_poll_interval": 0.05},
            "sources": [
                {
                    "records": "data/docs.json",
                    "match_fields": ["rev"],
                    "settings": {"searchableAttributes": ["title", "body"]},
                }
            ],
        },
        env_config={"remote": {"api_key": "super-secret"}},
    )

    rendered = render_user_config(config)
    parsed = tomllib.loads(rendered)

    assert "super-secret" not in rendered
    assert parsed["sync"]["index_name"] == "docs"
    assert parsed["sync"]["enable_hash_cache"] is True
    assert parsed["sources"] == [
        {
            "records": "data/docs.json",
            "match_fields": ["rev"],
            "settings": {"searchableAttributes": ["title", "body"]},
        }
    ]

    reloaded = load_config(defaults=load_packaged_defaults(), user_config=parsed)
    assert reloaded.sources == config.sources
    assert reloaded.cache == config.cache
    assert reloaded.cache.lock_timeout == 1.5
    assert SyncMode.from_settings(reloaded.sync).strategy is DiffStrategy.HASH_CACHE


def test_render_user_config_without_sources_includes_example() -> None:
    rendered = render_user_config(load_config(defaults=load_packaged_defaults()))

    assert "# [[sources]]" in rendered
    assert "sources" not in tomllib.loads(rendered)
