"""Integration tests for the Typer application exposed by :mod:`searchsync.cli`."""

from __future__ import annotations

import json
import tomllib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from searchsync.cli import create_app
from searchsync.cli.sync import run_sync, sync_overrides
from searchsync.cli.init import load_workspace
from searchsync.errors import SyncFailedError
from searchsync.remote import MemoryBackend


def _workspace_env(tmp_path: Path) -> dict[str, str]:
    workspace = tmp_path / "workspace"
    return {
        "SEARCHSYNC_WORKSPACE": str(workspace),
        "SEARCHSYNC_PROVIDER": "memory",
    }


def _seed_workspace(env: dict[str, str], *, records: list[dict], extra: str = "") -> Path:
    workspace = Path(env["SEARCHSYNC_WORKSPACE"])
    (workspace / "data").mkdir(parents=True, exist_ok=True)
    (workspace / "data" / "docs.json").write_text(json.dumps(records), encoding="utf-8")
    (workspace / "searchsync.toml").write_text(
        "[sync]\n"
        'index_name = "docs"\n'
        "chunk_size = 1\n"
        f"{extra}"
        "\n[[sources]]\n"
        'records = "data/docs.json"\n',
        encoding="utf-8",
    )
    return workspace


@pytest.fixture()
def runner() -> CliRunner:
    """Return a Typer CLI runner for invoking the application."""

    return CliRunner()


def test_cli_init_respects_env_and_outputs_status(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    env["SEARCHSYNC_LOG_LEVEL"] = "warning"

    result = runner.invoke(create_app(), ["init"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Workspace initialized" in result.output
    assert "log level: WARNING" in result.output

    workspace = Path(env["SEARCHSYNC_WORKSPACE"])
    config_path = workspace / "searchsync.toml"
    assert config_path.exists()
    assert (workspace / "logs").is_dir()
    assert (workspace / "cache").is_dir()

    config = tomllib.loads(config_path.read_text(encoding="utf-8"))
    assert config["log_level"] == "WARNING"
    assert config["sync"]["chunk_size"] == 1000


def test_cli_init_log_level_flag_is_rendered(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)

    result = runner.invoke(
        create_app(),
        ["init", "--log-level", "debug"],
        env=env,
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "log level: DEBUG" in result.output
    workspace = Path(env["SEARCHSYNC_WORKSPACE"])
    config = tomllib.loads((workspace / "searchsync.toml").read_text(encoding="utf-8"))
    assert config["log_level"] == "DEBUG"


def test_cli_init_keeps_existing_config_unless_forced(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    app = create_app()
    runner.invoke(app, ["init"], env=env, catch_exceptions=False)
    config_path = Path(env["SEARCHSYNC_WORKSPACE"]) / "searchsync.toml"
    config_path.write_text("# customized\n", encoding="utf-8")

    second = runner.invoke(app, ["init"], env=env, catch_exceptions=False)
    assert second.exit_code == 0
    assert "existing config left untouched" in second.output
    assert config_path.read_text(encoding="utf-8") == "# customized\n"

    forced = runner.invoke(app, ["init", "--force"], env=env, catch_exceptions=False)
    assert forced.exit_code == 0
    assert "[sync]" in config_path.read_text(encoding="utf-8")


def test_cli_sync_dry_run_reports_summary(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    _seed_workspace(env, records=[{"objectID": "1"}, {"objectID": "2"}])

    result = runner.invoke(create_app(), ["sync", "--dry-run"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Dry run complete" in result.output
    assert "strategy: full" in result.output
    assert "query 0 -> docs: 2/2 changed, 2 batches" in result.output


def test_cli_sync_hash_cache_persists_and_cache_commands(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    workspace = _seed_workspace(env, records=[{"objectID": "1"}, {"objectID": "2"}])
    app = create_app()

    result = runner.invoke(app, ["sync", "--hash-cache"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    cache_file = workspace / "cache" / "hash-cache.json"
    document = json.loads(cache_file.read_text(encoding="utf-8"))
    assert set(document["entries"]["docs#0"]) == {"1", "2"}

    shown = runner.invoke(app, ["cache", "show"], env=env, catch_exceptions=False)
    assert shown.exit_code == 0, shown.output
    assert "docs (query 0): 2 records" in shown.output

    cleared = runner.invoke(app, ["cache", "clear", "--yes"], env=env, catch_exceptions=False)
    assert cleared.exit_code == 0
    assert "Hash cache cleared" in cleared.output
    assert not cache_file.exists()

    empty = runner.invoke(app, ["cache", "show"], env=env, catch_exceptions=False)
    assert "(empty)" in empty.output


def test_cli_cache_clear_can_be_cancelled(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    _seed_workspace(env, records=[])

    result = runner.invoke(create_app(), ["cache", "clear"], env=env, input="n\n")

    assert result.exit_code == 1
    assert "Operation cancelled." in result.output


def test_cli_sync_exits_non_zero_on_missing_identifier(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    _seed_workspace(env, records=[{"title": "no id"}])

    result = runner.invoke(create_app(), ["sync"], env=env, catch_exceptions=False)

    assert result.exit_code == 1
    assert "Sync failed" in result.output
    assert "does not have an 'objectID' key" in result.output


def test_cli_sync_rejects_conflicting_modes(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)
    _seed_workspace(env, records=[{"objectID": "1"}])

    result = runner.invoke(
        create_app(),
        ["sync", "--partial", "--hash-cache"],
        env=env,
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "mutually exclusive" in result.output


def test_cli_sync_without_sources_is_a_config_error(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    env = _workspace_env(tmp_path)

    result = runner.invoke(create_app(), ["sync"], env=env, catch_exceptions=False)

    assert result.exit_code == 1
    assert "No sources configured" in result.output


def test_sync_overrides_flip_the_other_mode() -> None:
    assert sync_overrides(partial=None, hash_cache=None, chunk_size=None) == {}
    assert sync_overrides(partial=None, hash_cache=True, chunk_size=5) == {
        "sync": {
            "enable_hash_cache": True,
            "enable_partial_updates": False,
            "chunk_size": 5,
        }
    }
    assert sync_overrides(partial=True, hash_cache=True, chunk_size=None) == {
        "sync": {"enable_partial_updates": True, "enable_hash_cache": True}
    }


def test_run_sync_uses_injected_backend(tmp_path: Path) -> None:
    env = _workspace_env(tmp_path)
    _seed_workspace(env, records=[{"objectID": "1"}], extra="enable_partial_updates = true\n")
    paths, config = load_workspace(environ=env)
    backend = MemoryBackend({"docs": {"records": [{"objectID": "gone"}]}})

    report = run_sync(config, paths, backend=backend)

    assert report.deleted == 1
    assert set(backend.search("docs")) == {"1"}
    assert backend.closed is True


def test_run_sync_raises_sync_failed(tmp_path: Path) -> None:
    env = _workspace_env(tmp_path)
    _seed_workspace(env, records=[{"objectID": "1"}])
    paths, config = load_workspace(environ=env)
    backend = MemoryBackend()
    backend.fail_next("add_records", RuntimeError("boom"))

    with pytest.raises(SyncFailedError):
        run_sync(config, paths, backend=backend)
