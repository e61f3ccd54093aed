"""Load configured record files into engine sources."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from searchsync.core.config import AppConfig
from searchsync.core.paths import WorkspacePaths
from searchsync.errors import ConfigError
from searchsync.sync.models import SourceSpec

__all__ = ["load_records", "build_sources"]

_JSONL_SUFFIXES = frozenset({".jsonl", ".ndjson"})


def _parse_lines(text: str, path: Path) -> list[Any]:
    records: list[Any] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise ConfigError(
                f"Invalid JSON on line {lineno} of {path}: {exc.msg}"
            ) from exc
    return records


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read records from a JSON array or a JSON Lines file.

    Files ending in ``.jsonl`` or ``.ndjson`` are read line by line; anything
    else must hold a single JSON array. Records are not validated here beyond
    being JSON objects.

    Raises:
        ConfigError: If the file is missing or malformed.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Records file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read records file {path}: {exc}") from exc

    if path.suffix.lower() in _JSONL_SUFFIXES:
        payload: Any = _parse_lines(text, path)
    else:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc.msg}") from exc
        if not isinstance(payload, list):
            raise ConfigError(
                f"{path} must contain a JSON array of records "
                f"(got {type(payload).__name__})"
            )

    for position, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ConfigError(
                f"Record {position} in {path} is not a JSON object"
            )
    return payload


def build_sources(config: AppConfig, paths: WorkspacePaths) -> list[SourceSpec]:
    """Materialize every configured source in declaration order.

    Raises:
        ConfigError: If no source is configured or one cannot be loaded.
    """

    if not config.sources:
        raise ConfigError(
            "No sources configured; add a [[sources]] table to "
            f"{paths.config_file.name}"
        )

    specs: list[SourceSpec] = []
    for source in config.sources:
        records_path = paths.resolve(source.records)
        specs.append(
            SourceSpec(
                index_name=config.index_for(source),
                records=load_records(records_path),
                match_fields=tuple(config.match_fields_for(source)),
                settings=source.settings,
                label=str(source.records),
            )
        )
    return specs
