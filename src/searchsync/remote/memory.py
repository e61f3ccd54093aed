"""In-process search backend used for dry runs and tests."""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from searchsync.errors import RemoteRequestError, RemoteTaskError

from .base import COPY_SCOPE, TaskHandle

__all__ = ["MemoryBackend", "MemoryIndex"]


@dataclass(slots=True)
class MemoryIndex:
    """Contents of one in-memory index."""

    records: dict[str, dict[str, Any]] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    synonyms: list[Any] = field(default_factory=list)
    rules: list[Any] = field(default_factory=list)

    def clone(self) -> "MemoryIndex":
        return copy.deepcopy(self)


class MemoryBackend:
    """Search backend keeping indexes in a dictionary.

    Writes apply when issued and their tasks are published when awaited.
    ``latency`` makes every call yield to the event loop so concurrent
    callers interleave. ``fail_next`` injects one-shot errors per operation.
    """

    def __init__(
        self,
        indexes: Mapping[str, MemoryIndex | Mapping[str, Any]] | None = None,
        *,
        latency: float = 0.0,
    ) -> None:
        self.indexes: dict[str, MemoryIndex] = {}
        for name, value in (indexes or {}).items():
            self.indexes[name] = self._coerce_index(value)
        self.latency = latency
        self.calls: list[tuple[str, str]] = []
        self.published: set[int] = set()
        self._tasks: dict[int, str] = {}
        self._task_ids = itertools.count(1)
        self._failures: dict[str, deque[Exception]] = defaultdict(deque)
        self.closed = False

    @staticmethod
    def _coerce_index(value: MemoryIndex | Mapping[str, Any]) -> MemoryIndex:
        if isinstance(value, MemoryIndex):
            return value.clone()
        records = {
            str(record["objectID"]): dict(record)
            for record in value.get("records", ())
        }
        return MemoryIndex(
            records=records,
            settings=dict(value.get("settings", {})),
            synonyms=list(value.get("synonyms", ())),
            rules=list(value.get("rules", ())),
        )

    # ------------------------------------------------------------------#
    # Test helpers
    # ------------------------------------------------------------------#
    def fail_next(self, operation: str, error: Exception) -> None:
        """Raise ``error`` from the next call to ``operation``."""

        self._failures[operation].append(error)

    def count(self, operation: str, index: str | None = None) -> int:
        return sum(
            1
            for name, target in self.calls
            if name == operation and (index is None or target == index)
        )

    def search(self, index: str) -> dict[str, dict[str, Any]]:
        """Return what a reader of ``index`` observes right now."""

        current = self.indexes.get(index)
        if current is None:
            return {}
        return copy.deepcopy(current.records)

    # ------------------------------------------------------------------#
    # SearchBackend
    # ------------------------------------------------------------------#
    async def _enter(self, operation: str, index: str) -> None:
        self.calls.append((operation, index))
        await asyncio.sleep(self.latency)
        pending = self._failures.get(operation)
        if pending:
            raise pending.popleft()

    def _issue(self, index: str) -> TaskHandle:
        task_id = next(self._task_ids)
        self._tasks[task_id] = index
        return TaskHandle(index=index, task_id=task_id)

    async def has_records(self, index: str) -> bool:
        await self._enter("has_records", index)
        current = self.indexes.get(index)
        return bool(current and current.records)

    async def browse(
        self,
        index: str,
        attributes: Sequence[str],
    ) -> dict[str, dict[str, Any]]:
        await self._enter("browse", index)
        current = self.indexes.get(index)
        if current is None:
            return {}
        wanted = set(attributes) | {"objectID"}
        return {
            object_id: {
                key: copy.deepcopy(value)
                for key, value in record.items()
                if key in wanted
            }
            for object_id, record in current.records.items()
        }

    async def add_records(
        self,
        index: str,
        records: Sequence[Mapping[str, Any]],
    ) -> TaskHandle:
        await self._enter("add_records", index)
        target = self.indexes.setdefault(index, MemoryIndex())
        for record in records:
            target.records[str(record["objectID"])] = copy.deepcopy(dict(record))
        return self._issue(index)

    async def delete_records(
        self,
        index: str,
        object_ids: Sequence[str],
    ) -> TaskHandle:
        await self._enter("delete_records", index)
        target = self.indexes.get(index)
        if target is not None:
            for object_id in object_ids:
                target.records.pop(object_id, None)
        return self._issue(index)

    async def set_settings(
        self,
        index: str,
        settings: Mapping[str, Any],
    ) -> TaskHandle:
        await self._enter("set_settings", index)
        target = self.indexes.setdefault(index, MemoryIndex())
        target.settings.update(copy.deepcopy(dict(settings)))
        return self._issue(index)

    async def copy_scope(
        self,
        source: str,
        target: str,
        scope: Sequence[str] = COPY_SCOPE,
    ) -> TaskHandle:
        await self._enter("copy_scope", source)
        origin = self.indexes.get(source)
        if origin is None:
            raise RemoteRequestError(
                f"Index {source} does not exist",
                operation="copy_scope",
                index=source,
                status_code=404,
            )
        destination = self.indexes.setdefault(target, MemoryIndex())
        for artefact in scope:
            setattr(destination, artefact, copy.deepcopy(getattr(origin, artefact)))
        return self._issue(target)

    async def move_index(self, source: str, target: str) -> TaskHandle:
        await self._enter("move_index", source)
        origin = self.indexes.pop(source, None)
        if origin is None:
            raise RemoteRequestError(
                f"Index {source} does not exist",
                operation="move_index",
                index=source,
                status_code=404,
            )
        # Single assignment: readers see either the old or the new index.
        self.indexes[target] = origin
        return self._issue(target)

    async def wait_task(self, task: TaskHandle) -> None:
        await self._enter("wait_task", task.index)
        if task.task_id not in self._tasks:
            raise RemoteTaskError(
                f"Unknown task {task.task_id}",
                operation="wait_task",
                index=task.index,
                task_id=task.task_id,
            )
        self.published.add(task.task_id)

    async def aclose(self) -> None:
        self.closed = True
