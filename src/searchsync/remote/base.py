"""Boundary contract for remote search index services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

__all__ = [
    "COPY_SCOPE",
    "TaskHandle",
    "SearchBackend",
]

# Index artefacts carried into a shadow index; records are never copied.
COPY_SCOPE: tuple[str, ...] = ("settings", "synonyms", "rules")


@dataclass(frozen=True, slots=True)
class TaskHandle:
    """Reference to an asynchronous remote task scoped to an index."""

    index: str
    task_id: int


@runtime_checkable
class SearchBackend(Protocol):
    """Asynchronous capabilities the engine needs from a search service.

    Every mutating call returns a :class:`TaskHandle`; the write is only
    guaranteed visible once :meth:`wait_task` returns for that handle.
    """

    async def has_records(self, index: str) -> bool:
        """Return ``True`` when ``index`` exists and holds any record."""

    async def browse(
        self,
        index: str,
        attributes: Sequence[str],
    ) -> dict[str, dict[str, Any]]:
        """Return every record of ``index`` keyed by ``objectID``.

        Only ``attributes`` (plus ``objectID``) are retrieved.
        """

    async def add_records(
        self,
        index: str,
        records: Sequence[Mapping[str, Any]],
    ) -> TaskHandle:
        """Upsert ``records`` by ``objectID``."""

    async def delete_records(
        self,
        index: str,
        object_ids: Sequence[str],
    ) -> TaskHandle:
        """Delete the records identified by ``object_ids``."""

    async def set_settings(
        self,
        index: str,
        settings: Mapping[str, Any],
    ) -> TaskHandle:
        """Apply ``settings`` to ``index``."""

    async def copy_scope(
        self,
        source: str,
        target: str,
        scope: Sequence[str] = COPY_SCOPE,
    ) -> TaskHandle:
        """Copy the ``scope`` artefacts of ``source`` onto ``target``."""

    async def move_index(self, source: str, target: str) -> TaskHandle:
        """Atomically replace ``target`` with ``source``."""

    async def wait_task(self, task: TaskHandle) -> None:
        """Suspend until ``task`` is published remotely."""

    async def aclose(self) -> None:
        """Release transport resources."""
