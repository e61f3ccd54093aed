"""Split changed records into batches and drive their uploads."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, TypeVar

from searchsync.remote.base import SearchBackend

from .models import Record

__all__ = ["BatchReport", "chunk", "upload_batches", "apply_settings"]

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class BatchReport:
    """Summary of one source's upload phase."""

    target: str
    batches: int
    records: int


def chunk(items: Sequence[T], size: int) -> list[tuple[T, ...]]:
    """Split ``items`` into contiguous slices of at most ``size``.

    >>> chunk([1, 2, 3, 4, 5], 2)
    [(1, 2), (3, 4), (5,)]
    >>> chunk([], 3)
    []
    """

    if size < 1:
        raise ValueError(f"chunk size must be >= 1 (got {size})")
    return [
        tuple(items[start : start + size])
        for start in range(0, len(items), size)
    ]


async def _upload_one(
    backend: SearchBackend,
    target: str,
    batch: Sequence[Record],
) -> None:
    task = await backend.add_records(target, batch)
    await backend.wait_task(task)


async def upload_batches(
    backend: SearchBackend,
    target: str,
    records: Sequence[Record],
    chunk_size: int,
) -> BatchReport:
    """Upload every batch concurrently and wait for all remote tasks.

    The first failure is raised once the remaining batches are cancelled;
    batches already accepted remotely stay applied.
    """

    batches = chunk(records, chunk_size)
    tasks = [
        asyncio.create_task(_upload_one(backend, target, batch))
        for batch in batches
    ]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return BatchReport(target=target, batches=len(batches), records=len(records))


async def apply_settings(
    backend: SearchBackend,
    target: str,
    settings: Mapping[str, Any],
) -> None:
    task = await backend.set_settings(target, settings)
    await backend.wait_task(task)
