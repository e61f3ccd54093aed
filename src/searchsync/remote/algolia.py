"""Algolia REST implementation of :class:`SearchBackend`."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Mapping, Sequence
from urllib.parse import quote

import httpx

from searchsync.core.logging import Logger, get_logger
from searchsync.errors import (
    RemoteRequestError,
    RemoteRetryableError,
    RemoteTaskError,
)

from .base import COPY_SCOPE, TaskHandle

__all__ = ["AlgoliaBackend"]

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_POLL_INTERVAL = 0.5
_DEFAULT_MAX_ATTEMPTS = 4
_BACKOFF_BASE = 0.5
_BACKOFF_MULTIPLIER = 2.0
_BACKOFF_CAP = 8.0
_JITTER_RATIO = 0.2


def _index_path(index: str, *parts: str) -> str:
    suffix = "".join(f"/{part}" for part in parts)
    return f"/1/indexes/{quote(index, safe='')}{suffix}"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return response.reason_phrase


class AlgoliaBackend:
    """Talk to the Algolia REST API through :class:`httpx.AsyncClient`.

    Transport errors, ``429`` and ``5xx`` responses are retried with capped
    exponential backoff and jitter. Task completion is polled every
    ``task_poll_interval`` seconds with no local deadline.
    """

    def __init__(
        self,
        *,
        app_id: str,
        api_key: str,
        host: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        task_poll_interval: float = _DEFAULT_POLL_INTERVAL,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Logger | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._poll_interval = task_poll_interval
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._logger = logger or get_logger(__name__, component="algolia")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=host or f"https://{app_id}.algolia.net",
            timeout=timeout,
        )
        self._client.headers.update(
            {
                "X-Algolia-Application-Id": app_id,
                "X-Algolia-API-Key": api_key,
            }
        )
        self.stats = {"requests": 0, "retries": 0, "failures": 0}

    # ------------------------------------------------------------------#
    # HTTP plumbing
    # ------------------------------------------------------------------#
    def _backoff(self, attempt: int) -> float:
        base = _BACKOFF_BASE * (_BACKOFF_MULTIPLIER ** (attempt - 1))
        base = min(base, _BACKOFF_CAP)
        jitter = 1.0 + self._rng.uniform(-_JITTER_RATIO, _JITTER_RATIO)
        return round(base * jitter, 2)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        index: str,
        payload: Mapping[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        status: int | None = None
        for attempt in range(1, self._max_attempts + 1):
            self.stats["requests"] += 1
            try:
                response = await self._client.request(
                    method,
                    path,
                    json=payload,
                )
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                reason = exc.__class__.__name__
                status = None
            else:
                status = response.status_code
                if status == 404 and allow_missing:
                    return None
                if status < 400:
                    return response.json()
                if status != 429 and status < 500:
                    self.stats["failures"] += 1
                    raise RemoteRequestError(
                        _error_message(response),
                        operation=operation,
                        index=index,
                        status_code=status,
                    )
                reason = _error_message(response)

            if attempt == self._max_attempts:
                break
            delay = self._backoff(attempt)
            self.stats["retries"] += 1
            self._logger.warning(
                "algolia-request-retry",
                operation=operation,
                index=index,
                attempt=attempt,
                max_attempts=self._max_attempts,
                retry_delay=delay,
                status_code=status,
                reason=reason,
            )
            await self._sleep(delay)

        self.stats["failures"] += 1
        raise RemoteRetryableError(
            f"{operation} on {index} failed after {self._max_attempts} "
            "attempts",
            operation=operation,
            index=index,
            status_code=status,
            attempts=self._max_attempts,
        )

    def _task(self, payload: dict[str, Any] | None, index: str) -> TaskHandle:
        task_id = (payload or {}).get("taskID")
        if not isinstance(task_id, int):
            raise RemoteTaskError(
                "Response did not include a taskID",
                operation="task",
                index=index,
            )
        return TaskHandle(index=index, task_id=task_id)

    async def _batch(
        self,
        index: str,
        requests: list[dict[str, Any]],
        *,
        operation: str,
    ) -> TaskHandle:
        payload = await self._request(
            "POST",
            _index_path(index, "batch"),
            operation=operation,
            index=index,
            payload={"requests": requests},
        )
        return self._task(payload, index)

    # ------------------------------------------------------------------#
    # SearchBackend
    # ------------------------------------------------------------------#
    async def has_records(self, index: str) -> bool:
        payload = await self._request(
            "POST",
            _index_path(index, "query"),
            operation="has_records",
            index=index,
            payload={"query": "", "hitsPerPage": 0},
            allow_missing=True,
        )
        if payload is None:
            return False
        return int(payload.get("nbHits", 0)) > 0

    async def browse(
        self,
        index: str,
        attributes: Sequence[str],
    ) -> dict[str, dict[str, Any]]:
        hits: dict[str, dict[str, Any]] = {}
        body: dict[str, Any] = {"attributesToRetrieve": list(attributes)}
        while True:
            payload = await self._request(
                "POST",
                _index_path(index, "browse"),
                operation="browse",
                index=index,
                payload=body,
                allow_missing=True,
            )
            if payload is None:
                return hits
            for hit in payload.get("hits", ()):
                hits[str(hit["objectID"])] = hit
            cursor = payload.get("cursor")
            if not cursor:
                return hits
            body = {"cursor": cursor}

    async def add_records(
        self,
        index: str,
        records: Sequence[Mapping[str, Any]],
    ) -> TaskHandle:
        requests = [
            {"action": "updateObject", "body": dict(record)}
            for record in records
        ]
        return await self._batch(index, requests, operation="add_records")

    async def delete_records(
        self,
        index: str,
        object_ids: Sequence[str],
    ) -> TaskHandle:
        requests = [
            {"action": "deleteObject", "body": {"objectID": object_id}}
            for object_id in object_ids
        ]
        return await self._batch(index, requests, operation="delete_records")

    async def set_settings(
        self,
        index: str,
        settings: Mapping[str, Any],
    ) -> TaskHandle:
        payload = await self._request(
            "PUT",
            _index_path(index, "settings"),
            operation="set_settings",
            index=index,
            payload=dict(settings),
        )
        return self._task(payload, index)

    async def copy_scope(
        self,
        source: str,
        target: str,
        scope: Sequence[str] = COPY_SCOPE,
    ) -> TaskHandle:
        payload = await self._request(
            "POST",
            _index_path(source, "operation"),
            operation="copy_scope",
            index=source,
            payload={
                "operation": "copy",
                "destination": target,
                "scope": list(scope),
            },
        )
        return self._task(payload, target)

    async def move_index(self, source: str, target: str) -> TaskHandle:
        payload = await self._request(
            "POST",
            _index_path(source, "operation"),
            operation="move_index",
            index=source,
            payload={"operation": "move", "destination": target},
        )
        return self._task(payload, target)

    async def wait_task(self, task: TaskHandle) -> None:
        path = _index_path(task.index, "task", str(task.task_id))
        while True:
            payload = await self._request(
                "GET",
                path,
                operation="wait_task",
                index=task.index,
            )
            status = (payload or {}).get("status")
            if status == "published":
                return
            if status != "notPublished":
                raise RemoteTaskError(
                    f"Task {task.task_id} reported status {status!r}",
                    operation="wait_task",
                    index=task.index,
                    task_id=task.task_id,
                )
            await self._sleep(self._poll_interval)

    async def aclose(self) -> None:
        self._logger.info("algolia-client-closed", **self.stats)
        if self._owns_client:
            await self._client.aclose()
