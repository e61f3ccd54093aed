"""Tests for :mod:`searchsync.remote.algolia` against a mocked transport."""

from __future__ import annotations

import json
import random
from typing import Any, Callable, Iterable

import httpx
import pytest
from structlog.testing import capture_logs

from searchsync.errors import RemoteRequestError, RemoteRetryableError, RemoteTaskError
from searchsync.remote import AlgoliaBackend, TaskHandle


class _Script:
    """Serve scripted responses and remember every request."""

    def __init__(
        self,
        responses: Iterable[httpx.Response | Exception | Callable[[httpx.Request], httpx.Response]],
    ) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def body(self, position: int) -> Any:
        return json.loads(self.requests[position].content)


def _backend(script: _Script, **kwargs: Any) -> tuple[AlgoliaBackend, list[float]]:
    sleeps: list[float] = []

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(script),
        base_url="https://APP.algolia.net",
    )
    backend = AlgoliaBackend(
        app_id="APP",
        api_key="secret",
        client=client,
        sleep=_sleep,
        rng=random.Random(7),
        **kwargs,
    )
    return backend, sleeps


@pytest.mark.asyncio
async def test_add_records_posts_batch_and_returns_task() -> None:
    script = _Script([httpx.Response(200, json={"taskID": 11})])
    backend, _ = _backend(script)

    handle = await backend.add_records("docs", [{"objectID": "1", "title": "a"}])

    assert handle == TaskHandle(index="docs", task_id=11)
    request = script.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/1/indexes/docs/batch"
    assert request.headers["X-Algolia-Application-Id"] == "APP"
    assert request.headers["X-Algolia-API-Key"] == "secret"
    assert script.body(0) == {
        "requests": [
            {"action": "updateObject", "body": {"objectID": "1", "title": "a"}}
        ]
    }


@pytest.mark.asyncio
async def test_delete_records_uses_delete_actions() -> None:
    script = _Script([httpx.Response(200, json={"taskID": 3})])
    backend, _ = _backend(script)

    await backend.delete_records("docs", ["1", "2"])

    assert [item["action"] for item in script.body(0)["requests"]] == [
        "deleteObject",
        "deleteObject",
    ]


@pytest.mark.asyncio
async def test_has_records_treats_missing_index_as_empty() -> None:
    script = _Script(
        [
            httpx.Response(404, json={"message": "Index does not exist"}),
            httpx.Response(200, json={"nbHits": 3}),
            httpx.Response(200, json={"nbHits": 0}),
        ]
    )
    backend, _ = _backend(script)

    assert await backend.has_records("docs") is False
    assert await backend.has_records("docs") is True
    assert await backend.has_records("docs") is False
    assert script.body(0) == {"query": "", "hitsPerPage": 0}


@pytest.mark.asyncio
async def test_browse_follows_cursor() -> None:
    script = _Script(
        [
            httpx.Response(
                200,
                json={
                    "hits": [{"objectID": "1", "modified": "a"}],
                    "cursor": "next-page",
                },
            ),
            httpx.Response(200, json={"hits": [{"objectID": "2", "modified": "b"}]}),
        ]
    )
    backend, _ = _backend(script)

    hits = await backend.browse("docs", ["modified"])

    assert hits == {
        "1": {"objectID": "1", "modified": "a"},
        "2": {"objectID": "2", "modified": "b"},
    }
    assert script.body(0) == {"attributesToRetrieve": ["modified"]}
    assert script.body(1) == {"cursor": "next-page"}


@pytest.mark.asyncio
async def test_copy_scope_and_move_target_task_handles() -> None:
    script = _Script(
        [
            httpx.Response(200, json={"taskID": 1}),
            httpx.Response(200, json={"taskID": 2}),
        ]
    )
    backend, _ = _backend(script)

    copied = await backend.copy_scope("docs", "docs_tmp")
    moved = await backend.move_index("docs_tmp", "docs")

    assert copied == TaskHandle(index="docs_tmp", task_id=1)
    assert moved == TaskHandle(index="docs", task_id=2)
    assert script.requests[0].url.path == "/1/indexes/docs/operation"
    assert script.body(0) == {
        "operation": "copy",
        "destination": "docs_tmp",
        "scope": ["settings", "synonyms", "rules"],
    }
    assert script.requests[1].url.path == "/1/indexes/docs_tmp/operation"
    assert script.body(1) == {"operation": "move", "destination": "docs"}


@pytest.mark.asyncio
async def test_wait_task_polls_until_published() -> None:
    script = _Script(
        [
            httpx.Response(200, json={"status": "notPublished"}),
            httpx.Response(200, json={"status": "notPublished"}),
            httpx.Response(200, json={"status": "published"}),
        ]
    )
    backend, sleeps = _backend(script, task_poll_interval=0.25)

    await backend.wait_task(TaskHandle(index="docs", task_id=9))

    assert len(script.requests) == 3
    assert script.requests[0].method == "GET"
    assert script.requests[0].url.path == "/1/indexes/docs/task/9"
    assert sleeps == [0.25, 0.25]


@pytest.mark.asyncio
async def test_wait_task_rejects_unknown_status() -> None:
    script = _Script([httpx.Response(200, json={"status": "exploded"})])
    backend, _ = _backend(script)

    with pytest.raises(RemoteTaskError) as excinfo:
        await backend.wait_task(TaskHandle(index="docs", task_id=9))

    assert excinfo.value.task_id == 9


@pytest.mark.asyncio
async def test_retryable_failures_back_off_then_succeed() -> None:
    script = _Script(
        [
            httpx.Response(503, json={"message": "unavailable"}),
            httpx.ConnectError("boom"),
            httpx.Response(429, json={"message": "slow down"}),
            httpx.Response(200, json={"taskID": 5}),
        ]
    )
    backend, sleeps = _backend(script, max_attempts=4)

    handle = await backend.set_settings("docs", {"searchableAttributes": ["title"]})

    assert handle.task_id == 5
    assert len(sleeps) == 3
    # Capped exponential backoff with +/-20% jitter.
    for attempt, delay in enumerate(sleeps, start=1):
        expected = 0.5 * 2 ** (attempt - 1)
        assert expected * 0.8 - 0.01 <= delay <= expected * 1.2 + 0.01
    assert backend.stats == {"requests": 4, "retries": 3, "failures": 0}
    assert script.requests[-1].method == "PUT"


@pytest.mark.asyncio
async def test_retries_exhausted_raise_retryable_error() -> None:
    script = _Script(
        [httpx.Response(500, json={"message": "down"}) for _ in range(2)]
    )
    backend, _ = _backend(script, max_attempts=2)

    with pytest.raises(RemoteRetryableError) as excinfo:
        await backend.add_records("docs", [{"objectID": "1"}])

    assert excinfo.value.attempts == 2
    assert excinfo.value.status_code == 500
    assert excinfo.value.operation == "add_records"


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    script = _Script([httpx.Response(403, json={"message": "Invalid API key"})])
    backend, sleeps = _backend(script)

    with pytest.raises(RemoteRequestError, match="Invalid API key") as excinfo:
        await backend.add_records("docs", [{"objectID": "1"}])

    assert excinfo.value.status_code == 403
    assert excinfo.value.index == "docs"
    assert sleeps == []


@pytest.mark.asyncio
async def test_missing_task_id_is_reported() -> None:
    script = _Script([httpx.Response(200, json={})])
    backend, _ = _backend(script)

    with pytest.raises(RemoteTaskError):
        await backend.add_records("docs", [{"objectID": "1"}])


@pytest.mark.asyncio
async def test_aclose_logs_stats_and_leaves_injected_client_open() -> None:
    script = _Script([httpx.Response(200, json={"nbHits": 1})])
    with capture_logs() as logs:
        backend, _ = _backend(script)
        await backend.aclose()

    closed = [entry for entry in logs if entry["event"] == "algolia-client-closed"]
    assert closed[0]["requests"] == 0
    assert closed[0]["failures"] == 0
    assert await backend.has_records("docs") is True


def test_index_names_are_url_quoted() -> None:
    from searchsync.remote.algolia import _index_path

    assert _index_path("docs/v2", "batch") == "/1/indexes/docs%2Fv2/batch"
