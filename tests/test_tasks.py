"""Tests for the background batch runner and completion webhooks."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from pagecapture.batch.dispatcher import BatchDispatcher
from pagecapture.batch.models import BatchRecord, FailedItem, SucceededItem
from pagecapture.batch.store import BatchStatusStore
from pagecapture.batch.tasks import (
    callback_allowed,
    completion_payload,
    notify_completion,
    parse_allowed_hosts,
    run_batch,
)
from pagecapture.capture.models import CaptureResult
from pagecapture.capture.retry import RetryConfig

_REAL_ASYNC_CLIENT = httpx.AsyncClient
_NO_DELAY = RetryConfig(max_attempts=3)
HOOK = "https://hooks.example.com/done"


def _client_factory(handler):
    def factory(**kwargs):
        return _REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    return factory


def _finished_record():
    record = BatchRecord.start("b1", total=2)
    record.record_success(SucceededItem(id="a", path="out/a.png", attempts=1))
    record.record_failure(FailedItem(id="b", error="boom", kind="RetriesExhausted", attempts=3))
    record.mark_completed()
    return record


def _post_recorder(*statuses):
    """Handler answering with *statuses* in turn; ``None`` means a refused connection."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status = statuses[min(len(calls), len(statuses)) - 1]
        if status is None:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(status)

    return handler, calls


class TestAllowedHosts:
    def test_parse_strips_and_lowercases(self):
        assert parse_allowed_hosts(" Hooks.Example.com , ,other.io") == {"hooks.example.com", "other.io"}

    def test_allowed_host(self):
        assert callback_allowed(HOOK, parse_allowed_hosts("hooks.example.com"))

    def test_host_comparison_is_case_insensitive(self):
        assert callback_allowed("https://HOOKS.example.com/done", parse_allowed_hosts("hooks.example.com"))

    def test_empty_allow_list_rejects_everything(self):
        assert not callback_allowed(HOOK, parse_allowed_hosts(""))

    @pytest.mark.parametrize(
        "url",
        [
            "https://evil.example.net/",
            "ftp://hooks.example.com/",
            "https://user:pw@hooks.example.com/",
            "https:///no-host",
        ],
    )
    def test_rejected_urls(self, url):
        assert not callback_allowed(url, parse_allowed_hosts("hooks.example.com"))


def test_completion_payload_summarises_record():
    payload = completion_payload(_finished_record())

    assert payload["batch_id"] == "b1"
    assert payload["status"] == "completed"
    assert (payload["total"], payload["successful"], payload["failed"]) == (2, 1, 1)
    assert payload["failed_ids"] == ["b"]
    assert payload["duration_ms"] is not None
    assert payload["status_url"] == "/api/batch/b1/status"


@pytest.mark.asyncio
async def test_notify_posts_summary_json():
    handler, calls = _post_recorder(200)
    record = _finished_record()

    with patch("pagecapture.batch.tasks.httpx.AsyncClient", side_effect=_client_factory(handler)):
        ok = await notify_completion(HOOK, record, _NO_DELAY)

    assert ok is True
    [request] = calls
    assert request.method == "POST"
    assert json.loads(request.content) == completion_payload(record)


@pytest.mark.asyncio
async def test_notify_retries_server_errors_then_succeeds():
    handler, calls = _post_recorder(503, 502, 204)

    with patch("pagecapture.batch.tasks.httpx.AsyncClient", side_effect=_client_factory(handler)):
        ok = await notify_completion(HOOK, _finished_record(), _NO_DELAY)

    assert ok is True
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_notify_does_not_retry_client_errors():
    handler, calls = _post_recorder(404)

    with patch("pagecapture.batch.tasks.httpx.AsyncClient", side_effect=_client_factory(handler)):
        ok = await notify_completion(HOOK, _finished_record(), _NO_DELAY)

    assert ok is False
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_notify_retries_connection_errors():
    handler, calls = _post_recorder(None, 200)

    with patch("pagecapture.batch.tasks.httpx.AsyncClient", side_effect=_client_factory(handler)):
        ok = await notify_completion(HOOK, _finished_record(), _NO_DELAY)

    assert ok is True
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_notify_gives_up_after_max_attempts():
    handler, calls = _post_recorder(None)

    with patch("pagecapture.batch.tasks.httpx.AsyncClient", side_effect=_client_factory(handler)):
        ok = await notify_completion(HOOK, _finished_record(), _NO_DELAY)

    assert ok is False
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_notify_backs_off_between_attempts():
    handler, _ = _post_recorder(None)
    retry = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=30.0)

    with patch("pagecapture.batch.tasks.httpx.AsyncClient", side_effect=_client_factory(handler)), patch(
        "pagecapture.batch.tasks.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        await notify_completion(HOOK, _finished_record(), retry)

    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


async def _dispatcher(ids):
    store = BatchStatusStore()
    await store.put("b1", BatchRecord.start("b1", total=len(ids)))

    async def run_item(item_id):
        return CaptureResult(item_id=item_id, success=True, output_path=Path(f"{item_id}.png"))

    return BatchDispatcher(store, "b1", ids, run_item)


@pytest.mark.asyncio
@patch("pagecapture.batch.tasks.notify_completion", new_callable=AsyncMock)
async def test_run_batch_notifies_with_final_record(mock_notify):
    dispatcher = await _dispatcher(["a", "b"])

    await run_batch(dispatcher, "b1", HOOK)

    mock_notify.assert_awaited_once()
    url, record = mock_notify.call_args.args
    assert url == HOOK
    assert record.is_completed
    assert (record.successful, record.failed) == (2, 0)


@pytest.mark.asyncio
@patch("pagecapture.batch.tasks.notify_completion", new_callable=AsyncMock)
async def test_run_batch_without_callback_url_notifies_nobody(mock_notify):
    dispatcher = await _dispatcher(["a"])

    await run_batch(dispatcher, "b1")

    mock_notify.assert_not_awaited()


@pytest.mark.asyncio
@patch("pagecapture.batch.tasks.notify_completion", new_callable=AsyncMock)
async def test_run_batch_swallows_dispatch_errors(mock_notify):
    dispatcher = await _dispatcher(["a"])
    dispatcher.run = AsyncMock(side_effect=RuntimeError("store gone"))

    await run_batch(dispatcher, "b1", HOOK)

    mock_notify.assert_not_awaited()
