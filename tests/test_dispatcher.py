"""Tests for the concurrency-bounded batch dispatcher."""

import asyncio
from pathlib import Path

import pytest

from pagecapture.batch.dispatcher import BatchDispatcher
from pagecapture.batch.models import BatchRecord, BatchStatus
from pagecapture.batch.store import BatchStatusStore
from pagecapture.capture.errors import ErrorKind
from pagecapture.capture.models import CaptureResult

pytestmark = pytest.mark.asyncio


class Recorder:
    """Collects dispatcher events."""

    def __init__(self):
        self.events = []

    async def __call__(self, event, data):
        self.events.append((event, data))

    def named(self, name):
        return [data for event, data in self.events if event == name]


async def _dispatch(ids, run_item, concurrency=1, on_event=None):
    store = BatchStatusStore()
    await store.put("b1", BatchRecord.start("b1", total=len(ids)))
    dispatcher = BatchDispatcher(store, "b1", ids, run_item, concurrency=concurrency, on_event=on_event)
    record = await dispatcher.run()
    return dispatcher, record, store


def _succeed(item_id):
    return CaptureResult(item_id=item_id, success=True, output_path=Path(f"out/{item_id}.png"))


@pytest.mark.parametrize("concurrency,count", [(1, 5), (2, 3), (3, 10), (5, 2), (4, 4)])
async def test_active_never_exceeds_concurrency(concurrency, count):
    ids = [f"id-{i}" for i in range(count)]
    active = 0
    peak = 0

    async def run_item(item_id):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.001 * (int(item_id.split("-")[1]) % 3))
        active -= 1
        return _succeed(item_id)

    dispatcher, record, _ = await _dispatch(ids, run_item, concurrency)

    assert peak == min(concurrency, count)
    assert dispatcher.peak_active == min(concurrency, count)
    assert dispatcher.active == 0
    assert record.completed == count


async def test_all_successful_batch_completes():
    ids = ["abc123", "def456", "ghi789"]

    async def run_item(item_id):
        await asyncio.sleep(0)
        return _succeed(item_id)

    _, record, store = await _dispatch(ids, run_item, concurrency=2)

    assert record.status == BatchStatus.COMPLETED
    assert (record.total, record.completed, record.successful, record.failed) == (3, 3, 3, 0)
    assert sorted(item.id for item in record.results.success) == sorted(ids)
    assert record.end_time is not None
    assert record.duration_ms >= 0
    assert (await store.get("b1")) == record


async def test_failures_are_recorded_with_kind_and_attempts():
    async def run_item(item_id):
        if item_id == "bad":
            result = CaptureResult.failure(item_id, ErrorKind.RETRIES_EXHAUSTED, "navigation failed")
            return CaptureResult(
                item_id=item_id, success=False, error=result.error, attempts=3
            )
        return _succeed(item_id)

    _, record, _ = await _dispatch(["good", "bad"], run_item)

    assert (record.completed, record.successful, record.failed) == (2, 1, 1)
    [failed] = record.results.failed
    assert failed.id == "bad"
    assert failed.kind == "RetriesExhausted"
    assert failed.attempts == 3
    assert failed.error == "navigation failed"


async def test_runner_exception_becomes_unexpected_failure():
    async def run_item(item_id):
        raise RuntimeError("boom")

    _, record, _ = await _dispatch(["a"], run_item)

    assert record.status == BatchStatus.COMPLETED
    assert record.failed == 1
    assert record.results.failed[0].kind == "UnexpectedError"


async def test_empty_batch_completes_immediately():
    recorder = Recorder()

    async def run_item(item_id):
        raise AssertionError("should not run")

    _, record, _ = await _dispatch([], run_item, on_event=recorder)

    assert record.status == BatchStatus.COMPLETED
    assert (record.total, record.completed) == (0, 0)
    assert len(recorder.named("batch_completed")) == 1


async def test_duplicate_ids_are_processed_independently():
    calls = []

    async def run_item(item_id):
        calls.append(item_id)
        return _succeed(item_id)

    _, record, _ = await _dispatch(["a", "a", "b"], run_item, concurrency=3)

    assert calls.count("a") == 2
    assert (record.total, record.successful) == (3, 3)


async def test_items_start_in_submission_order():
    started = []

    async def run_item(item_id):
        started.append(item_id)
        await asyncio.sleep(0)
        return _succeed(item_id)

    ids = [f"x{i}" for i in range(6)]
    await _dispatch(ids, run_item, concurrency=1)

    assert started == ids


async def test_non_positive_concurrency_is_clamped_to_one():
    store = BatchStatusStore()
    await store.put("b1", BatchRecord.start("b1", total=2))

    async def run_item(item_id):
        await asyncio.sleep(0)
        return _succeed(item_id)

    dispatcher = BatchDispatcher(store, "b1", ["a", "b"], run_item, concurrency=0)
    record = await dispatcher.run()

    assert dispatcher.concurrency == 1
    assert dispatcher.peak_active == 1
    assert record.successful == 2


async def test_counters_stay_consistent_and_completion_fires_once():
    recorder = Recorder()

    async def run_item(item_id):
        await asyncio.sleep(0.001)
        if item_id.endswith("odd"):
            return CaptureResult.failure(item_id, ErrorKind.NAVIGATION_FAILED, "nope")
        return _succeed(item_id)

    ids = [f"{i}-{'odd' if i % 2 else 'even'}" for i in range(8)]
    _, record, _ = await _dispatch(ids, run_item, concurrency=3, on_event=recorder)

    progress = recorder.named("item_completed")
    assert len(progress) == 8
    for data in progress:
        assert data["completed"] == data["successful"] + data["failed"]
        assert data["completed"] <= data["total"]
    assert [data["completed"] for data in progress] == list(range(1, 9))

    [final] = recorder.named("batch_completed")
    assert final["status"] == "completed"
    assert recorder.events[-1][0] == "batch_completed"
    assert (record.successful, record.failed) == (4, 4)


async def test_cancelled_dispatch_leaves_batch_processing():
    store = BatchStatusStore()
    await store.put("b1", BatchRecord.start("b1", total=2))
    started = asyncio.Event()

    async def run_item(item_id):
        started.set()
        await asyncio.sleep(10)
        return _succeed(item_id)

    dispatcher = BatchDispatcher(store, "b1", ["a", "b"], run_item, concurrency=2)
    task = asyncio.create_task(dispatcher.run())
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    record = await store.get("b1")
    assert record.status == BatchStatus.PROCESSING
    assert record.completed == 0
