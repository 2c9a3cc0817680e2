"""Unit tests for the monitor scheduler."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from courier.models import (
    ApiRequest,
    ApiResponse,
    Assertion,
    AssertionType,
    Collection,
    Monitor,
    MonitorThresholds,
    ScheduleInterval,
)
from courier.monitors import MonitorStore
from courier.scheduler import MonitorScheduler, interval_seconds, is_monitor_due, next_run_time
from courier.storage import MemoryStore

FAST_INTERVALS = {s: 0.01 for s in ScheduleInterval}


def _collection() -> Collection:
    return Collection(
        id="c1",
        name="Health",
        requests=[ApiRequest(id="r1", name="Ping", url="https://a.test/ping", assertions=[Assertion(AssertionType.STATUS, 200)])],
    )


def _monitor(**kwargs) -> Monitor:
    defaults = {"id": "m1", "name": "Ping monitor", "collection_id": "c1", "created_at": 1}
    defaults.update(kwargs)
    return Monitor(**defaults)


class BlockingExecutor:
    """Executor that parks every call until released."""

    def __init__(self, status: int = 200) -> None:
        self.calls = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.status = status

    async def __call__(self, request: ApiRequest) -> ApiResponse:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return ApiResponse(status=self.status, time_ms=1.0)


def test_interval_helpers() -> None:
    assert interval_seconds(ScheduleInterval.EVERY_5_MINUTES) == 300
    assert interval_seconds(ScheduleInterval.DAILY) == 86400
    monitor = _monitor(schedule=ScheduleInterval.EVERY_15_MINUTES, created_at=1000)
    assert next_run_time(monitor) == 1000 + 15 * 60 * 1000
    monitor.last_run_at = 5000
    assert next_run_time(monitor) == 5000 + 15 * 60 * 1000


def test_is_monitor_due() -> None:
    monitor = _monitor(schedule=ScheduleInterval.EVERY_5_MINUTES, last_run_at=0)
    assert is_monitor_due(monitor, now=300_000)
    assert not is_monitor_due(monitor, now=299_999)
    monitor.enabled = False
    assert not is_monitor_due(monitor, now=10**12)


def test_fire_records_run_and_updates_last_run(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor())
    records = []
    scheduler = MonitorScheduler(store, [_collection()], [], [], stub_executor(), on_record=records.append)
    record = asyncio.run(scheduler.fire("m1"))
    assert record.passed
    assert record.total_requests == 1
    assert record.items_summary[0].request_name == "Ping"
    assert records == [record]
    assert store.run_history() == [record]
    assert store.get("m1").last_run_at == record.end_time


def test_fire_unknown_or_disabled_returns_none(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor(enabled=False))
    executor = stub_executor()
    scheduler = MonitorScheduler(store, [_collection()], [], [], executor)
    assert asyncio.run(scheduler.fire("m1")) is None
    assert asyncio.run(scheduler.fire("missing")) is None
    assert executor.calls == []
    assert store.run_history() == []


def test_fire_skipped_while_in_flight_then_starts_normally() -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor())

    async def run() -> None:
        executor = BlockingExecutor()
        scheduler = MonitorScheduler(store, [_collection()], [], [], executor)
        first = asyncio.create_task(scheduler.fire("m1"))
        await executor.started.wait()
        assert scheduler.is_busy("m1")
        assert await scheduler.fire("m1") is None
        executor.release.set()
        record = await first
        assert record is not None
        assert not scheduler.is_busy("m1")
        assert executor.calls == 1
        again = await scheduler.fire("m1")
        assert again is not None
        assert again.id != record.id
        assert executor.calls == 2

    asyncio.run(run())
    assert len(store.run_history()) == 2


def test_breach_notifies_once_and_marks_failed(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor(thresholds=MonitorThresholds(max_response_time_ms=100)))
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    executor = stub_executor(lambda r: ApiResponse(status=200, time_ms=500.0))
    scheduler = MonitorScheduler(store, [_collection()], [], [], executor, notifier=notifier)
    record = asyncio.run(scheduler.fire("m1"))
    assert not record.passed
    assert len(record.breaches) == 1
    notifier.notify.assert_awaited_once()
    monitor_arg, record_arg = notifier.notify.await_args.args
    assert monitor_arg.id == "m1"
    assert record_arg is record


def test_passing_run_does_not_notify(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor())
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    scheduler = MonitorScheduler(store, [_collection()], [], [], stub_executor(), notifier=notifier)
    asyncio.run(scheduler.fire("m1"))
    notifier.notify.assert_not_awaited()


def test_missing_collection_records_failed_run_without_alert(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor(collection_id="gone"))
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    scheduler = MonitorScheduler(store, [_collection()], [], [], stub_executor(), notifier=notifier)
    record = asyncio.run(scheduler.fire("m1"))
    assert not record.passed
    assert record.total_requests == 0
    assert record.breaches == ()
    notifier.notify.assert_not_awaited()


def test_unknown_folder_records_failed_run(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor(folder_id="nope"))
    executor = stub_executor()
    scheduler = MonitorScheduler(store, [_collection()], [], [], executor)
    record = asyncio.run(scheduler.fire("m1"))
    assert not record.passed
    assert executor.calls == []


def test_timer_ticks_and_close(stub_executor) -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor())
    executor = stub_executor()

    async def run() -> None:
        scheduler = MonitorScheduler(store, [_collection()], [], [], executor, intervals=FAST_INTERVALS)
        scheduler.sync()
        assert scheduler.scheduled_ids == {"m1"}
        await asyncio.sleep(0.1)
        await scheduler.close()
        assert scheduler.scheduled_ids == set()

    asyncio.run(run())
    assert len(executor.calls) >= 2
    assert len(store.run_history()) == len(executor.calls)


def test_tick_skipped_while_busy() -> None:
    store = MonitorStore(MemoryStore())
    store.add(_monitor())

    async def run() -> int:
        executor = BlockingExecutor()
        scheduler = MonitorScheduler(store, [_collection()], [], [], executor, intervals=FAST_INTERVALS)
        scheduler.sync()
        await executor.started.wait()
        await asyncio.sleep(0.05)
        scheduler.cancel("m1")
        executor.release.set()
        await scheduler.close()
        return executor.calls

    assert asyncio.run(run()) == 1
    assert len(store.run_history()) == 1


def test_schedule_cancel_and_set_enabled(stub_executor) -> None:
    store = MonitorStore(MemoryStore())

    async def run() -> None:
        scheduler = MonitorScheduler(store, [_collection()], [], [], stub_executor())
        scheduler.add(_monitor(created_at=0, last_run_at=None, schedule=ScheduleInterval.DAILY))
        assert scheduler.scheduled_ids == {"m1"}
        assert scheduler.set_enabled("m1", False).enabled is False
        assert scheduler.scheduled_ids == set()
        scheduler.set_enabled("m1", True)
        assert scheduler.scheduled_ids == {"m1"}
        assert scheduler.cancel("m1") is True
        assert scheduler.cancel("m1") is False
        scheduler.schedule(store.get("m1"))
        assert scheduler.remove("m1") is True
        assert scheduler.scheduled_ids == set()
        assert store.list() == []
        await scheduler.close()

    asyncio.run(run())


def test_sync_drops_disabled_monitors(stub_executor) -> None:
    store = MonitorStore(MemoryStore())

    async def run() -> None:
        scheduler = MonitorScheduler(store, [_collection()], [], [], stub_executor())
        scheduler.sync([_monitor(id="a", schedule=ScheduleInterval.DAILY, created_at=10**13), _monitor(id="b", enabled=False)])
        assert scheduler.scheduled_ids == {"a"}
        scheduler.sync([])
        assert scheduler.scheduled_ids == set()
        await scheduler.close()

    asyncio.run(run())
