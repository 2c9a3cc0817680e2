"""Monitor scheduler: one cancellable asyncio timer task per enabled monitor.

Each timer sleeps until the monitor's next run time, then ticks every period. A tick spawns
the firing as its own task so cancelling the timer never interrupts a run in flight; a
per-monitor busy flag makes a tick that lands while the previous firing is still running a
no-op (skipped, not queued).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

from .alerts import AlertNotifier, evaluate_thresholds
from .engine import Executor
from .exceptions import CourierRunnerError
from .logging_config import get_logger
from .models import (
    Collection,
    Environment,
    KeyValuePair,
    Monitor,
    MonitorRunRecord,
    RequestSummary,
    RunResult,
    ScheduleInterval,
    new_id,
    now_ms,
)
from .monitors import MonitorStore
from .runner import run_collection

logger = get_logger("scheduler")

# Period per schedule, in seconds
SCHEDULE_INTERVALS: dict[ScheduleInterval, float] = {
    ScheduleInterval.EVERY_5_MINUTES: 5 * 60,
    ScheduleInterval.EVERY_15_MINUTES: 15 * 60,
    ScheduleInterval.HOURLY: 60 * 60,
    ScheduleInterval.EVERY_6_HOURS: 6 * 60 * 60,
    ScheduleInterval.DAILY: 24 * 60 * 60,
}

RecordCallback = Callable[[MonitorRunRecord], None]


def interval_seconds(
    schedule: ScheduleInterval,
    intervals: Mapping[ScheduleInterval, float] = SCHEDULE_INTERVALS,
) -> float:
    return intervals.get(schedule, intervals[ScheduleInterval.HOURLY])


def next_run_time(monitor: Monitor, intervals: Mapping[ScheduleInterval, float] = SCHEDULE_INTERVALS) -> int:
    """Epoch ms of the next firing: last run (or creation) plus one period."""
    last = monitor.last_run_at if monitor.last_run_at is not None else monitor.created_at
    return last + int(interval_seconds(monitor.schedule, intervals) * 1000)


def is_monitor_due(
    monitor: Monitor,
    now: int | None = None,
    intervals: Mapping[ScheduleInterval, float] = SCHEDULE_INTERVALS,
) -> bool:
    if not monitor.enabled:
        return False
    now = now_ms() if now is None else now
    return now - (monitor.last_run_at or 0) >= interval_seconds(monitor.schedule, intervals) * 1000


class MonitorScheduler:
    def __init__(
        self,
        store: MonitorStore,
        collections: list[Collection],
        environments: list[Environment],
        global_vars: list[KeyValuePair],
        executor: Executor,
        notifier: AlertNotifier | None = None,
        intervals: Mapping[ScheduleInterval, float] = SCHEDULE_INTERVALS,
        on_record: RecordCallback | None = None,
    ) -> None:
        self._store = store
        self._collections = collections
        self._environments = environments
        self._global_vars = global_vars
        self._executor = executor
        self._notifier = notifier
        self._intervals = intervals
        self._on_record = on_record
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._busy: set[str] = set()
        self._inflight: set[asyncio.Task[MonitorRunRecord | None]] = set()

    @property
    def scheduled_ids(self) -> set[str]:
        return set(self._timers)

    def is_busy(self, monitor_id: str) -> bool:
        return monitor_id in self._busy

    # --- lifecycle --------------------------------------------------------

    def schedule(self, monitor: Monitor) -> None:
        """Create (or replace) the timer for an enabled monitor; a disabled one is cancelled."""
        self.cancel(monitor.id)
        if not monitor.enabled:
            return
        period = interval_seconds(monitor.schedule, self._intervals)
        delay = max(0.0, (next_run_time(monitor, self._intervals) - now_ms()) / 1000)
        self._timers[monitor.id] = asyncio.create_task(
            self._timer(monitor.id, delay, period), name=f"monitor-timer-{monitor.id}"
        )
        logger.debug("Scheduled monitor %s every %ss (first in %.1fs)", monitor.name, period, delay)

    def cancel(self, monitor_id: str) -> bool:
        """Stop future ticks. A firing already in flight runs to completion."""
        task = self._timers.pop(monitor_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def sync(self, monitors: list[Monitor] | None = None) -> None:
        """Reconcile timers with the given (or stored) monitors."""
        monitors = self._store.list() if monitors is None else monitors
        wanted = {m.id for m in monitors if m.enabled}
        for monitor_id in list(self._timers):
            if monitor_id not in wanted:
                self.cancel(monitor_id)
        for monitor in monitors:
            if monitor.enabled and monitor.id not in self._timers:
                self.schedule(monitor)

    def add(self, monitor: Monitor) -> Monitor:
        stored = self._store.add(monitor)
        self.schedule(stored)
        return stored

    def remove(self, monitor_id: str) -> bool:
        self.cancel(monitor_id)
        return self._store.remove(monitor_id)

    def set_enabled(self, monitor_id: str, enabled: bool) -> Monitor | None:
        monitor = self._store.update(monitor_id, enabled=enabled)
        if monitor is not None:
            self.schedule(monitor)
        return monitor

    async def close(self) -> None:
        """Cancel every timer and wait for in-flight firings to finish."""
        timers = list(self._timers.values())
        for monitor_id in list(self._timers):
            self.cancel(monitor_id)
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _timer(self, monitor_id: str, delay: float, period: float) -> None:
        await asyncio.sleep(delay)
        while True:
            self._spawn(monitor_id)
            await asyncio.sleep(period)

    def _spawn(self, monitor_id: str) -> None:
        if monitor_id in self._busy:
            logger.warning("Monitor %s still running; skipping this tick", monitor_id)
            return
        task = asyncio.create_task(self.fire(monitor_id), name=f"monitor-run-{monitor_id}")
        self._inflight.add(task)
        task.add_done_callback(self._firing_done)

    def _firing_done(self, task: asyncio.Task[MonitorRunRecord | None]) -> None:
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Monitor firing failed: %s", task.exception(), exc_info=task.exception())

    # --- firing -----------------------------------------------------------

    async def fire(self, monitor_id: str) -> MonitorRunRecord | None:
        """
        Run the monitor once. Returns None without running when the monitor is unknown,
        disabled or already mid-run.
        """
        monitor = self._store.get(monitor_id)
        if monitor is None:
            logger.debug("Monitor %s not found; nothing to fire", monitor_id)
            return None
        if not monitor.enabled:
            logger.debug("Monitor %s is disabled; not firing", monitor.name)
            return None
        if monitor_id in self._busy:
            logger.warning("Monitor %s is already running; firing skipped", monitor.name)
            return None
        self._busy.add(monitor_id)
        try:
            return await self._run(monitor)
        finally:
            self._busy.discard(monitor_id)

    async def _run(self, monitor: Monitor) -> MonitorRunRecord:
        start = now_ms()
        collection = next((c for c in self._collections if c.id == monitor.collection_id), None)
        result: RunResult | None = None
        if collection is None:
            logger.warning("Monitor %s references unknown collection %s", monitor.name, monitor.collection_id)
        else:
            try:
                result = await run_collection(
                    collection,
                    monitor.environment_id,
                    self._environments,
                    self._global_vars,
                    self._executor,
                    folder_id=monitor.folder_id,
                )
            except CourierRunnerError as e:
                logger.warning("Monitor %s could not run: %s", monitor.name, e)

        if result is None:
            record = MonitorRunRecord(
                id=new_id("run"),
                monitor_id=monitor.id,
                monitor_name=monitor.name,
                start_time=start,
                end_time=now_ms(),
                passed=False,
                total_requests=0,
                passed_tests=0,
                failed_tests=0,
                max_response_time_ms=0,
                min_status_code=0,
            )
            breaches: list[str] = []
        else:
            breaches = evaluate_thresholds(monitor.thresholds, result)
            record = _build_record(monitor, result, breaches)

        self._store.add_run(record)
        self._store.update(monitor.id, last_run_at=record.end_time)
        logger.info(
            "Monitor %s finished: passed=%s, requests=%d, breaches=%d",
            monitor.name,
            record.passed,
            record.total_requests,
            len(breaches),
        )
        if breaches and self._notifier is not None:
            await self._notifier.notify(monitor, record)
        if self._on_record is not None:
            self._on_record(record)
        return record


def _build_record(monitor: Monitor, result: RunResult, breaches: list[str]) -> MonitorRunRecord:
    return MonitorRunRecord(
        id=result.run_id,
        monitor_id=monitor.id,
        monitor_name=monitor.name,
        start_time=result.start_time,
        end_time=result.end_time,
        passed=result.failed_requests == 0 and not breaches,
        total_requests=result.total_requests,
        passed_tests=result.passed_tests,
        failed_tests=result.failed_tests,
        max_response_time_ms=result.max_response_time_ms,
        min_status_code=result.min_status_code,
        breaches=tuple(breaches),
        items_summary=tuple(
            RequestSummary(
                request_name=i.request_name,
                method=i.method,
                passed=i.passed,
                status_code=i.status_code,
                response_time_ms=i.response_time_ms,
                failed_tests=i.failed_tests,
            )
            for i in result.items
        ),
    )
