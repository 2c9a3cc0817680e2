"""Workspace-scoped monitor definitions and the shared monitor run history."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from .logging_config import get_logger
from .models import Monitor, MonitorRunRecord, new_id, now_ms
from .storage import KeyValueStore, load_json_list, save_json_list

logger = get_logger("monitors")

MONITORS_KEY_PREFIX = "courier-monitors-"
RUN_HISTORY_KEY = "courier-monitor-runs"
DEFAULT_RUN_HISTORY_LIMIT = 500


def monitors_key(workspace_id: str) -> str:
    return f"{MONITORS_KEY_PREFIX}{workspace_id}"


class MonitorStore:
    def __init__(
        self,
        store: KeyValueStore,
        workspace_id: str = "default",
        run_history_limit: int = DEFAULT_RUN_HISTORY_LIMIT,
    ) -> None:
        self._store = store
        self.workspace_id = workspace_id
        self.run_history_limit = run_history_limit

    def _save(self, monitors: list[Monitor]) -> None:
        save_json_list(self._store, monitors_key(self.workspace_id), [m.to_dict() for m in monitors])

    def list(self) -> list[Monitor]:
        raw = load_json_list(self._store, monitors_key(self.workspace_id))
        return [Monitor.from_dict(m) for m in raw if isinstance(m, dict)]

    def get(self, monitor_id: str) -> Monitor | None:
        return next((m for m in self.list() if m.id == monitor_id), None)

    def add(self, monitor: Monitor) -> Monitor:
        """Persist a new monitor. A missing id or createdAt is filled in."""
        if not monitor.id:
            monitor = replace(monitor, id=new_id("mon"))
        if not monitor.created_at:
            monitor = replace(monitor, created_at=now_ms())
        monitors = [m for m in self.list() if m.id != monitor.id]
        monitors.append(monitor)
        self._save(monitors)
        logger.debug("Added monitor %s (%s)", monitor.name, monitor.id)
        return monitor

    def update(self, monitor_id: str, **changes: Any) -> Monitor | None:
        """Apply field changes (dataclass field names) and return the updated monitor."""
        monitors = self.list()
        updated: Monitor | None = None
        for i, m in enumerate(monitors):
            if m.id == monitor_id:
                updated = replace(m, **changes)
                monitors[i] = updated
        if updated is not None:
            self._save(monitors)
        return updated

    def remove(self, monitor_id: str) -> bool:
        monitors = self.list()
        kept = [m for m in monitors if m.id != monitor_id]
        if len(kept) == len(monitors):
            return False
        self._save(kept)
        return True

    def add_run(self, record: MonitorRunRecord) -> None:
        """Prepend a run record; history is shared across workspaces and capped."""
        raw = [record.to_dict(), *load_json_list(self._store, RUN_HISTORY_KEY)]
        save_json_list(self._store, RUN_HISTORY_KEY, raw[: self.run_history_limit])

    def run_history(self, limit: int | None = None, monitor_id: str | None = None) -> list[MonitorRunRecord]:
        """Run records newest first (by start time), optionally for one monitor."""
        records = [
            MonitorRunRecord.from_dict(r) for r in load_json_list(self._store, RUN_HISTORY_KEY) if isinstance(r, dict)
        ]
        if monitor_id is not None:
            records = [r for r in records if r.monitor_id == monitor_id]
        records.sort(key=lambda r: r.start_time, reverse=True)
        return records[:limit] if limit else records
