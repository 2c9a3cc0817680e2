"""Persistence port and request history.

State is stored as JSON text under namespaced keys behind a minimal get/set/delete contract,
so the same stores work in memory (tests, one-shot runs) and on disk (monitor daemon).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Protocol

import orjson

from .logging_config import get_logger
from .models import ApiRequest, ApiResponse, HistoryEntry, now_ms

logger = get_logger("storage")

HISTORY_KEY = "courier-history"
DEFAULT_HISTORY_LIMIT = 50

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore:
    """One ``<key>.json`` file per key under a directory (created on first write)."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def load_json_list(store: KeyValueStore, key: str) -> list[Any]:
    """Stored JSON array under key; missing or corrupt data reads as empty."""
    raw = store.get(key)
    if not raw:
        return []
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError:
        logger.warning("Stored data under %s is corrupt; treating as empty", key)
        return []
    return value if isinstance(value, list) else []


def save_json_list(store: KeyValueStore, key: str, values: list[Any]) -> None:
    store.set(key, orjson.dumps(values).decode("utf-8"))


class HistoryStore:
    """Executed requests, newest first, capped at limit."""

    def __init__(self, store: KeyValueStore, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._store = store
        self.limit = limit

    def entries(self) -> list[HistoryEntry]:
        return [HistoryEntry.from_dict(e) for e in load_json_list(self._store, HISTORY_KEY) if isinstance(e, dict)]

    def save(self, request: ApiRequest, response: ApiResponse, timestamp: int | None = None) -> HistoryEntry:
        entry = HistoryEntry(request=request, response=response, timestamp=now_ms() if timestamp is None else timestamp)
        raw = [entry.to_dict(), *load_json_list(self._store, HISTORY_KEY)]
        save_json_list(self._store, HISTORY_KEY, raw[: self.limit])
        return entry

    def clear(self) -> None:
        self._store.delete(HISTORY_KEY)
