"""Unit tests for key-value stores and request history."""

from __future__ import annotations

from pathlib import Path

from courier.models import ApiRequest, ApiResponse
from courier.storage import (
    DEFAULT_HISTORY_LIMIT,
    HISTORY_KEY,
    FileStore,
    HistoryStore,
    MemoryStore,
    load_json_list,
    save_json_list,
)


def _req(n: int) -> ApiRequest:
    return ApiRequest(id=f"r{n}", name=f"Request {n}", url=f"https://a.test/{n}")


def test_memory_store_contract() -> None:
    store = MemoryStore()
    assert store.get("k") is None
    store.set("k", "v")
    assert store.get("k") == "v"
    store.delete("k")
    store.delete("k")
    assert store.get("k") is None


def test_file_store_contract(tmp_path: Path) -> None:
    store = FileStore(tmp_path / "state")
    assert store.get("courier-history") is None
    store.set("courier-history", "[1]")
    assert (tmp_path / "state" / "courier-history.json").read_text(encoding="utf-8") == "[1]"
    assert store.get("courier-history") == "[1]"
    store.set("a/b:c", "x")
    assert (tmp_path / "state" / "a_b_c.json").exists()
    store.delete("courier-history")
    assert store.get("courier-history") is None


def test_load_json_list_corrupt_or_wrong_shape() -> None:
    store = MemoryStore()
    store.set("k", "{not json")
    assert load_json_list(store, "k") == []
    store.set("k", '{"a": 1}')
    assert load_json_list(store, "k") == []
    save_json_list(store, "k", [{"a": 1}])
    assert load_json_list(store, "k") == [{"a": 1}]


def test_history_newest_first_and_capped() -> None:
    history = HistoryStore(MemoryStore())
    assert history.limit == DEFAULT_HISTORY_LIMIT == 50
    for n in range(55):
        history.save(_req(n), ApiResponse(status=200, data="ok"), timestamp=n)
    entries = history.entries()
    assert len(entries) == 50
    assert entries[0].request.name == "Request 54"
    assert entries[-1].request.name == "Request 5"
    assert entries[0].timestamp == 54
    assert entries[0].response.data == "ok"


def test_history_clear_and_corrupt_recovery() -> None:
    store = MemoryStore()
    history = HistoryStore(store, limit=3)
    history.save(_req(1), ApiResponse(status=200))
    history.clear()
    assert history.entries() == []
    store.set(HISTORY_KEY, "garbage")
    assert history.entries() == []
    history.save(_req(2), ApiResponse(status=201))
    assert [e.response.status for e in history.entries()] == [201]


def test_history_persists_in_file_store(tmp_path: Path) -> None:
    HistoryStore(FileStore(tmp_path)).save(_req(1), ApiResponse(status=204))
    assert HistoryStore(FileStore(tmp_path)).entries()[0].request.id == "r1"
