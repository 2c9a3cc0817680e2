"""Unit tests for CLI (_parse_env_args, main exit codes, subcommands)."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

import httpx
import orjson
import pytest
import yaml

from courier.cli import _parse_env_args, main
from courier.storage import FileStore, HistoryStore


def test_parse_env_args_empty() -> None:
    assert _parse_env_args(None) == {}
    assert _parse_env_args([]) == {}


def test_parse_env_args_multiple() -> None:
    out = _parse_env_args(["a=1", "b=2", "base_url=https://api.example.com?x=1"])
    assert out == {"a": "1", "b": "2", "base_url": "https://api.example.com?x=1"}


def test_parse_env_args_no_equals_ignored() -> None:
    assert _parse_env_args(["novalue", "  key  =  value  "]) == {"key": "value"}


def test_main_version_exits_zero() -> None:
    with patch.object(sys, "argv", ["courier", "--version"]):
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 0


def test_main_requires_command() -> None:
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 2


def test_convert_postman_to_native_file(sample_postman_collection_path: Path, tmp_path: Path) -> None:
    out = tmp_path / "out" / "native.json"
    assert main(["convert", str(sample_postman_collection_path), "--to", "native", "-o", str(out)]) == 0
    data = orjson.loads(out.read_bytes())
    assert data[0]["name"] == "Test"
    assert data[0]["requests"][0]["url"] == "https://httpbin.org/get"


def test_convert_to_openapi_yaml_stdout(sample_postman_collection_path: Path, capsys) -> None:
    assert main(["convert", str(sample_postman_collection_path), "--to", "openapi", "--yaml"]) == 0
    doc = yaml.safe_load(capsys.readouterr().out)
    assert doc["openapi"] == "3.0.3"
    assert doc["servers"] == [{"url": "https://httpbin.org"}]
    assert "/get" in doc["paths"]


def test_convert_unknown_document_exits_one(tmp_path: Path, capsys) -> None:
    p = tmp_path / "x.json"
    p.write_text('{"hello": 1}', encoding="utf-8")
    assert main(["convert", str(p), "--to", "postman"]) == 1
    assert "Unrecognized document format" in capsys.readouterr().err


def test_convert_invalid_openapi_prints_findings(tmp_path: Path, capsys) -> None:
    p = tmp_path / "bad.yaml"
    p.write_text("openapi: 3.0.0\ninfo:\n  title: T\npaths:\n  users:\n    get: {}\n", encoding="utf-8")
    assert main(["convert", str(p), "--to", "native"]) == 1
    err = capsys.readouterr().err
    assert "failed validation" in err
    assert "paths.users" in err


def test_validate_exit_codes(tmp_path: Path) -> None:
    good = tmp_path / "good.json"
    good.write_bytes(orjson.dumps({"openapi": "3.0.0", "info": {"title": "T"}, "paths": {"/a": {"get": {}}}}))
    warn = tmp_path / "warn.json"
    warn.write_bytes(orjson.dumps({"openapi": "3.0.0", "info": {}, "paths": {"/a": {}}}))
    bad = tmp_path / "bad.json"
    bad.write_bytes(orjson.dumps({"info": {"title": "T"}, "paths": {"/a": {}}}))
    assert main(["validate", str(good)]) == 0
    assert main(["validate", str(warn)]) == 0
    assert main(["validate", str(bad)]) == 1
    assert main(["validate", str(tmp_path / "missing.json")]) == 1


def _fake_client_factory(status: int):
    async def fake_create_client(**kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(status, text="ok")))

    return fake_create_client


def test_run_exit_codes(sample_postman_collection_path: Path, tmp_path: Path) -> None:
    junit = tmp_path / "junit.xml"
    with patch("courier.runner.create_client", _fake_client_factory(200)):
        code = main(["run", str(sample_postman_collection_path), "--no-live", "--junit", str(junit)])
    assert code == 0
    assert junit.exists()

    async def failing_client(**kwargs) -> httpx.AsyncClient:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    with patch("courier.runner.create_client", failing_client):
        assert main(["run", str(sample_postman_collection_path), "--no-live"]) == 1


def test_run_with_config_records_history(
    sample_postman_collection_path: Path, tmp_path_config_monitors: Path, tmp_path: Path
) -> None:
    with patch("courier.runner.create_client", _fake_client_factory(200)):
        code = main(["run", str(sample_postman_collection_path), "-f", str(tmp_path_config_monitors), "--no-live"])
    assert code == 0
    entries = HistoryStore(FileStore(tmp_path / "state")).entries()
    assert [e.request.name for e in entries] == ["Get"]


def test_run_unknown_collection_exits_one(sample_postman_collection_path: Path) -> None:
    assert main(["run", str(sample_postman_collection_path), "--collection", "Nope", "--no-live"]) == 1


def test_monitor_without_monitors_exits_one(sample_postman_collection_path: Path, tmp_path: Path) -> None:
    config = tmp_path / "empty.yaml"
    config.write_text(f"storage_dir: {tmp_path / 'state'}\n", encoding="utf-8")
    assert main(["monitor", str(sample_postman_collection_path), "-f", str(config)]) == 1


def test_monitor_unknown_collection_exits_one(sample_postman_collection_path: Path, tmp_path: Path) -> None:
    config = tmp_path / "m.yaml"
    config.write_text("monitors:\n  - name: m\n    collection: Other\n", encoding="utf-8")
    assert main(["monitor", str(sample_postman_collection_path), "-f", str(config)]) == 1


def test_main_keyboard_interrupt_returns_130(sample_postman_collection_path: Path) -> None:
    with patch("courier.cli._run_async", side_effect=KeyboardInterrupt):
        assert main(["run", str(sample_postman_collection_path), "--no-live"]) == 130
