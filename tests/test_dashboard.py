"""Unit tests for rich console rendering."""

from __future__ import annotations

from rich.console import Console

from courier.dashboard import (
    build_issue_table,
    build_run_table,
    build_summary_panel,
    format_item_line,
    format_monitor_record,
)
from courier.models import MonitorRunRecord, RunItemResult, Severity, TestResult, ValidationError
from courier.runner import aggregate


def _render(renderable) -> str:
    console = Console(record=True, width=160)
    console.print(renderable)
    return console.export_text()


def _ok_item() -> RunItemResult:
    return RunItemResult(
        request_id="a",
        request_name="List users",
        method="GET",
        url="https://api.test/users?token=secret",
        status_code=200,
        response_time_ms=42.0,
        passed=True,
        test_results=(TestResult("status 200", True),),
    )


def _failed_item() -> RunItemResult:
    return RunItemResult(
        request_id="b",
        request_name="Create user",
        method="POST",
        url="https://api.test/users",
        status_code=500,
        response_time_ms=80.0,
        passed=False,
        test_results=(TestResult("status 201", False, "expected status 201, got 500"),),
    )


def test_format_item_line_passed() -> None:
    text = format_item_line(_ok_item()).plain
    assert text.startswith("✔ GET List users 200")
    assert "42ms" in text


def test_format_item_line_failed_lists_assertions() -> None:
    text = format_item_line(_failed_item()).plain
    assert text.startswith("✘ POST Create user 500")
    assert "status 201: expected status 201, got 500" in text


def test_format_item_line_transport_error() -> None:
    item = RunItemResult("c", "Ping", "GET", "https://x.test", 0, 0.0, False, error="connection refused")
    text = format_item_line(item).plain
    assert "ERR" in text
    assert "connection refused" in text


def test_build_run_table_masks_urls() -> None:
    out = _render(build_run_table(aggregate("c", 0, 1, [_ok_item(), _failed_item()])))
    assert "List users" in out
    assert "Create user" in out
    assert "token=secret" not in out
    assert "0/1" in out


def test_build_summary_panel_verdicts() -> None:
    passed = aggregate("c", 0, 1000, [_ok_item()])
    failed = aggregate("c", 0, 1000, [_ok_item(), _failed_item()])
    stopped = aggregate("c", 0, 1000, [_ok_item()], stopped=True)
    assert "PASSED" in _render(build_summary_panel(passed, "Shop"))
    out = _render(build_summary_panel(failed, "Shop"))
    assert "FAILED" in out
    assert "Shop" in out
    assert "1 / 1" in out
    assert "STOPPED" in _render(build_summary_panel(stopped, "Shop"))


def test_build_issue_table() -> None:
    out = _render(
        build_issue_table(
            [
                ValidationError("paths.users", "Path must start with /", Severity.ERROR),
                ValidationError("info.title", "info.title is recommended", Severity.WARNING),
            ]
        )
    )
    assert "Path must start with /" in out
    assert "warning" in out


def test_format_monitor_record() -> None:
    record = MonitorRunRecord(
        id="r",
        monitor_id="m",
        monitor_name="Health",
        start_time=0,
        end_time=1,
        passed=False,
        total_requests=2,
        passed_tests=1,
        failed_tests=1,
        max_response_time_ms=900.0,
        min_status_code=500,
        breaches=("1 test(s) failed",),
    )
    text = format_monitor_record(record).plain
    assert text.startswith("✘ Health")
    assert "tests=1/2" in text
    assert "! 1 test(s) failed" in text
