"""Rich console rendering for runs, validation findings and monitor firings."""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .metrics import run_timing_summary
from .models import MonitorRunRecord, RunItemResult, RunResult, Severity, ValidationError
from .report import mask_url


def _status_text(item: RunItemResult) -> Text:
    if item.error is not None:
        return Text("ERR", style="bold red")
    style = "green" if item.status_code < 400 else "red"
    return Text(str(item.status_code), style=style)


def format_item_line(item: RunItemResult) -> Text:
    """One progress line per finished request."""
    line = Text()
    line.append("✔ " if item.passed else "✘ ", style="green" if item.passed else "bold red")
    line.append(f"{item.method} ", style="bold")
    line.append(item.request_name)
    line.append(" ")
    line.append_text(_status_text(item))
    line.append(f" {item.response_time_ms:.0f}ms", style="dim")
    if item.error:
        line.append(f"  {item.error}", style="red")
    for t in item.test_results:
        if not t.passed:
            line.append(f"\n    ✘ {t.name}: {t.error or 'failed'}", style="red")
    return line


def build_run_table(result: RunResult) -> Table:
    """Per-item table of a finished run."""
    table = Table(title="Run results", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Request", style="cyan")
    table.add_column("Method")
    table.add_column("URL", overflow="fold")
    table.add_column("Status", justify="right")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Tests", justify="right")
    for item in result.items:
        tests = f"{item.passed_tests}/{item.passed_tests + item.failed_tests}"
        table.add_row(
            str(item.iteration + 1),
            item.request_name,
            item.method,
            mask_url(item.url),
            _status_text(item),
            f"{item.response_time_ms:.1f}",
            Text(tests, style="green" if item.passed else "red"),
        )
    return table


def build_summary_panel(result: RunResult, collection_name: str) -> Panel:
    """Totals, timing and verdict for a finished run."""
    timing = run_timing_summary(result)
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column(style="green")
    table.add_row("Requests", str(result.total_requests))
    table.add_row("Iterations", str(result.total_iterations))
    table.add_row("Passed / failed", f"{result.passed_requests} / {result.failed_requests}")
    table.add_row("Tests passed / failed", f"{result.passed_tests} / {result.failed_tests}")
    table.add_row("Min / max (ms)", f"{result.min_response_time_ms:.1f} / {result.max_response_time_ms:.1f}")
    table.add_row("Avg / P95 (ms)", f"{timing.avg_ms:.1f} / {timing.p95_ms:.1f}")
    table.add_row("Duration", f"{result.duration_ms / 1000:.2f}s")

    title = Text()
    title.append("courier ", style="bold magenta")
    title.append(f"| {collection_name} ", style="dim")
    if result.stopped:
        title.append("| STOPPED", style="bold yellow")
        border = "yellow"
    elif result.passed:
        title.append("| PASSED", style="bold green")
        border = "green"
    else:
        title.append("| FAILED", style="bold red")
        border = "red"
    return Panel(table, title=title, border_style=border)


def build_issue_table(issues: list[ValidationError]) -> Table:
    table = Table(title="Validation findings")
    table.add_column("Severity")
    table.add_column("Path", style="cyan")
    table.add_column("Message")
    for issue in issues:
        style = "bold red" if issue.severity is Severity.ERROR else "yellow"
        table.add_row(Text(issue.severity.value, style=style), issue.path, issue.message)
    return table


def format_monitor_record(record: MonitorRunRecord) -> Text:
    line = Text()
    line.append("✔ " if record.passed else "✘ ", style="green" if record.passed else "bold red")
    line.append(record.monitor_name, style="bold")
    line.append(
        f"  requests={record.total_requests} tests={record.passed_tests}/{record.passed_tests + record.failed_tests}"
        f" max={record.max_response_time_ms:.0f}ms",
        style="dim",
    )
    for breach in record.breaches:
        line.append(f"\n    ! {breach}", style="yellow")
    return line
