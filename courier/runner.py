"""Collection runner: sequential execution, aggregation, data-driven iterations, reports.

run_collection is the core (pure apart from the injected executor). run_test is the CLI
entry point: load documents, pick a collection, build the client, run, print and report.
"""

from __future__ import annotations

import asyncio
import csv
import io
import signal
from collections.abc import Callable
from pathlib import Path
from typing import Any

import orjson
from rich.console import Console

from .assertions import evaluate_assertions
from .dashboard import build_run_table, build_summary_panel, format_item_line
from .engine import DEFAULT_TIMEOUT_SEC, Executor, HttpExecutor, create_client
from .exceptions import CourierRunnerError
from .interchange import load_collections, load_environments
from .logging_config import get_logger
from .models import (
    ApiRequest,
    Collection,
    Environment,
    KeyValuePair,
    RunItemResult,
    RunResult,
    TestResult,
    new_id,
    now_ms,
)
from .report import generate_html_report, generate_json_report, generate_junit_report
from .storage import HistoryStore
from .variables import build_scope, resolve_request_in_scope

logger = get_logger("runner")

ItemCallback = Callable[[RunItemResult], None]


def collect_requests(collection: Collection, folder_id: str | None = None) -> list[ApiRequest]:
    """Requests in declared order for the whole collection or one folder subtree."""
    if folder_id is None:
        return list(collection.iter_requests())
    folder = collection.find_folder(folder_id)
    if folder is None:
        raise CourierRunnerError(
            "Folder not found in collection",
            context={"folder_id": folder_id, "collection": collection.name},
        )
    return list(folder.iter_requests())


async def _run_item(
    request: ApiRequest,
    scope: dict[str, str],
    executor: Executor,
    iteration: int,
    history: HistoryStore | None = None,
) -> RunItemResult:
    resolved = resolve_request_in_scope(request, scope)
    try:
        response = await executor(resolved)
    except Exception as e:  # noqa: BLE001 - any transport failure becomes a failed item
        logger.debug("Request %s failed: %s", request.name, e)
        return RunItemResult(
            request_id=request.id,
            request_name=request.name,
            method=resolved.method,
            url=resolved.url,
            status_code=0,
            response_time_ms=0.0,
            passed=False,
            error=str(e) or type(e).__name__,
            iteration=iteration,
        )
    if history is not None:
        try:
            history.save(resolved, response)
        except OSError as e:
            logger.warning("Could not record %s in history: %s", request.name, e)
    tests: list[TestResult] = evaluate_assertions(resolved.assertions, response)
    return RunItemResult(
        request_id=request.id,
        request_name=request.name,
        method=resolved.method,
        url=resolved.url,
        status_code=response.status,
        response_time_ms=response.time_ms,
        passed=all(t.passed for t in tests),
        test_results=tuple(tests),
        iteration=iteration,
    )


async def run_collection(
    collection: Collection,
    environment_id: str | None,
    environments: list[Environment],
    global_vars: list[KeyValuePair],
    executor: Executor,
    *,
    folder_id: str | None = None,
    data_rows: list[dict[str, str]] | None = None,
    stop_event: asyncio.Event | None = None,
    on_item: ItemCallback | None = None,
    history: HistoryStore | None = None,
) -> RunResult:
    """
    Run every request of the collection (or folder) strictly in order, one in flight.
    A failing request never stops the run; stop_event stops it before the next request.
    Raises CourierRunnerError only when folder_id is unknown.
    """
    requests = collect_requests(collection, folder_id)
    rows: list[dict[str, str] | None] = list(data_rows) if data_rows else [None]
    start = now_ms()
    logger.info(
        "Starting run: collection=%s, requests=%d, iterations=%d",
        collection.name,
        len(requests),
        len(rows),
    )

    items: list[RunItemResult] = []
    stopped = False
    for iteration, row in enumerate(rows):
        scope = build_scope(environment_id, environments, global_vars, row)
        for request in requests:
            if stop_event is not None and stop_event.is_set():
                stopped = True
                break
            item = await _run_item(request, scope, executor, iteration, history)
            items.append(item)
            if on_item is not None:
                on_item(item)
        if stopped:
            break

    result = aggregate(collection.id, start, now_ms(), items, len(rows), stopped)
    logger.info(
        "Run finished: passed=%d, failed=%d, tests_failed=%d%s",
        result.passed_requests,
        result.failed_requests,
        result.failed_tests,
        " (stopped)" if stopped else "",
    )
    return result


def aggregate(
    collection_id: str,
    start: int,
    end: int,
    items: list[RunItemResult],
    iterations: int = 1,
    stopped: bool = False,
) -> RunResult:
    """Fold item results into a RunResult. Times and status codes count successful transports only."""
    delivered = [i for i in items if i.error is None]
    times = [i.response_time_ms for i in delivered]
    passed = sum(1 for i in items if i.passed)
    return RunResult(
        run_id=new_id("run"),
        collection_id=collection_id,
        start_time=start,
        end_time=end,
        total_requests=len(items),
        total_iterations=iterations,
        passed_requests=passed,
        failed_requests=len(items) - passed,
        passed_tests=sum(i.passed_tests for i in items),
        failed_tests=sum(i.failed_tests for i in items),
        min_response_time_ms=min(times) if times else 0.0,
        max_response_time_ms=max(times) if times else 0.0,
        min_status_code=min((i.status_code for i in delivered), default=0),
        items=tuple(items),
        stopped=stopped,
    )


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return orjson.dumps(value).decode("utf-8")
    return str(value)


def parse_data_file(content: str, filename: str) -> list[dict[str, str]]:
    """
    Iteration rows from a CSV (header row gives the keys) or JSON (array of objects or a
    single object) data file. Values are stringified. Raises CourierRunnerError when unreadable.
    """
    if filename.lower().endswith(".csv"):
        reader = csv.DictReader(io.StringIO(content))
        return [{k: v or "" for k, v in row.items() if k} for row in reader]
    try:
        data = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise CourierRunnerError(f"Invalid JSON data file: {e}", context={"file": filename}, original_error=e) from e
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        raise CourierRunnerError("Data file must hold an object or an array of objects", context={"file": filename})
    return [{str(k): _stringify(v) for k, v in row.items()} for row in data]


def select_collection(collections: list[Collection], name_or_id: str | None) -> Collection:
    if not collections:
        raise CourierRunnerError("Document contains no collections")
    if name_or_id is None:
        return collections[0]
    for col in collections:
        if name_or_id in (col.id, col.name):
            return col
    raise CourierRunnerError("Collection not found", context={"collection": name_or_id})


def select_environment(environments: list[Environment], name: str | None) -> str | None:
    if not environments:
        return None
    if name is None:
        return environments[0].id
    for env in environments:
        if name in (env.id, env.name):
            return env.id
    raise CourierRunnerError("Environment not found", context={"environment": name})


def _install_stop_handler(stop_event: asyncio.Event) -> Callable[[], None]:
    """SIGINT/SIGTERM finish the in-flight request, then stop the run. Returns a restore function."""
    loop = asyncio.get_running_loop()

    def _signal_handler(signum: int, frame: Any) -> None:
        logger.info("Shutdown signal received (signal %d), stopping after current request...", signum)
        loop.call_soon_threadsafe(stop_event.set)

    signums = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        signums.append(signal.SIGTERM)
    previous = {s: signal.signal(s, _signal_handler) for s in signums}

    def restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore


async def run_test(
    source_path: str | Path,
    *,
    collection: str | None = None,
    folder_id: str | None = None,
    env_path: str | Path | None = None,
    env_name: str | None = None,
    global_overrides: dict[str, str] | None = None,
    data_path: str | Path | None = None,
    json_path: str | Path | None = None,
    html_path: str | Path | None = None,
    junit_path: str | Path | None = None,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    http2: bool = True,
    live: bool = True,
    executor: Executor | None = None,
    history: HistoryStore | None = None,
) -> RunResult:
    """Load a document of any supported format, run one collection and write the requested reports."""
    imported = await asyncio.to_thread(load_collections, source_path)
    target = select_collection(imported.collections, collection)
    environments = await asyncio.to_thread(load_environments, env_path) if env_path else []
    environment_id = select_environment(environments, env_name)
    global_vars = [KeyValuePair(k, v) for k, v in (global_overrides or {}).items()]
    data_rows = None
    if data_path is not None:
        p = Path(data_path)
        try:
            content = await asyncio.to_thread(p.read_text, encoding="utf-8")
        except OSError as e:
            raise CourierRunnerError(f"Cannot read data file: {e}", original_error=e) from e
        data_rows = parse_data_file(content, p.name)

    if not collect_requests(target, folder_id):
        raise CourierRunnerError("No requests to run", context={"collection": target.name})

    console = Console()
    stop_event = asyncio.Event()
    on_item = (lambda item: console.print(format_item_line(item))) if live else None

    async def _run(run_executor: Executor) -> RunResult:
        return await run_collection(
            target,
            environment_id,
            environments,
            global_vars,
            run_executor,
            folder_id=folder_id,
            data_rows=data_rows,
            stop_event=stop_event,
            on_item=on_item,
            history=history,
        )

    restore_signals = _install_stop_handler(stop_event)
    try:
        if executor is not None:
            result = await _run(executor)
        else:
            async with await create_client(http2=http2, timeout=timeout) as client:
                result = await _run(HttpExecutor(client))
    finally:
        restore_signals()

    if live:
        console.print(build_run_table(result))
        console.print(build_summary_panel(result, target.name))
    if json_path:
        generate_json_report(json_path, result, collection_name=target.name)
        if live:
            console.print(f"[dim]JSON report:[/dim] {json_path}")
    if html_path:
        generate_html_report(html_path, result, collection_name=target.name)
        if live:
            console.print(f"[green]HTML report written to[/green] {html_path}")
    if junit_path:
        generate_junit_report(junit_path, result, collection_name=target.name)
        if live:
            console.print(f"[dim]JUnit report:[/dim] {junit_path}")
    return result
