"""CLI entry point for courier: convert, validate, run and monitor API collections."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Coroutine

import httpx
from rich.console import Console

from . import __version__
from .alerts import AlertNotifier
from .config import build_monitors, load_config
from .dashboard import build_issue_table, format_monitor_record
from .engine import DEFAULT_TIMEOUT_SEC, HttpExecutor, create_client
from .exceptions import CollectionImportError, CourierError
from .interchange import ExportFormat, export_collections, load_collections, load_environments, parse_document
from .logging_config import get_logger
from .monitors import MonitorStore
from .runner import run_test
from .scheduler import MonitorScheduler
from .storage import FileStore, HistoryStore
from .validation import has_validation_errors, validate_openapi

logger = get_logger("cli")


def _run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    return asyncio.run(coro)


def _parse_env_args(env_list: list[str] | None) -> dict[str, str]:
    if not env_list:
        return {}
    out: dict[str, str] = {}
    for s in env_list:
        if "=" in s:
            k, _, v = s.partition("=")
            out[k.strip()] = v.strip()
    return out


def _print_issues(e: CollectionImportError) -> None:
    if e.issues:
        Console(stderr=True).print(build_issue_table(e.issues))


def handle_error(e: BaseException) -> int:
    if isinstance(e, CollectionImportError):
        print(f"Error: {e.message}", file=sys.stderr)
        _print_issues(e)
        return 1
    if isinstance(e, CourierError):
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if isinstance(e, (FileNotFoundError, ValueError)):
        print(f"Error: {e}", file=sys.stderr)
        return 1
    logger.exception("Unexpected error")
    print("Error: An unexpected error occurred. Check logs for details.", file=sys.stderr)
    return 1


def cmd_convert(args: argparse.Namespace) -> int:
    imported = load_collections(args.source)
    for w in imported.warnings:
        logger.warning("%s: %s", w.path, w.message)
    text = export_collections(imported.collections, ExportFormat(args.to), yaml_output=args.yaml)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        print(f"Wrote {args.to} export of {len(imported.collections)} collection(s) to {out}", file=sys.stderr)
    else:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    p = Path(args.spec)
    if not p.exists():
        raise CollectionImportError(f"File not found: {args.spec}")
    issues = validate_openapi(parse_document(p.read_bytes()))
    console = Console()
    if not issues:
        console.print("[green]No issues found[/green]")
        return 0
    console.print(build_issue_table(issues))
    return 1 if has_validation_errors(issues) else 0


def cmd_run(args: argparse.Namespace) -> int:
    timeout = args.timeout
    http2 = True
    history = None
    if args.config:
        config = load_config(args.config)
        timeout = timeout if timeout is not None else config.request_timeout_seconds
        http2 = config.http2
        history = HistoryStore(FileStore(config.storage_dir), limit=config.history_limit)
    result = _run_async(
        run_test(
            args.source,
            collection=args.collection,
            folder_id=args.folder,
            env_path=args.env,
            env_name=args.env_name,
            global_overrides=_parse_env_args(args.globals),
            data_path=args.data,
            json_path=args.json_path,
            html_path=args.html_path,
            junit_path=args.junit_path,
            timeout=timeout if timeout is not None else DEFAULT_TIMEOUT_SEC,
            http2=http2,
            live=not args.no_live,
            history=history,
        )
    )
    return 0 if result.passed else 1


async def run_monitors(source: str | Path, config_path: str | Path, env_path: str | Path | None = None) -> None:
    """Schedule every configured monitor and run until SIGINT/SIGTERM."""
    config = load_config(config_path)
    imported = await asyncio.to_thread(load_collections, source)
    environments = await asyncio.to_thread(load_environments, env_path) if env_path else []
    monitors = build_monitors(config.monitors, imported.collections, environments)
    if not monitors:
        raise CourierError("No monitors defined in config", context={"path": str(config_path)})

    store = MonitorStore(FileStore(config.storage_dir), config.workspace, config.run_history_limit)
    wanted = {m.id for m in monitors}
    for stale in store.list():
        if stale.id not in wanted:
            store.remove(stale.id)
    for monitor in monitors:
        existing = store.get(monitor.id)
        if existing is not None:
            # keep the schedule phase across restarts
            monitor = replace(monitor, created_at=existing.created_at, last_run_at=existing.last_run_at)
        store.add(monitor)

    console = Console()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    async with await create_client(http2=config.http2, timeout=config.request_timeout_seconds) as client:
        async with httpx.AsyncClient(timeout=config.webhook_timeout_seconds) as webhook_client:
            scheduler = MonitorScheduler(
                store,
                imported.collections,
                environments,
                [],
                HttpExecutor(client),
                AlertNotifier(webhook_client),
                on_record=lambda record: console.print(format_monitor_record(record)),
            )
            scheduler.sync()
            console.print(f"[green]Monitoring {len(scheduler.scheduled_ids)} monitor(s).[/green] Ctrl+C to stop.")
            try:
                await stop.wait()
            finally:
                await scheduler.close()


def cmd_monitor(args: argparse.Namespace) -> int:
    _run_async(run_monitors(args.source, args.config, args.env))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courier",
        description="API collection interchange and run engine. "
        "Native, Postman v2.1, Insomnia and OpenAPI 3 / Swagger 2 collections.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"courier {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("convert", help="Convert a collection or spec to another format")
    p.add_argument("source", help="Native, Postman, Insomnia, OpenAPI or Swagger file (JSON or YAML)")
    p.add_argument("--to", required=True, choices=[f.value for f in ExportFormat], help="Target format")
    p.add_argument("--yaml", action="store_true", help="Write OpenAPI output as YAML")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.set_defaults(func=cmd_convert)

    p = sub.add_parser("validate", help="Validate an OpenAPI 3 / Swagger 2 document")
    p.add_argument("spec", help="OpenAPI or Swagger file (JSON or YAML)")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("run", help="Run a collection once (exit 1 when any request fails)")
    p.add_argument("source", help="Collection or spec file of any supported format")
    p.add_argument("--collection", help="Collection name or id (default: first)")
    p.add_argument("--folder", help="Run only this folder id")
    p.add_argument("-e", "--env", help="Environment file (Postman environment export or native)")
    p.add_argument("--env-name", help="Environment name or id within the file (default: first)")
    p.add_argument(
        "-g",
        "--global",
        action="append",
        dest="globals",
        metavar="KEY=VALUE",
        help="Global variable (can be repeated)",
    )
    p.add_argument("-d", "--data", help="CSV or JSON data file: one iteration per row")
    p.add_argument("-f", "--config", help="YAML config (timeouts, http2, history storage)")
    p.add_argument("--json", metavar="PATH", dest="json_path", help="Also write JSON report to PATH")
    p.add_argument("--html", metavar="PATH", dest="html_path", help="Also write HTML report to PATH")
    p.add_argument("--junit", metavar="PATH", dest="junit_path", help="Also write JUnit XML report to PATH (for CI)")
    p.add_argument("--timeout", type=float, default=None, metavar="SEC", help="Request timeout in seconds")
    p.add_argument("--no-live", action="store_true", help="Do not print per-request progress and summary")
    p.set_defaults(func=cmd_run)

    p = sub.add_parser("monitor", help="Run configured monitors on their schedules until interrupted")
    p.add_argument("source", help="Collection or spec file of any supported format")
    p.add_argument("-f", "--config", required=True, help="YAML config with monitor definitions")
    p.add_argument("-e", "--env", help="Environment file")
    p.set_defaults(func=cmd_monitor)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except Exception as e:
        return handle_error(e)


if __name__ == "__main__":
    sys.exit(main())
