"""Run reports: JSON (machine-readable), HTML (Jinja2, self-contained) and JUnit XML for CI."""

from __future__ import annotations

import re
import sys
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse
from xml.dom import minidom

import orjson
from jinja2 import Environment, PackageLoader, select_autoescape

from . import __version__ as courier_version
from .metrics import run_timing_summary, status_distribution
from .models import RunItemResult, RunResult

REDACTED_PLACEHOLDER = "[REDACTED]"
URL_IN_TEXT = re.compile(r"https?://[^\s]+")


def mask_url(url: str, max_path_length: int = 120) -> str:
    """Remove query string and fragment from URL to avoid leaking tokens in reports."""
    if not url or not url.strip():
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return url[:max_path_length] + ("..." if len(url) > max_path_length else "")
    clean = urlunparse((parsed.scheme, parsed.netloc, parsed.path or "", "", "", ""))
    if len(clean) > max_path_length:
        clean = clean[: max_path_length - 3] + "..."
    return clean


def mask_error_message(msg: str | None, max_length: int = 200) -> str:
    """Truncate error message and redact URLs to avoid leaking sensitive data."""
    if not msg:
        return ""
    msg = URL_IN_TEXT.sub(REDACTED_PLACEHOLDER, msg)
    if len(msg) > max_length:
        return msg[: max_length - 3] + "..."
    return msg


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _item_payload(item: RunItemResult) -> dict[str, Any]:
    payload = item.to_dict()
    payload["url"] = mask_url(item.url)
    payload["error"] = mask_error_message(item.error) or None
    return payload


def build_json_payload(result: RunResult, collection_name: str = "Collection") -> dict[str, Any]:
    payload = result.to_dict()
    payload["collectionName"] = collection_name
    payload["startDatetime"] = _iso(result.start_time)
    payload["endDatetime"] = _iso(result.end_time)
    payload["durationMs"] = result.duration_ms
    payload["passed"] = result.passed
    payload["timing"] = run_timing_summary(result).to_dict()
    payload["statusDistribution"] = status_distribution(result)
    payload["items"] = [_item_payload(i) for i in result.items]
    return payload


def generate_json_report(output_path: str | Path, result: RunResult, collection_name: str = "Collection") -> None:
    """Write machine-readable JSON report: run totals, timing summary and every item (URLs masked)."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(orjson.dumps(build_json_payload(result, collection_name), option=orjson.OPT_INDENT_2))


def generate_html_report(output_path: str | Path, result: RunResult, collection_name: str = "Collection") -> None:
    """Generate a single self-contained HTML report."""
    env = Environment(
        loader=PackageLoader("courier", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
    )
    template = env.get_template("run_report.html")
    timing = run_timing_summary(result)
    rows = [
        {
            "iteration": i.iteration + 1,
            "name": i.request_name,
            "method": i.method,
            "url": mask_url(i.url),
            "status": i.status_code if i.error is None else "ERR",
            "time_ms": round(i.response_time_ms, 1),
            "passed": i.passed,
            "tests": [t.to_dict() for t in i.test_results],
            "error": mask_error_message(i.error),
        }
        for i in result.items
    ]
    html = template.render(
        collection_name=collection_name,
        passed=result.passed,
        stopped=result.stopped,
        total_requests=result.total_requests,
        total_iterations=result.total_iterations,
        passed_requests=result.passed_requests,
        failed_requests=result.failed_requests,
        passed_tests=result.passed_tests,
        failed_tests=result.failed_tests,
        duration_ms=result.duration_ms,
        timing=timing,
        status_distribution=status_distribution(result),
        rows=rows,
        start_datetime_str=_iso(result.start_time),
        end_datetime_str=_iso(result.end_time),
        developer_info={
            "courier_version": courier_version,
            "report_generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
    )
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(html, encoding="utf-8")


def generate_junit_report(output_path: str | Path, result: RunResult, collection_name: str = "Collection") -> None:
    """Write JUnit XML for CI (Jenkins, GitLab). One testcase per run item; failures carry messages."""
    suite_name = f"courier.{collection_name}"
    testsuite = ET.Element(
        "testsuite",
        name=suite_name,
        tests=str(result.total_requests),
        failures=str(sum(1 for i in result.items if not i.passed and i.error is None)),
        errors=str(sum(1 for i in result.items if i.error is not None)),
        skipped="0",
        time=f"{result.duration_ms / 1000:.3f}",
        timestamp=_iso(result.start_time).rstrip("Z"),
    )
    for item in result.items:
        name = item.request_name if result.total_iterations <= 1 else f"{item.request_name} [{item.iteration + 1}]"
        testcase = ET.SubElement(
            testsuite,
            "testcase",
            name=name,
            classname=suite_name,
            time=f"{item.response_time_ms / 1000:.3f}",
        )
        if item.error is not None:
            error = ET.SubElement(testcase, "error", message=mask_error_message(item.error))
            error.text = f"{item.method} {mask_url(item.url)}"
        elif not item.passed:
            failed = [t for t in item.test_results if not t.passed]
            failure = ET.SubElement(testcase, "failure", message=f"{len(failed)} assertion(s) failed")
            failure.text = "\n".join(f"{t.name}: {t.error or 'failed'}" for t in failed)
        system_out = ET.SubElement(testcase, "system-out")
        system_out.text = f"{item.method} {mask_url(item.url)} status={item.status_code}"

    root = ET.Element("testsuites")
    root.append(testsuite)
    xml_str = minidom.parseString(ET.tostring(root, encoding="unicode", method="xml")).toprettyxml(indent="  ")
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(xml_str, encoding="utf-8")
