"""Threshold evaluation and alert delivery (webhook POST; email is logged only)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import orjson

from .logging_config import get_logger
from .models import Monitor, MonitorRunRecord, MonitorThresholds, RunResult

logger = get_logger("alerts")

ALERT_EVENT = "monitor_failed"


def evaluate_thresholds(thresholds: MonitorThresholds, result: RunResult) -> list[str]:
    """Human-readable breach descriptions; empty when every threshold holds."""
    breaches: list[str] = []
    if thresholds.max_response_time_ms > 0 and result.max_response_time_ms > thresholds.max_response_time_ms:
        breaches.append(
            f"Max response time {result.max_response_time_ms:.1f}ms exceeds threshold "
            f"{thresholds.max_response_time_ms:g}ms"
        )
    if thresholds.min_status_code > 0:
        low = sorted(
            {i.status_code for i in result.items if i.error is None and i.status_code < thresholds.min_status_code}
        )
        if low:
            codes = ", ".join(str(c) for c in low)
            breaches.append(f"Status code(s) {codes} below threshold {thresholds.min_status_code}")
    if thresholds.alert_on_test_failure and result.failed_tests > 0:
        breaches.append(f"{result.failed_tests} test(s) failed")
    return breaches


def build_webhook_payload(monitor: Monitor, record: MonitorRunRecord) -> dict[str, Any]:
    return {
        "event": ALERT_EVENT,
        "monitorId": monitor.id,
        "monitorName": monitor.name,
        "runId": record.id,
        "passed": record.passed,
        "totalRequests": record.total_requests,
        "passedTests": record.passed_tests,
        "failedTests": record.failed_tests,
        "maxResponseTimeMs": record.max_response_time_ms,
        "minStatusCode": record.min_status_code,
        "breaches": list(record.breaches),
        "itemsSummary": [s.to_dict() for s in record.items_summary],
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }


def webhook_headers(extra: str | dict[str, str] | None) -> dict[str, str]:
    """Content-Type: application/json overlaid with custom headers (JSON object text or mapping)."""
    headers = {"Content-Type": "application/json"}
    if isinstance(extra, dict):
        headers.update({str(k): str(v) for k, v in extra.items()})
    elif isinstance(extra, str) and extra.strip():
        try:
            parsed = orjson.loads(extra)
        except orjson.JSONDecodeError:
            logger.warning("Ignoring webhook headers: not valid JSON")
            return headers
        if isinstance(parsed, dict):
            headers.update({str(k): str(v) for k, v in parsed.items()})
        else:
            logger.warning("Ignoring webhook headers: JSON is not an object")
    return headers


class AlertNotifier:
    """Delivers monitor alerts. Delivery problems are logged, never raised to the scheduler."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def notify(self, monitor: Monitor, record: MonitorRunRecord) -> None:
        if monitor.webhook.enabled and monitor.webhook.url.strip():
            await self._send_webhook(monitor, record)
        if monitor.email.enabled and monitor.email.to:
            logger.warning(
                "Email alert for monitor %s to %s not sent: no mail transport configured",
                monitor.name,
                monitor.email.to,
            )

    async def _send_webhook(self, monitor: Monitor, record: MonitorRunRecord) -> None:
        url = monitor.webhook.url.strip()
        payload = build_webhook_payload(monitor, record)
        try:
            response = await self._client.post(
                url,
                content=orjson.dumps(payload),
                headers=webhook_headers(monitor.webhook.headers),
            )
        except httpx.HTTPError as e:
            logger.warning("Webhook delivery for monitor %s failed: %s", monitor.name, e)
            return
        if response.is_error:
            logger.warning("Webhook for monitor %s returned HTTP %d", monitor.name, response.status_code)
        else:
            logger.info("Webhook alert sent for monitor %s", monitor.name)
