"""Data models for courier.

Canonical collection tree, run results and monitor records. Every model maps to and from
the native camelCase JSON shape via ``to_dict()`` / ``from_dict()``; ``from_dict`` tolerates
missing optional fields so hand-written and older exports load with defaults.

Run results and monitor run records are frozen: they are snapshots, never mutated after
creation.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import orjson

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def new_id(prefix: str) -> str:
    """Short unique id with a readable prefix (``req-3f2a...``)."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds (persisted timestamps use this unit)."""
    return int(time.time() * 1000)


class Severity(str, Enum):
    """Validation finding severity. Only ERROR blocks an import."""

    ERROR = "error"
    WARNING = "warning"


class BodyType(str, Enum):
    """How ApiRequest.body / form_data is sent."""

    NONE = "none"
    JSON = "json"
    XML = "xml"
    TEXT = "text"
    HTML = "html"
    FORM_DATA = "form-data"
    FORM_URLENCODED = "form-urlencoded"

    @property
    def is_text_like(self) -> bool:
        return self in (BodyType.JSON, BodyType.XML, BodyType.TEXT, BodyType.HTML)

    @property
    def is_form(self) -> bool:
        return self in (BodyType.FORM_DATA, BodyType.FORM_URLENCODED)


class AssertionType(str, Enum):
    """Declarative checks attached to a request and evaluated after each response."""

    STATUS = "status"  # expected: int
    STATUS_RANGE = "status_range"  # expected: [low, high] inclusive
    RESPONSE_TIME_BELOW = "response_time_below"  # expected: ms
    BODY_CONTAINS = "body_contains"  # expected: substring
    HEADER_EQUALS = "header_equals"  # target: header name, expected: value
    JSON_PATH_EQUALS = "json_path_equals"  # target: dotted path, expected: value


class ScheduleInterval(str, Enum):
    """Monitor schedule. Durations live in scheduler.SCHEDULE_INTERVALS."""

    EVERY_5_MINUTES = "5m"
    EVERY_15_MINUTES = "15m"
    HOURLY = "1h"
    EVERY_6_HOURS = "6h"
    DAILY = "1d"


def _str_field(data: dict[str, Any], key: str, default: str) -> str:
    """Stored value verbatim when present (even empty); default only for a missing key."""
    value = data.get(key)
    return default if value is None else str(value)


def _body_type(value: Any, body: str) -> BodyType:
    try:
        return BodyType(value)
    except ValueError:
        # Older exports used "raw" for any textual body.
        return BodyType.TEXT if body else BodyType.NONE


@dataclass(slots=True)
class KeyValuePair:
    """Param, header, form field or variable. Disabled entries are stored but never used."""

    key: str
    value: str = ""
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value, "enabled": self.enabled}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyValuePair:
        value = data.get("value")
        return cls(
            key=str(data.get("key") or ""),
            value="" if value is None else str(value),
            enabled=bool(data.get("enabled", True)),
        )


def enabled_pairs(pairs: list[KeyValuePair] | None) -> list[KeyValuePair]:
    """Entries that take part in resolution, wire form and export."""
    return [p for p in pairs or [] if p.enabled and p.key]


def _pairs(raw: Any) -> list[KeyValuePair]:
    return [KeyValuePair.from_dict(p) for p in raw or [] if isinstance(p, dict)]


@dataclass(slots=True)
class Assertion:
    type: AssertionType
    expected: Any = None
    target: str = ""
    name: str = ""

    def label(self) -> str:
        if self.name:
            return self.name
        if self.target:
            return f"{self.type.value} {self.target} {self.expected!r}"
        return f"{self.type.value} {self.expected!r}"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value, "expected": self.expected}
        if self.target:
            out["target"] = self.target
        if self.name:
            out["name"] = self.name
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Assertion:
        return cls(
            type=AssertionType(data.get("type")),
            expected=data.get("expected"),
            target=str(data.get("target") or ""),
            name=str(data.get("name") or ""),
        )


@dataclass(slots=True)
class ApiRequest:
    """A single request in a collection. url/params/headers/body may carry {{tokens}}."""

    id: str
    name: str
    method: str = "GET"
    url: str = ""
    params: list[KeyValuePair] = field(default_factory=list)
    headers: list[KeyValuePair] = field(default_factory=list)
    body: str = ""
    body_type: BodyType = BodyType.NONE
    form_data: list[KeyValuePair] | None = None
    description: str | None = None
    assertions: list[Assertion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "method": self.method,
            "url": self.url,
            "params": [p.to_dict() for p in self.params],
            "headers": [h.to_dict() for h in self.headers],
            "body": self.body,
            "bodyType": self.body_type.value,
        }
        if self.form_data is not None:
            out["formData"] = [f.to_dict() for f in self.form_data]
        if self.description is not None:
            out["description"] = self.description
        if self.assertions:
            out["assertions"] = [a.to_dict() for a in self.assertions]
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApiRequest:
        body = data.get("body")
        body = body if isinstance(body, str) else ""
        form_data = data.get("formData")
        return cls(
            id=str(data.get("id") or new_id("req")),
            name=_str_field(data, "name", "Untitled"),
            method=_str_field(data, "method", "GET"),
            url=str(data.get("url") or ""),
            params=_pairs(data.get("params")),
            headers=_pairs(data.get("headers")),
            body=body,
            body_type=_body_type(data.get("bodyType", "none"), body),
            form_data=_pairs(form_data) if isinstance(form_data, list) else None,
            description=data.get("description"),
            assertions=[Assertion.from_dict(a) for a in data.get("assertions") or [] if isinstance(a, dict)],
        )


@dataclass(slots=True)
class Folder:
    id: str
    name: str
    folders: list[Folder] = field(default_factory=list)
    requests: list[ApiRequest] = field(default_factory=list)

    def iter_requests(self) -> Iterator[ApiRequest]:
        """Declared order: own requests, then each sub-folder depth-first."""
        yield from self.requests
        for sub in self.folders:
            yield from sub.iter_requests()

    def find_folder(self, folder_id: str) -> Folder | None:
        for sub in self.folders:
            if sub.id == folder_id:
                return sub
            found = sub.find_folder(folder_id)
            if found is not None:
                return found
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "folders": [f.to_dict() for f in self.folders],
            "requests": [r.to_dict() for r in self.requests],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Folder:
        return cls(
            id=str(data.get("id") or new_id("fld")),
            name=_str_field(data, "name", "Folder"),
            folders=[Folder.from_dict(f) for f in data.get("folders") or [] if isinstance(f, dict)],
            requests=[ApiRequest.from_dict(r) for r in data.get("requests") or [] if isinstance(r, dict)],
        )


@dataclass(slots=True)
class Collection:
    """Named, ordered tree of folders and requests. Unit of import/export."""

    id: str
    name: str
    folders: list[Folder] = field(default_factory=list)
    requests: list[ApiRequest] = field(default_factory=list)
    description: str | None = None

    def iter_requests(self) -> Iterator[ApiRequest]:
        yield from self.requests
        for sub in self.folders:
            yield from sub.iter_requests()

    def find_folder(self, folder_id: str) -> Folder | None:
        for sub in self.folders:
            if sub.id == folder_id:
                return sub
            found = sub.find_folder(folder_id)
            if found is not None:
                return found
        return None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "folders": [f.to_dict() for f in self.folders],
            "requests": [r.to_dict() for r in self.requests],
        }
        if self.description is not None:
            out["description"] = self.description
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Collection:
        return cls(
            id=str(data.get("id") or new_id("col")),
            name=_str_field(data, "name", "Imported Collection"),
            folders=[Folder.from_dict(f) for f in data.get("folders") or [] if isinstance(f, dict)],
            requests=[ApiRequest.from_dict(r) for r in data.get("requests") or [] if isinstance(r, dict)],
            description=data.get("description"),
        )


@dataclass(slots=True)
class Environment:
    id: str
    name: str
    variables: list[KeyValuePair] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "variables": [v.to_dict() for v in self.variables]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Environment:
        return cls(
            id=str(data.get("id") or new_id("env")),
            name=str(data.get("name") or "Environment"),
            variables=_pairs(data.get("variables")),
        )


@dataclass(slots=True, frozen=True)
class ValidationError:
    """Structural finding from the OpenAPI/Swagger validator. Data, not an exception."""

    path: str
    message: str
    severity: Severity

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "message": self.message, "severity": self.severity.value}


@dataclass(slots=True)
class ApiResponse:
    status: int
    status_text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None
    time_ms: float = 0.0
    size: int = 0

    def text(self) -> str:
        if isinstance(self.data, str):
            return self.data
        if self.data is None:
            return ""
        return orjson.dumps(self.data).decode("utf-8")

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "statusText": self.status_text,
            "headers": dict(self.headers),
            "data": self.data,
            "time": self.time_ms,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApiResponse:
        return cls(
            status=int(data.get("status") or 0),
            status_text=str(data.get("statusText") or ""),
            headers=dict(data.get("headers") or {}),
            data=data.get("data"),
            time_ms=float(data.get("time") or 0.0),
            size=int(data.get("size") or 0),
        )


@dataclass(slots=True, frozen=True)
class TestResult:
    __test__ = False

    name: str
    passed: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "passed": self.passed}
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(slots=True, frozen=True)
class RunItemResult:
    """Outcome of one request in a run. A transport failure has status_code 0 and an error."""

    request_id: str
    request_name: str
    method: str
    url: str
    status_code: int
    response_time_ms: float
    passed: bool
    test_results: tuple[TestResult, ...] = ()
    error: str | None = None
    iteration: int = 0

    @property
    def failed_tests(self) -> int:
        failed = sum(1 for t in self.test_results if not t.passed)
        return failed + (1 if self.error is not None else 0)

    @property
    def passed_tests(self) -> int:
        return sum(1 for t in self.test_results if t.passed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "requestName": self.request_name,
            "method": self.method,
            "url": self.url,
            "iteration": self.iteration,
            "statusCode": self.status_code,
            "responseTimeMs": self.response_time_ms,
            "passed": self.passed,
            "failedTests": self.failed_tests,
            "testResults": [t.to_dict() for t in self.test_results],
            "error": self.error,
        }


@dataclass(slots=True, frozen=True)
class RunResult:
    """Aggregate outcome of one collection run."""

    run_id: str
    collection_id: str
    start_time: int
    end_time: int
    total_requests: int
    total_iterations: int
    passed_requests: int
    failed_requests: int
    passed_tests: int
    failed_tests: int
    min_response_time_ms: float
    max_response_time_ms: float
    min_status_code: int
    items: tuple[RunItemResult, ...] = ()
    stopped: bool = False

    @property
    def passed(self) -> bool:
        return self.failed_requests == 0 and not self.stopped

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "collectionId": self.collection_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "totalRequests": self.total_requests,
            "totalIterations": self.total_iterations,
            "passedRequests": self.passed_requests,
            "failedRequests": self.failed_requests,
            "passedTests": self.passed_tests,
            "failedTests": self.failed_tests,
            "minResponseTimeMs": self.min_response_time_ms,
            "maxResponseTimeMs": self.max_response_time_ms,
            "minStatusCode": self.min_status_code,
            "items": [i.to_dict() for i in self.items],
            "stopped": self.stopped,
        }


@dataclass(slots=True)
class MonitorThresholds:
    max_response_time_ms: float = 0  # 0 = disabled
    min_status_code: int = 0  # 0 = disabled; breach when any response status is below it
    alert_on_test_failure: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "maxResponseTimeMs": self.max_response_time_ms,
            "minStatusCode": self.min_status_code,
            "alertOnTestFailure": self.alert_on_test_failure,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitorThresholds:
        return cls(
            max_response_time_ms=float(data.get("maxResponseTimeMs") or 0),
            min_status_code=int(data.get("minStatusCode") or 0),
            alert_on_test_failure=bool(data.get("alertOnTestFailure", True)),
        )


@dataclass(slots=True)
class WebhookConfig:
    enabled: bool = False
    url: str = ""
    # JSON object string or mapping of extra headers
    headers: str | dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"enabled": self.enabled, "url": self.url}
        if self.headers is not None:
            out["headers"] = self.headers
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WebhookConfig:
        return cls(
            enabled=bool(data.get("enabled", False)),
            url=str(data.get("url") or ""),
            headers=data.get("headers"),
        )


@dataclass(slots=True)
class EmailConfig:
    enabled: bool = False
    to: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"enabled": self.enabled}
        if self.to is not None:
            out["to"] = self.to
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmailConfig:
        return cls(enabled=bool(data.get("enabled", False)), to=data.get("to"))


@dataclass(slots=True)
class Monitor:
    id: str
    name: str
    collection_id: str
    environment_id: str | None = None
    schedule: ScheduleInterval = ScheduleInterval.HOURLY
    thresholds: MonitorThresholds = field(default_factory=MonitorThresholds)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    enabled: bool = True
    created_at: int = 0
    folder_id: str | None = None
    last_run_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "collectionId": self.collection_id,
            "environmentId": self.environment_id,
            "schedule": self.schedule.value,
            "thresholds": self.thresholds.to_dict(),
            "webhook": self.webhook.to_dict(),
            "email": self.email.to_dict(),
            "enabled": self.enabled,
            "createdAt": self.created_at,
        }
        if self.folder_id is not None:
            out["folderId"] = self.folder_id
        if self.last_run_at is not None:
            out["lastRunAt"] = self.last_run_at
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Monitor:
        try:
            schedule = ScheduleInterval(data.get("schedule", "1h"))
        except ValueError:
            schedule = ScheduleInterval.HOURLY
        return cls(
            id=str(data.get("id") or new_id("mon")),
            name=str(data.get("name") or "Monitor"),
            collection_id=str(data.get("collectionId") or ""),
            environment_id=data.get("environmentId"),
            schedule=schedule,
            thresholds=MonitorThresholds.from_dict(data.get("thresholds") or {}),
            webhook=WebhookConfig.from_dict(data.get("webhook") or {}),
            email=EmailConfig.from_dict(data.get("email") or {}),
            enabled=bool(data.get("enabled", True)),
            created_at=int(data.get("createdAt") or 0),
            folder_id=data.get("folderId"),
            last_run_at=data.get("lastRunAt"),
        )


@dataclass(slots=True, frozen=True)
class RequestSummary:
    request_name: str
    method: str
    passed: bool
    status_code: int
    response_time_ms: float
    failed_tests: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestName": self.request_name,
            "method": self.method,
            "passed": self.passed,
            "statusCode": self.status_code,
            "responseTimeMs": self.response_time_ms,
            "failedTests": self.failed_tests,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RequestSummary:
        return cls(
            request_name=str(data.get("requestName") or ""),
            method=str(data.get("method") or "GET"),
            passed=bool(data.get("passed")),
            status_code=int(data.get("statusCode") or 0),
            response_time_ms=float(data.get("responseTimeMs") or 0),
            failed_tests=int(data.get("failedTests") or 0),
        )


@dataclass(slots=True, frozen=True)
class MonitorRunRecord:
    """Persisted snapshot of one monitor firing. Append-only history."""

    id: str
    monitor_id: str
    monitor_name: str
    start_time: int
    end_time: int
    passed: bool
    total_requests: int
    passed_tests: int
    failed_tests: int
    max_response_time_ms: float
    min_status_code: int
    breaches: tuple[str, ...] = ()
    items_summary: tuple[RequestSummary, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "monitorId": self.monitor_id,
            "monitorName": self.monitor_name,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "passed": self.passed,
            "totalRequests": self.total_requests,
            "passedTests": self.passed_tests,
            "failedTests": self.failed_tests,
            "maxResponseTimeMs": self.max_response_time_ms,
            "minStatusCode": self.min_status_code,
            "breaches": list(self.breaches),
            "itemsSummary": [s.to_dict() for s in self.items_summary],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitorRunRecord:
        return cls(
            id=str(data.get("id") or ""),
            monitor_id=str(data.get("monitorId") or ""),
            monitor_name=str(data.get("monitorName") or ""),
            start_time=int(data.get("startTime") or 0),
            end_time=int(data.get("endTime") or 0),
            passed=bool(data.get("passed")),
            total_requests=int(data.get("totalRequests") or 0),
            passed_tests=int(data.get("passedTests") or 0),
            failed_tests=int(data.get("failedTests") or 0),
            max_response_time_ms=float(data.get("maxResponseTimeMs") or 0),
            min_status_code=int(data.get("minStatusCode") or 0),
            breaches=tuple(str(b) for b in data.get("breaches") or []),
            items_summary=tuple(
                RequestSummary.from_dict(s) for s in data.get("itemsSummary") or [] if isinstance(s, dict)
            ),
        )


@dataclass(slots=True)
class HistoryEntry:
    request: ApiRequest
    response: ApiResponse
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"request": self.request.to_dict(), "response": self.response.to_dict(), "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            request=ApiRequest.from_dict(data.get("request") or {}),
            response=ApiResponse.from_dict(data.get("response") or {}),
            timestamp=int(data.get("timestamp") or 0),
        )


_MEDIA_TYPES = {
    BodyType.JSON: "application/json",
    BodyType.XML: "application/xml",
    BodyType.TEXT: "text/plain",
    BodyType.HTML: "text/html",
    BodyType.FORM_URLENCODED: "application/x-www-form-urlencoded",
    BodyType.FORM_DATA: "multipart/form-data",
}


def media_type_for_body_type(body_type: BodyType) -> str | None:
    """Default Content-Type for a body type (None for BodyType.NONE)."""
    return _MEDIA_TYPES.get(body_type)


def body_type_for_media_type(media_type: str | None) -> BodyType:
    """Map a declared media type (``application/vnd.x+json; charset=utf-8``) to a BodyType."""
    mt = (media_type or "").split(";", 1)[0].strip().lower()
    if not mt:
        return BodyType.NONE
    if mt == "application/json" or mt.endswith("+json"):
        return BodyType.JSON
    if mt == "application/x-www-form-urlencoded":
        return BodyType.FORM_URLENCODED
    if mt.startswith("multipart/"):
        return BodyType.FORM_DATA
    if mt.endswith("/xml") or mt.endswith("+xml"):
        return BodyType.XML
    if mt == "text/html":
        return BodyType.HTML
    if mt.startswith("text/"):
        return BodyType.TEXT
    return BodyType.NONE
