"""Declarative response checks evaluated after each request in a run."""

from __future__ import annotations

import re
from typing import Any

import orjson

from .logging_config import get_logger
from .models import ApiResponse, Assertion, AssertionType, TestResult

logger = get_logger("assertions")

_INDEX = re.compile(r"\[(\d+)\]")


class AssertionFailed(Exception):
    """Raised inside a check; becomes a failed TestResult, never escapes evaluate_assertions."""


def _json_body(response: ApiResponse) -> Any:
    if isinstance(response.data, (dict, list)):
        return response.data
    try:
        return orjson.loads(response.text())
    except orjson.JSONDecodeError as e:
        raise AssertionFailed("response body is not JSON") from e


def lookup_path(data: Any, path: str) -> Any:
    """Follow a dotted path (``items[0].id`` or ``items.0.id``) through parsed JSON."""
    current = data
    for part in _INDEX.sub(r".\1", path).split("."):
        if not part:
            continue
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise AssertionFailed(f"path {path!r} not found")
    return current


def _check(assertion: Assertion, response: ApiResponse) -> None:
    expected = assertion.expected
    kind = assertion.type
    if kind is AssertionType.STATUS:
        if response.status != int(expected):
            raise AssertionFailed(f"expected status {expected}, got {response.status}")
    elif kind is AssertionType.STATUS_RANGE:
        low, high = (int(v) for v in expected)
        if not low <= response.status <= high:
            raise AssertionFailed(f"status {response.status} not in {low}-{high}")
    elif kind is AssertionType.RESPONSE_TIME_BELOW:
        if not response.time_ms < float(expected):
            raise AssertionFailed(f"response time {response.time_ms:.1f}ms >= {expected}ms")
    elif kind is AssertionType.BODY_CONTAINS:
        if str(expected) not in response.text():
            raise AssertionFailed(f"body does not contain {expected!r}")
    elif kind is AssertionType.HEADER_EQUALS:
        headers = {k.lower(): v for k, v in response.headers.items()}
        actual = headers.get(assertion.target.lower())
        if actual != str(expected):
            raise AssertionFailed(f"header {assertion.target} is {actual!r}, expected {expected!r}")
    elif kind is AssertionType.JSON_PATH_EQUALS:
        actual = lookup_path(_json_body(response), assertion.target)
        if actual != expected:
            raise AssertionFailed(f"{assertion.target} is {actual!r}, expected {expected!r}")


def evaluate_assertions(assertions: list[Assertion], response: ApiResponse) -> list[TestResult]:
    """One TestResult per assertion, in order. Malformed assertions fail instead of raising."""
    results: list[TestResult] = []
    for assertion in assertions:
        try:
            _check(assertion, response)
        except AssertionFailed as e:
            results.append(TestResult(name=assertion.label(), passed=False, error=str(e)))
        except (TypeError, ValueError) as e:
            logger.debug("Malformed assertion %s: %s", assertion.label(), e)
            results.append(TestResult(name=assertion.label(), passed=False, error=f"invalid assertion: {e}"))
        else:
            results.append(TestResult(name=assertion.label(), passed=True))
    return results
