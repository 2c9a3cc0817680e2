"""Unit tests for response assertions."""

from __future__ import annotations

import pytest

from courier.assertions import AssertionFailed, evaluate_assertions, lookup_path
from courier.models import ApiResponse, Assertion, AssertionType


def _response(**kwargs) -> ApiResponse:
    defaults = {"status": 200, "status_text": "OK", "headers": {"Content-Type": "application/json"}, "time_ms": 42.0}
    defaults.update(kwargs)
    return ApiResponse(**defaults)


def test_lookup_path() -> None:
    data = {"items": [{"id": 1}, {"id": 2}], "meta": {"total": 2}}
    assert lookup_path(data, "items[1].id") == 2
    assert lookup_path(data, "items.0.id") == 1
    assert lookup_path(data, "meta.total") == 2
    with pytest.raises(AssertionFailed):
        lookup_path(data, "items[5].id")


def test_all_assertion_types_pass() -> None:
    response = _response(data={"user": {"name": "ada"}})
    assertions = [
        Assertion(AssertionType.STATUS, 200),
        Assertion(AssertionType.STATUS_RANGE, [200, 299]),
        Assertion(AssertionType.RESPONSE_TIME_BELOW, 100),
        Assertion(AssertionType.BODY_CONTAINS, "ada"),
        Assertion(AssertionType.HEADER_EQUALS, "application/json", target="content-type"),
        Assertion(AssertionType.JSON_PATH_EQUALS, "ada", target="user.name"),
    ]
    results = evaluate_assertions(assertions, response)
    assert len(results) == 6
    assert all(r.passed for r in results)


def test_failures_carry_messages_in_order() -> None:
    response = _response(status=500, data="boom", time_ms=250.0)
    results = evaluate_assertions(
        [
            Assertion(AssertionType.STATUS, 200, name="is ok"),
            Assertion(AssertionType.RESPONSE_TIME_BELOW, 100),
            Assertion(AssertionType.JSON_PATH_EQUALS, 1, target="a"),
        ],
        response,
    )
    assert [r.passed for r in results] == [False, False, False]
    assert results[0].name == "is ok"
    assert results[0].error == "expected status 200, got 500"
    assert "250.0ms" in results[1].error
    assert results[2].error == "response body is not JSON"


def test_json_body_parsed_from_text() -> None:
    response = _response(data='{"ok": true}')
    [result] = evaluate_assertions([Assertion(AssertionType.JSON_PATH_EQUALS, True, target="ok")], response)
    assert result.passed


def test_malformed_assertion_fails_instead_of_raising() -> None:
    [result] = evaluate_assertions([Assertion(AssertionType.STATUS_RANGE, "abc")], _response())
    assert not result.passed
    assert result.error.startswith("invalid assertion")


def test_no_assertions_no_results() -> None:
    assert evaluate_assertions([], _response()) == []
