"""Unit tests for format detection."""

from __future__ import annotations

from courier.detect import DocumentFormat, detect_format


def test_detect_native() -> None:
    assert detect_format([{"id": "c", "name": "C", "folders": [], "requests": []}]) is DocumentFormat.NATIVE


def test_detect_empty_list_is_unknown() -> None:
    assert detect_format([]) is DocumentFormat.UNKNOWN


def test_detect_list_without_requests_or_folders_is_unknown() -> None:
    assert detect_format([{"name": "x"}]) is DocumentFormat.UNKNOWN


def test_detect_postman() -> None:
    assert detect_format({"info": {"name": "x"}, "item": []}) is DocumentFormat.POSTMAN


def test_detect_insomnia() -> None:
    doc = {"_type": "export", "resources": [{"_type": "workspace", "_id": "wrk_1"}]}
    assert detect_format(doc) is DocumentFormat.INSOMNIA


def test_detect_insomnia_empty_resources() -> None:
    assert detect_format({"resources": []}) is DocumentFormat.INSOMNIA


def test_detect_insomnia_requires_type_on_every_resource() -> None:
    assert detect_format({"resources": [{"_type": "request"}, {"name": "x"}]}) is DocumentFormat.UNKNOWN


def test_detect_openapi_and_swagger() -> None:
    assert detect_format({"openapi": "3.1.0", "paths": {}}) is DocumentFormat.OPENAPI
    assert detect_format({"swagger": "2.0", "paths": {}}) is DocumentFormat.SWAGGER
    assert detect_format({"swagger": "1.2"}) is DocumentFormat.UNKNOWN


def test_detect_postman_wins_over_openapi() -> None:
    assert detect_format({"info": {}, "item": [], "openapi": "3.0.0"}) is DocumentFormat.POSTMAN


def test_detect_never_raises_on_garbage() -> None:
    for value in (None, 42, "text", 3.5, {"openapi": 3}, [1, 2]):
        assert detect_format(value) is DocumentFormat.UNKNOWN
