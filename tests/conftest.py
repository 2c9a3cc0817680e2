"""Pytest fixtures for courier tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from courier.models import (
    ApiRequest,
    ApiResponse,
    Assertion,
    AssertionType,
    BodyType,
    Collection,
    Folder,
    KeyValuePair,
)


class StubExecutor:
    """Async executor double: records every request and answers from a handler."""

    def __init__(self, handler: Callable[[ApiRequest], ApiResponse] | None = None) -> None:
        self.calls: list[ApiRequest] = []
        self._handler = handler or (lambda req: ApiResponse(status=200, status_text="OK", data="ok", time_ms=10.0))

    async def __call__(self, request: ApiRequest) -> ApiResponse:
        self.calls.append(request)
        return self._handler(request)


@pytest.fixture
def stub_executor() -> type[StubExecutor]:
    return StubExecutor


@pytest.fixture
def sample_collection() -> Collection:
    """Two-level collection exercising tokens, disabled pairs, bodies and assertions."""
    return Collection(
        id="col-1",
        name="Sample API",
        description="Sample collection",
        requests=[
            ApiRequest(
                id="req-health",
                name="Health",
                method="GET",
                url="{{baseUrl}}/health",
                assertions=[Assertion(type=AssertionType.STATUS, expected=200)],
            ),
        ],
        folders=[
            Folder(
                id="fld-users",
                name="users",
                requests=[
                    ApiRequest(
                        id="req-list",
                        name="List users",
                        method="GET",
                        url="{{baseUrl}}/users",
                        params=[KeyValuePair("page", "1"), KeyValuePair("debug", "true", enabled=False)],
                        headers=[KeyValuePair("Accept", "application/json")],
                    ),
                    ApiRequest(
                        id="req-create",
                        name="Create user",
                        method="POST",
                        url="{{baseUrl}}/users",
                        headers=[KeyValuePair("Content-Type", "application/json")],
                        body='{"name": "{{userName}}"}',
                        body_type=BodyType.JSON,
                    ),
                ],
                folders=[
                    Folder(
                        id="fld-admin",
                        name="admin",
                        requests=[
                            ApiRequest(
                                id="req-delete",
                                name="Delete user",
                                method="DELETE",
                                url="{{baseUrl}}/users/{{userId}}",
                            ),
                        ],
                    )
                ],
            )
        ],
    )


@pytest.fixture
def sample_postman_collection_path(tmp_path: Path) -> Path:
    """Minimal Postman v2.1 collection JSON file."""
    content = """{
  "info": { "name": "Test", "schema": "https://schema.getpostman.com/json/collection/v2.1.0/collection.json" },
  "item": [
    {
      "name": "Get",
      "request": {
        "method": "GET",
        "url": "https://httpbin.org/get"
      }
    }
  ]
}
"""
    p = tmp_path / "collection.json"
    p.write_text(content, encoding="utf-8")
    return p


@pytest.fixture
def petstore_spec() -> dict:
    return {
        "openapi": "3.0.3",
        "info": {"title": "Petstore", "version": "1.0.0"},
        "servers": [{"url": "https://petstore.example.com/v1/"}],
        "paths": {
            "/pets": {
                "get": {
                    "summary": "List pets",
                    "parameters": [
                        {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 20}},
                        {"name": "X-Trace", "in": "header", "example": "abc"},
                    ],
                },
                "post": {
                    "operationId": "createPet",
                    "requestBody": {
                        "content": {
                            "application/json": {"schema": {"$ref": "#/components/schemas/Pet"}},
                        }
                    },
                },
            },
            "/pets/{petId}": {
                "parameters": [{"name": "petId", "in": "path", "required": True}],
                "get": {"summary": "Show pet"},
                "delete": {},
            },
            "/health": {"get": {"summary": "Health"}},
        },
        "components": {
            "schemas": {
                "Pet": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "example": "Rex"},
                        "tag": {"type": "string", "enum": ["dog", "cat"]},
                        "age": {"type": "integer"},
                        "owner": {"$ref": "#/components/schemas/Owner"},
                    },
                },
                "Owner": {
                    "type": "object",
                    "properties": {"pets": {"type": "array", "items": {"$ref": "#/components/schemas/Pet"}}},
                },
            }
        },
    }


@pytest.fixture
def tmp_path_config_monitors(tmp_path: Path) -> Path:
    """Config with one monitor per schedule style; storage under tmp_path."""
    p = tmp_path / "courier.yaml"
    p.write_text(
        f"""workspace: team
storage_dir: {tmp_path / 'state'}
history_limit: 20
request_timeout_seconds: 5
http2: false
monitors:
  - name: Health check
    collection: Test
    schedule: 5m
    thresholds:
      max_response_time_ms: 800
      min_status_code: 400
    webhook:
      url: https://hooks.example.com/alert
      headers: '{{"X-Token": "abc"}}'
  - name: Nightly
    collection: Test
    schedule: 1d
    enabled: false
    thresholds:
      alert_on_test_failure: false
""",
        encoding="utf-8",
    )
    return p
