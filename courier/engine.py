"""HTTP execution: wire-form construction and the default httpx-based executor.

- build_wire_request: resolved ApiRequest -> method/url/headers/body as sent
- HttpExecutor: async callable ApiRequest -> ApiResponse over a shared AsyncClient
- create_client: shared async HTTP client factory

Transport errors (connect, timeout, protocol) propagate to the caller; the runner records
them as failed items.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx
import orjson

from .logging_config import get_logger
from .models import ApiRequest, ApiResponse, BodyType, enabled_pairs, media_type_for_body_type

logger = get_logger("engine")

DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE = 20
DEFAULT_KEEPALIVE_EXPIRY = 30.0
# Default timeout for HTTP requests (seconds)
DEFAULT_TIMEOUT_SEC = 30.0
# Nanoseconds to milliseconds conversion
NS_TO_MS = 1_000_000

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

Executor = Callable[[ApiRequest], Awaitable[ApiResponse]]


@dataclass(slots=True)
class WireRequest:
    method: str
    url: str
    params: list[tuple[str, str]] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None
    # multipart fields as httpx ``files`` tuples
    files: list[tuple[str, tuple[None, str]]] | None = None

    def httpx_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"headers": self.headers}
        if self.params:
            kwargs["params"] = self.params
        if self.content is not None:
            kwargs["content"] = self.content
        if self.files is not None:
            kwargs["files"] = self.files
        return kwargs


def _has_header(headers: dict[str, str], name: str) -> bool:
    return name.lower() in {k.lower() for k in headers}


def build_wire_request(request: ApiRequest) -> WireRequest:
    """Wire form of an already-resolved request. Disabled pairs never reach the wire."""
    method = request.method.upper()
    wire = WireRequest(
        method=method,
        url=request.url,
        params=[(p.key, p.value) for p in enabled_pairs(request.params)],
        headers={h.key: h.value for h in enabled_pairs(request.headers)},
    )
    if method in BODYLESS_METHODS or request.body_type is BodyType.NONE:
        return wire

    if request.body_type.is_text_like:
        if not request.body:
            return wire
        wire.content = request.body.encode("utf-8")
    elif request.body_type is BodyType.FORM_URLENCODED:
        wire.content = urlencode([(f.key, f.value) for f in enabled_pairs(request.form_data)]).encode("ascii")
    elif request.body_type is BodyType.FORM_DATA:
        # httpx generates the multipart boundary; a fixed Content-Type would break it
        wire.headers = {k: v for k, v in wire.headers.items() if k.lower() != "content-type"}
        wire.files = [(f.key, (None, f.value)) for f in enabled_pairs(request.form_data)]
        return wire

    if not _has_header(wire.headers, "content-type"):
        wire.headers["Content-Type"] = media_type_for_body_type(request.body_type) or "text/plain"
    return wire


def _response_data(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type and response.content:
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError:
            logger.debug("Response declared JSON but did not parse; keeping text")
    return response.text


class HttpExecutor:
    """Default executor: sends a resolved request with a shared httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def __call__(self, request: ApiRequest) -> ApiResponse:
        wire = build_wire_request(request)
        # perf_counter_ns is faster than perf_counter (no float conversion)
        start_ns = time.perf_counter_ns()
        r = await self._client.request(wire.method, wire.url, **wire.httpx_kwargs())
        elapsed_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
        return ApiResponse(
            status=r.status_code,
            status_text=r.reason_phrase,
            headers=dict(r.headers),
            data=_response_data(r),
            time_ms=elapsed_ms,
            size=len(r.content),
        )


async def create_client(
    http2: bool = True,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    limits: httpx.Limits | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create shared async HTTP client.

    Args:
        http2: Enable HTTP/2 protocol
        timeout: Request timeout in seconds
        limits: Custom connection limits
        transport: Optional transport (httpx.MockTransport in tests)

    Returns:
        Configured AsyncClient ready for use as async context manager
    """
    limits = limits or httpx.Limits(
        max_connections=DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections=DEFAULT_MAX_KEEPALIVE,
        keepalive_expiry=DEFAULT_KEEPALIVE_EXPIRY,
    )
    return httpx.AsyncClient(
        http2=http2,
        timeout=timeout,
        limits=limits,
        transport=transport,
    )
