"""Pytest configuration and shared helpers for protocol-client tests.

This file provides:
- Widget: a small pydantic model used as a typed request/response body
- Status: a (str, Enum) argument type, sent on the wire by value
- make_response: httpx.Response factory with sensible defaults
- RecordingHandler / make_transport: an in-process HTTP server built on
  httpx.MockTransport, recording every request it receives
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Callable

import httpx
import pytest
from pydantic import BaseModel

from protocol_client.models import ClientConfig
from protocol_client.transport import Transport


class Widget(BaseModel):
    id: int
    name: str
    tags: list[str] = []


class Status(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


def make_response(
    status_code: int = 200,
    content: bytes | str = b"",
    content_type: str | None = None,
    headers: dict[str, str] | None = None,
    url: str = "http://api.test/",
) -> httpx.Response:
    """Create an httpx.Response for decoder tests.

    Prefer this over constructing httpx.Response directly - it attaches a
    request (needed by raise_for_status and friends) and sets Content-Type.
    """
    all_headers = dict(headers or {})
    if content_type is not None:
        all_headers["Content-Type"] = content_type
    if isinstance(content, str):
        content = content.encode("utf-8")
    return httpx.Response(
        status_code,
        headers=all_headers,
        content=content,
        request=httpx.Request("GET", url),
    )


class RecordingHandler:
    """MockTransport handler that records requests and replays canned responses.

    Usage:
        handler = RecordingHandler(make_response(200, b"[]", "application/json"))
        transport = make_transport(handler)
        ...
        assert handler.requests[0].url.path == "/widgets"
    """

    def __init__(self, response: httpx.Response | Callable[[httpx.Request], httpx.Response] | None = None) -> None:
        self._response = response if response is not None else httpx.Response(204)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if callable(self._response):
            return self._response(request)
        # A fresh Response per call: a streamed response can only be read once.
        return httpx.Response(
            self._response.status_code,
            headers=self._response.headers,
            content=self._response.content,
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_transport(
    handler: Callable[[httpx.Request], httpx.Response],
    config: ClientConfig | None = None,
) -> Transport:
    """Transport whose httpx.Client never leaves the process."""
    config = config or ClientConfig()
    client = httpx.Client(
        transport=httpx.MockTransport(handler),
        headers=config.headers,
        follow_redirects=config.follow_redirects,
    )
    return Transport(config, client=client)


@pytest.fixture
def widget() -> Widget:
    return Widget(id=1, name="sprocket", tags=["a", "b"])


@pytest.fixture
def json_handler() -> RecordingHandler:
    """Handler answering every request with an empty JSON object."""
    return RecordingHandler(make_response(200, b"{}", "application/json"))


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content)
