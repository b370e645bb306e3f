"""Shared test fixtures for the edge proxy test suite."""

from __future__ import annotations

import os
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from edgeproxy.config.settings import EdgeSettings
from edgeproxy.main import create_app
from edgeproxy.proxy.headers import HeaderMap
from edgeproxy.proxy.types import ProxyRequest

PASSWORD = "123456"
CLIENT_IP = "203.0.113.7"


# ---------------------------------------------------------------------------
# Keep the developer's EDGE_* environment out of the tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clear_edge_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("EDGE_"):
            monkeypatch.delenv(key)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> EdgeSettings:
    """Test settings with safe defaults, as if deployed behind a CDN."""
    return EdgeSettings(
        password=PASSWORD, daily_limit=5, log_level="WARNING", trust_forwarded_headers=True
    )


# ---------------------------------------------------------------------------
# Mock upstream
# ---------------------------------------------------------------------------

Handler = Callable[[httpx.Request], httpx.Response]


class MockUpstream:
    """Records every upstream request and answers with ``handler``."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.calls: list[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(200, content=b"ok"))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self._handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def urls(self) -> list[str]:
        return [str(call.url) for call in self.calls]


@pytest.fixture
def make_client(settings: EdgeSettings):
    """Build a TestClient around ``create_app`` with a mock upstream."""
    clients: list[TestClient] = []

    def _make(upstream: MockUpstream, **overrides: object) -> TestClient:
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        client = TestClient(
            create_app(app_settings, transport=upstream.transport),
            raise_server_exceptions=False,
            headers={"CF-Connecting-IP": CLIENT_IP},
        )
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


def _make_request(
    path: str = "/",
    *,
    method: str = "GET",
    query: str = "",
    headers: dict[str, str] | None = None,
    body: bytes | None = None,
    client_ip: str = CLIENT_IP,
    edge_origin: str = "https://edge.example.com",
) -> ProxyRequest:
    """ProxyRequest for unit tests that bypass the app."""
    url = f"{edge_origin}{path}" + (f"?{query}" if query else "")
    return ProxyRequest(
        method=method,
        path=path,
        query=query,
        headers=HeaderMap((headers or {}).items()),
        body=body,
        client_ip=client_ip,
        country=None,
        url=url,
        edge_origin=edge_origin,
    )


@pytest.fixture
def make_request():
    """Factory for ProxyRequest values."""
    return _make_request


@pytest.fixture
def mock_upstream():
    """Factory for MockUpstream recorders."""
    return MockUpstream
