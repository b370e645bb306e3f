"""Unit tests for the error hierarchy and FastAPI exception handlers."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from edgeproxy.middleware.error_handler import (
    AccessDeniedError,
    AdminForbiddenError,
    CounterStoreError,
    EdgeError,
    InvalidTargetURLError,
    NotAuthenticatedError,
    QuotaExceededError,
    TooManyRedirectsError,
    UpstreamNetworkError,
    register_error_handlers,
)


# ---------------------------------------------------------------------------
# Test app fixture
# ---------------------------------------------------------------------------


def _make_app() -> FastAPI:
    """Build a minimal FastAPI app with error handlers registered."""
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/raise-quota")
    async def _raise_quota():
        raise QuotaExceededError("Daily Limit Exceeded: 5/5", count=5, limit=5)

    @app.get("/raise-not-found")
    async def _raise_not_found():
        raise NotAuthenticatedError()

    @app.get("/raise-unhandled")
    async def _raise_unhandled():
        raise RuntimeError("boom with secret details")

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_make_app(), raise_server_exceptions=False)


class TestStatusCodes:
    @pytest.mark.parametrize(
        ("error_cls", "status"),
        [
            (EdgeError, 500),
            (AccessDeniedError, 403),
            (AdminForbiddenError, 403),
            (NotAuthenticatedError, 404),
            (QuotaExceededError, 429),
            (InvalidTargetURLError, 400),
            (TooManyRedirectsError, 502),
            (UpstreamNetworkError, 502),
            (CounterStoreError, 500),
        ],
    )
    def test_status_code(self, error_cls: type[EdgeError], status: int) -> None:
        assert error_cls.status_code == status
        assert issubclass(error_cls, EdgeError)

    def test_default_message(self) -> None:
        assert TooManyRedirectsError().message == "Proxy Error: Too many redirects"


class TestEnvelope:
    def test_edge_error_envelope(self, client: TestClient) -> None:
        response = client.get("/raise-quota")
        assert response.status_code == 429
        assert response.json() == {
            "success": False,
            "data": None,
            "error": "Daily Limit Exceeded: 5/5",
            "meta": {"count": 5, "limit": 5},
        }

    def test_meta_is_null_without_details(self, client: TestClient) -> None:
        body = client.get("/raise-not-found").json()
        assert body["error"] == "404 Not Found"
        assert body["meta"] is None

    def test_unhandled_is_generic_500(self, client: TestClient) -> None:
        response = client.get("/raise-unhandled")
        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"
        assert "boom" not in response.text
