"""Global error hierarchy and FastAPI exception handlers.

All edge-specific errors extend EdgeError. The FastAPI exception handlers
catch these errors (plus unhandled exceptions) and return a consistent JSON
envelope: { success, data, error, meta }. Stack traces are logged, never sent.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class EdgeError(Exception):
    """Base error for all edge-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class AccessDeniedError(EdgeError):
    """Domain, client IP or country policy rejected the request."""

    status_code = 403
    message = "Access Denied"


class AdminForbiddenError(EdgeError):
    """Admin command requested from an address outside the admin list."""

    status_code = 403
    message = "Forbidden: Admin IP Required"


class NotAuthenticatedError(EdgeError):
    """Missing or wrong secret segment. Indistinguishable from an unknown route."""

    status_code = 404
    message = "404 Not Found"


class QuotaExceededError(EdgeError):
    """Daily per-IP request quota used up."""

    status_code = 429
    message = "Daily Limit Exceeded"


class PayloadTooLargeError(EdgeError):
    """Inbound request body above the configured cap."""

    status_code = 413
    message = "Payload Too Large"


class InvalidTargetURLError(EdgeError):
    """The proxied target does not parse as an http(s) URL."""

    status_code = 400
    message = "Invalid URL"


class TooManyRedirectsError(EdgeError):
    """Redirect hop ceiling reached without a terminal response."""

    status_code = 502
    message = "Proxy Error: Too many redirects"


class UpstreamNetworkError(EdgeError):
    """DNS, connect or timeout failure talking to an upstream."""

    status_code = 502
    message = "Upstream request failed"


class CounterStoreError(EdgeError):
    """Every configured counter backend failed."""

    status_code = 500
    message = "Counter store unavailable"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _edge_error_handler(_request: Request, exc: EdgeError) -> JSONResponse:
    """Handle EdgeError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions; logs the traceback and returns a generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(EdgeError, _edge_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
