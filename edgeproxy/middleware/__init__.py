"""Middleware package: error hierarchy, client context and client access."""

from edgeproxy.middleware.access import ClientAccessMiddleware
from edgeproxy.middleware.client_context import ClientContextMiddleware, resolve_client_ip
from edgeproxy.middleware.error_handler import (
    AccessDeniedError,
    AdminForbiddenError,
    CounterStoreError,
    EdgeError,
    InvalidTargetURLError,
    NotAuthenticatedError,
    PayloadTooLargeError,
    QuotaExceededError,
    TooManyRedirectsError,
    UpstreamNetworkError,
    register_error_handlers,
)

__all__ = [
    "AccessDeniedError",
    "AdminForbiddenError",
    "ClientAccessMiddleware",
    "ClientContextMiddleware",
    "CounterStoreError",
    "EdgeError",
    "InvalidTargetURLError",
    "NotAuthenticatedError",
    "PayloadTooLargeError",
    "QuotaExceededError",
    "TooManyRedirectsError",
    "UpstreamNetworkError",
    "register_error_handlers",
    "resolve_client_ip",
]
