"""Client allow-list middleware.

When an IP or country allow-list is configured, every request except the
static assets, the token relay and CORS preflights must come from an allowed
IP or an allowed country; anything else gets a 403 envelope.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from edgeproxy.middleware.error_handler import AccessDeniedError, _envelope

if TYPE_CHECKING:
    from edgeproxy.proxy.access import AccessFilter

logger = logging.getLogger(__name__)

# Paths served before the client policy applies.
_PUBLIC_PATHS: set[str] = {"/robots.txt", "/favicon.ico", "/token"}


class ClientAccessMiddleware(BaseHTTPMiddleware):
    """Rejects clients outside the configured IP/country allow-lists.

    Relies on ``ClientContextMiddleware`` having resolved ``client_ip`` and
    ``country`` on ``request.state``.
    """

    def __init__(self, app, access_filter: AccessFilter) -> None:  # noqa: ANN001
        super().__init__(app)
        self._access = access_filter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if (
            not self._access.restricts_clients
            or request.method == "OPTIONS"
            or request.url.path in _PUBLIC_PATHS
        ):
            return await call_next(request)

        client_ip = getattr(request.state, "client_ip", "unknown")
        country = getattr(request.state, "country", None)
        if self._access.client_allowed(client_ip, country):
            return await call_next(request)

        logger.warning(
            "Client rejected by allow-list",
            extra={"client_ip": client_ip, "route": "denied"},
        )
        return _envelope(
            status_code=AccessDeniedError.status_code,
            error=AccessDeniedError.message,
            meta={"country": country} if country else None,
        )
