"""Client context middleware.

Generates (or propagates) a request ID, resolves the client IP, country and
edge origin once per request, stores them on ``request.state`` and emits one
access log line when the response headers are ready.
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from edgeproxy.config.settings import EdgeSettings

logger = logging.getLogger("edgeproxy.access")

_MAPPED_V4_PREFIX = "::ffff:"


def resolve_client_ip(request: Request, trust_forwarded: bool) -> str:
    """Client address from CF-Connecting-IP, X-Forwarded-For or the socket peer."""
    candidate = None
    if trust_forwarded:
        candidate = request.headers.get("cf-connecting-ip")
        if not candidate:
            forwarded = request.headers.get("x-forwarded-for", "")
            candidate = forwarded.split(",")[0].strip() or None
    if not candidate:
        candidate = request.client.host if request.client else "unknown"
    if candidate.lower().startswith(_MAPPED_V4_PREFIX):
        candidate = candidate[len(_MAPPED_V4_PREFIX):]
    return candidate


class ClientContextMiddleware(BaseHTTPMiddleware):
    """Populates ``request.state`` with request_id, client_ip, country, edge_origin.

    If the incoming request already carries an ``X-Request-ID`` header the
    provided value is reused; otherwise a new UUID4 is generated.
    """

    def __init__(self, app, settings: EdgeSettings) -> None:  # noqa: ANN001
        super().__init__(app)
        self._settings = settings

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        client_ip = resolve_client_ip(request, self._settings.trust_forwarded_headers)
        country = request.headers.get(self._settings.country_header) or None

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        request.state.country = country.upper() if country else None
        request.state.edge_origin = (
            self._settings.public_origin or f"{request.url.scheme}://{request.url.netloc}"
        )

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "%s %s -> %d",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "request_id": request_id,
                "client_ip": client_ip,
                "method": request.method,
                "route": getattr(request.state, "route", None),
                "status_code": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return response
