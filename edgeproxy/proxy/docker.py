"""Docker Registry V2 protocol adapter.

State machine (one pure function per transition, ``DockerAdapter`` drives it):

- ROOT_PROBE → AUTH_CHALLENGE: Docker Hub ``/v2/`` answered 401
- ROOT_PROBE → FINAL: anything else, relayed verbatim
- DISPATCH → AUTH_CHALLENGE: upstream 401; realm rewritten to the edge ``/token``
- DISPATCH → BLOB_REDIRECT: 3xx with ``Location``; followed by a second GET
- DISPATCH → FINAL: passthrough plus CORS and registry API version headers
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from urllib.parse import urljoin

from starlette.responses import Response

from edgeproxy.middleware.error_handler import UpstreamNetworkError
from edgeproxy.proxy.headers import (
    CORS_ALLOW_ALL,
    EDGE_IDENTIFYING,
    HOP_BY_HOP,
    REGISTRY_API_VERSION,
    HeaderMap,
)
from edgeproxy.proxy.types import DockerV2Route, ProxyRequest, UpstreamCall
from edgeproxy.proxy.upstream import (
    REDIRECT_STATUSES,
    UpstreamClient,
    relay,
    response_headers,
)

logger = logging.getLogger(__name__)

DOCKER_USER_AGENT = "Docker-Client/24.0.5 (linux)"

_REALM = re.compile(r'realm="([^"]+)"')


class DockerState(str, Enum):
    """Docker adapter states."""

    ROOT_PROBE = "root_probe"
    DISPATCH = "dispatch"
    AUTH_CHALLENGE = "auth_challenge"
    BLOB_REDIRECT = "blob_redirect"
    FINAL = "final"


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def next_state(current: DockerState, status_code: int, headers: HeaderMap) -> DockerState:
    """State after an upstream response in ``current``."""
    if status_code == 401:
        return DockerState.AUTH_CHALLENGE
    if (
        current is DockerState.DISPATCH
        and status_code in REDIRECT_STATUSES
        and headers.get("location")
    ):
        return DockerState.BLOB_REDIRECT
    return DockerState.FINAL


def rewrite_realm(challenge: str, edge_origin: str) -> str:
    """Point a ``WWW-Authenticate`` challenge's realm at the edge token endpoint."""
    return _REALM.sub(f'realm="{edge_origin}/token"', challenge, count=1)


def forward_headers(request: ProxyRequest, registry_host: str) -> HeaderMap:
    """Inbound headers as sent to a registry: Host and UA overridden, edge headers gone."""
    return (
        request.headers.without_keys(*HOP_BY_HOP, *EDGE_IDENTIFYING, "host", "content-length")
        .with_override("Host", registry_host)
        .with_override("User-Agent", DOCKER_USER_AGENT)
    )


def upstream_call(route: DockerV2Route, request: ProxyRequest) -> UpstreamCall:
    return UpstreamCall(
        url=route.target_url,
        method=request.method,
        headers=forward_headers(request, route.registry_host),
        body=request.body if request.method not in ("GET", "HEAD") else None,
    )


def challenge_headers(headers: HeaderMap, edge_origin: str) -> HeaderMap:
    challenge = headers.get("www-authenticate")
    if not challenge:
        return headers
    return headers.with_override(
        "WWW-Authenticate", rewrite_realm(challenge, edge_origin)
    ).with_override(*CORS_ALLOW_ALL)


def blob_call(location: str, request: ProxyRequest) -> UpstreamCall:
    """Pre-signed object-storage URL: no auth, only UA and the client's Range."""
    headers = HeaderMap([("User-Agent", DOCKER_USER_AGENT)]).copy_from(
        request.headers, "range"
    )
    method = "HEAD" if request.method == "HEAD" else "GET"
    return UpstreamCall(url=location, method=method, headers=headers)


def blob_headers(headers: HeaderMap) -> HeaderMap:
    """Relayed blob headers; the body is sent decoded so encoding headers go."""
    stripped = headers.without_keys("content-encoding", "transfer-encoding")
    if "content-encoding" in headers:
        stripped = stripped.without_keys("content-length")
    return stripped.with_override(*CORS_ALLOW_ALL)


def final_headers(headers: HeaderMap) -> HeaderMap:
    return headers.with_override(*CORS_ALLOW_ALL).with_override(*REGISTRY_API_VERSION)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class DockerAdapter:
    """Replays the Docker V2 token/redirect/blob exchange against upstream registries."""

    def __init__(self, upstream: UpstreamClient) -> None:
        self._upstream = upstream

    async def handle(self, route: DockerV2Route, request: ProxyRequest) -> Response:
        state = DockerState.ROOT_PROBE if route.is_root_probe else DockerState.DISPATCH
        try:
            return await self._run(state, route, request)
        except UpstreamNetworkError as exc:
            raise UpstreamNetworkError(f"Docker Proxy Error: {exc.message}") from exc

    async def _run(
        self, state: DockerState, route: DockerV2Route, request: ProxyRequest
    ) -> Response:
        upstream = await self._upstream.open(upstream_call(route, request))
        headers = response_headers(upstream)
        initial = state
        state = next_state(state, upstream.status_code, headers)
        logger.debug(
            "Docker %s -> %s (%d) %s",
            initial.value,
            state.value,
            upstream.status_code,
            route.target_url,
        )

        if state is DockerState.AUTH_CHALLENGE:
            return relay(upstream, challenge_headers(headers, request.edge_origin))

        if state is DockerState.BLOB_REDIRECT:
            location = urljoin(route.target_url, headers.get("location", ""))
            await upstream.aclose()
            blob = await self._upstream.open(blob_call(location, request))
            return relay(blob, blob_headers(response_headers(blob)), decoded=True)

        if initial is DockerState.ROOT_PROBE:
            return relay(upstream, headers)
        return relay(upstream, final_headers(headers))
