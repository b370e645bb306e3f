"""Docker ``/token`` relay.

Clients reach this endpoint because the edge rewrote the registry's 401
realm. The request is forwarded to the authorization server that owns the
scope: an alternate registry's ``/token`` when the scope mentions one, else
Docker Hub's auth server (which also needs ``service=registry.docker.io`` and
``library/`` scope completion).
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit

from starlette.responses import Response

from edgeproxy.config.upstreams import DOCKER_HUB_AUTH_URL, DOCKER_HUB_SERVICE
from edgeproxy.middleware.error_handler import UpstreamNetworkError
from edgeproxy.proxy.docker import DOCKER_USER_AGENT
from edgeproxy.proxy.headers import EDGE_IDENTIFYING, HOP_BY_HOP
from edgeproxy.proxy.registry import RegistryRouter
from edgeproxy.proxy.types import ProxyRequest, RedirectPolicy, UpstreamCall
from edgeproxy.proxy.upstream import UpstreamClient, relay, response_headers


def build_token_url(router: RegistryRouter, query: str) -> str:
    """Upstream token URL for an inbound ``/token`` query string."""
    params = parse_qsl(query, keep_blank_values=True)
    scope = next((value for key, value in params if key == "scope"), None)
    endpoint = router.auth_endpoint(scope)

    if endpoint == DOCKER_HUB_AUTH_URL:
        params = [
            (key, router.complete_scope(value) if key == "scope" else value)
            for key, value in params
            if key != "service"
        ]
        params.insert(0, ("service", DOCKER_HUB_SERVICE))

    encoded = urlencode(params)
    return f"{endpoint}?{encoded}" if encoded else endpoint


class TokenRelay:
    """Forwards token requests and relays the auth server's answer unmodified."""

    def __init__(self, upstream: UpstreamClient, router: RegistryRouter) -> None:
        self._upstream = upstream
        self._router = router

    async def handle(self, request: ProxyRequest) -> Response:
        url = build_token_url(self._router, request.query)
        headers = (
            request.headers.without_keys(*HOP_BY_HOP, *EDGE_IDENTIFYING, "content-length")
            .with_override("Host", urlsplit(url).netloc)
            .with_override("User-Agent", DOCKER_USER_AGENT)
        )
        call = UpstreamCall(
            url=url,
            method=request.method,
            headers=headers,
            body=request.body if request.method not in ("GET", "HEAD") else None,
            redirect_policy=RedirectPolicy.FOLLOW,
        )
        try:
            upstream = await self._upstream.open(call)
        except UpstreamNetworkError as exc:
            raise UpstreamNetworkError(f"Token Proxy Error: {exc.message}") from exc
        return relay(upstream, response_headers(upstream))
