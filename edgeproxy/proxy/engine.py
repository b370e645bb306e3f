"""General proxy engine: manual redirect loop plus raw/recursive delivery.

Redirects are followed by hand rather than by the HTTP client so the domain
policy is evaluated on every hop and the hop count stays bounded.
"""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlsplit

import httpx
from starlette.responses import Response

from edgeproxy.middleware.error_handler import TooManyRedirectsError, UpstreamNetworkError
from edgeproxy.proxy.access import AccessFilter
from edgeproxy.proxy.headers import CORS_ALLOW_ALL, EDGE_IDENTIFYING, HOP_BY_HOP, HeaderMap
from edgeproxy.proxy.rewriter import RecursiveRewriter
from edgeproxy.proxy.types import (
    GeneralProxyRoute,
    ProxyMode,
    ProxyRequest,
    RedirectPolicy,
    UpstreamCall,
)
from edgeproxy.proxy.upstream import REDIRECT_STATUSES, UpstreamClient, relay, response_headers
from edgeproxy.proxy.urls import origin_of

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_BLOCKING_RESPONSE_HEADERS = (
    "content-security-policy",
    "content-security-policy-report-only",
    "clear-site-data",
)

PROXY_MODE_LABELS = {
    ProxyMode.RAW: "Raw-Passthrough",
    ProxyMode.RECURSIVE: "Recursive-Force-Text",
}


def hop_headers(request: ProxyRequest, url: str, mode: ProxyMode) -> HeaderMap:
    """Outbound headers for one hop towards ``url``."""
    origin = origin_of(url)
    headers = (
        request.headers.without_keys(
            *HOP_BY_HOP, *EDGE_IDENTIFYING, "cookie", "host", "content-length"
        )
        .with_override("Host", urlsplit(url).netloc)
        .with_override("Referer", origin + "/")
        .with_override("Origin", origin)
        .with_default("User-Agent", BROWSER_USER_AGENT)
    )
    if mode is ProxyMode.RECURSIVE:
        return headers.with_override("Accept-Encoding", "gzip, deflate")
    # Raw bytes are relayed as-is, so only ask for encodings the client accepts.
    return headers.with_default("Accept-Encoding", "identity")


def terminal_headers(upstream: httpx.Response, mode: ProxyMode) -> HeaderMap:
    return (
        response_headers(upstream)
        .without_keys(*_BLOCKING_RESPONSE_HEADERS)
        .with_override(*CORS_ALLOW_ALL)
        .with_override("X-Proxy-Mode", PROXY_MODE_LABELS[mode])
    )


class GeneralProxyEngine:
    """Fetches arbitrary targets for the raw and recursive routes.

    Parameters
    ----------
    upstream:
        Shared upstream HTTP capability.
    access_filter:
        Domain policy, evaluated before every hop.
    rewriter:
        Recursive-mode rewriter (owns the response cache).
    max_redirects:
        Total number of upstream calls allowed per request.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        access_filter: AccessFilter,
        rewriter: RecursiveRewriter,
        max_redirects: int = 5,
    ) -> None:
        self._upstream = upstream
        self._access = access_filter
        self._rewriter = rewriter
        self._max_redirects = max_redirects

    async def handle(self, route: GeneralProxyRoute, request: ProxyRequest) -> Response:
        # Only GET responses are cached.
        cache_key = request.url if request.method == "GET" else None
        if route.mode is ProxyMode.RECURSIVE and cache_key is not None:
            cached = self._rewriter.lookup(cache_key)
            if cached is not None:
                return cached

        try:
            upstream = await self.follow(route.target_url, request, route.mode)
        except UpstreamNetworkError as exc:
            raise UpstreamNetworkError(f"Proxy Error: {exc.message}") from exc

        headers = terminal_headers(upstream, route.mode)
        if route.mode is ProxyMode.RAW:
            return relay(upstream, headers)
        return await self._rewriter.render(upstream, headers, route.rewrite, cache_key)

    async def follow(self, url: str, request: ProxyRequest, mode: ProxyMode) -> httpx.Response:
        """Walk redirects by hand; returns the first non-redirect response."""
        method = request.method
        body = request.body if method not in ("GET", "HEAD") else None

        for hop in range(self._max_redirects):
            self._access.check_domain(url)
            call = UpstreamCall(
                url=url,
                method=method,
                headers=hop_headers(request, url, mode),
                body=body,
                redirect_policy=RedirectPolicy.MANUAL,
            )
            upstream = await self._upstream.open(call)
            location = upstream.headers.get("location")
            if upstream.status_code not in REDIRECT_STATUSES or not location:
                return upstream

            await upstream.aclose()
            next_url = urljoin(url, location)
            logger.debug("Redirect hop %d: %s -> %s", hop + 1, url, next_url)
            url = next_url
            if upstream.status_code == 303:
                method, body = "GET", None

        logger.warning(
            "Redirect limit reached", extra={"target_url": url, "error_reason": "redirects"}
        )
        raise TooManyRedirectsError(
            f"Proxy Error: Too many redirects (>{self._max_redirects})", url=url
        )
