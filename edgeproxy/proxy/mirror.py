"""Linux package mirror relay.

``/<secret>/<distro>/<path>`` maps onto a fixed upstream base per distro.
Distro keys are matched longest first so ``debian-security/...`` never lands
on ``debian``.
"""

from __future__ import annotations

from collections.abc import Mapping

from starlette.responses import Response

from edgeproxy.middleware.error_handler import UpstreamNetworkError
from edgeproxy.proxy.headers import CORS_ALLOW_ALL, EDGE_IDENTIFYING, HOP_BY_HOP
from edgeproxy.proxy.types import (
    LinuxMirrorRoute,
    ProxyRequest,
    RedirectPolicy,
    UpstreamCall,
)
from edgeproxy.proxy.upstream import UpstreamClient, relay, response_headers


class MirrorRelay:
    """Path-substitution proxy for package mirrors, Range-aware."""

    def __init__(self, upstream: UpstreamClient, mirrors: Mapping[str, str]) -> None:
        self._upstream = upstream
        self._mirrors = dict(mirrors)
        self._keys = sorted(self._mirrors, key=len, reverse=True)

    @property
    def distros(self) -> list[str]:
        return list(self._mirrors)

    def match(self, sub_path: str, query: str = "") -> LinuxMirrorRoute | None:
        """Longest distro key that equals ``sub_path`` or prefixes it with a slash."""
        for key in self._keys:
            if sub_path == key or sub_path.startswith(key + "/"):
                return LinuxMirrorRoute(
                    distro=key,
                    upstream_base=self._mirrors[key],
                    real_path=sub_path[len(key):].lstrip("/"),
                    query=query,
                )
        return None

    async def handle(self, route: LinuxMirrorRoute, request: ProxyRequest) -> Response:
        headers = request.headers.without_keys(
            *HOP_BY_HOP, *EDGE_IDENTIFYING, "host", "content-length"
        ).copy_from(request.headers, "range")
        call = UpstreamCall(
            url=route.target_url,
            method=request.method,
            headers=headers,
            body=request.body if request.method not in ("GET", "HEAD") else None,
            redirect_policy=RedirectPolicy.FOLLOW,
        )
        try:
            upstream = await self._upstream.open(call)
        except UpstreamNetworkError as exc:
            raise UpstreamNetworkError(f"Linux Mirror Proxy Error: {exc.message}") from exc

        out = response_headers(upstream).with_override(*CORS_ALLOW_ALL)
        return relay(upstream, out)
