"""Unit tests for the Linux mirror relay."""

from __future__ import annotations

import httpx
import pytest

from edgeproxy.config.upstreams import DEFAULT_MIRRORS
from edgeproxy.middleware.error_handler import UpstreamNetworkError
from edgeproxy.proxy.mirror import MirrorRelay
from edgeproxy.proxy.upstream import UpstreamClient


def _relay(upstream=None) -> MirrorRelay:  # noqa: ANN001
    transport = upstream.transport if upstream is not None else None
    return MirrorRelay(UpstreamClient(transport=transport), DEFAULT_MIRRORS)


class TestMatch:
    def test_longest_prefix_wins(self) -> None:
        route = _relay().match("debian-security/dists/bookworm-security/Release")
        assert route is not None
        assert route.distro == "debian-security"
        assert route.target_url == (
            "http://security.debian.org/debian-security/dists/bookworm-security/Release"
        )

    def test_exact_key(self) -> None:
        route = _relay().match("ubuntu")
        assert route is not None and route.real_path == ""

    def test_prefix_without_slash_does_not_match(self) -> None:
        assert _relay().match("ubuntufoo/x") is None
        assert _relay().match("debian.org/x") is None

    def test_query_is_kept(self) -> None:
        route = _relay().match("alpine/v3.20/main/x86_64/APKINDEX.tar.gz", "v=1")
        assert route is not None
        assert route.target_url.endswith("APKINDEX.tar.gz?v=1")

    def test_trailing_slash_base(self) -> None:
        relay = MirrorRelay(UpstreamClient(), {"local": "https://mirror.test/repo/"})
        route = relay.match("local/pool/a.deb")
        assert route is not None
        assert route.target_url == "https://mirror.test/repo/pool/a.deb"


class TestHandle:
    async def test_forwards_range_and_relays_partial(self, make_request, mock_upstream) -> None:
        upstream = mock_upstream(
            lambda request: httpx.Response(
                206,
                headers={"Content-Range": "bytes 0-3/100", "Accept-Ranges": "bytes"},
                content=b"abcd",
            )
        )
        relay = _relay(upstream)
        route = relay.match("debian/pool/main/a.deb")

        response = await relay.handle(
            route,
            make_request(
                "/123456/debian/pool/main/a.deb",
                headers={"Range": "bytes=0-3", "X-Real-IP": "1.2.3.4", "Host": "edge"},
            ),
        )

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 0-3/100"
        assert response.headers["access-control-allow-origin"] == "*"
        sent = upstream.calls[0]
        assert sent.headers["range"] == "bytes=0-3"
        assert sent.headers["host"] == "deb.debian.org"
        assert "x-real-ip" not in sent.headers

    async def test_network_failure(self, make_request, mock_upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        relay = _relay(mock_upstream(handler))
        with pytest.raises(UpstreamNetworkError, match="Linux Mirror Proxy Error"):
            await relay.handle(relay.match("kali/dists"), make_request("/123456/kali/dists"))
