"""Unit tests for the Docker V2 state machine and adapter."""

from __future__ import annotations

import httpx
import pytest

from edgeproxy.config.upstreams import DEFAULT_REGISTRIES
from edgeproxy.middleware.error_handler import UpstreamNetworkError
from edgeproxy.proxy.docker import (
    DOCKER_USER_AGENT,
    DockerAdapter,
    DockerState,
    blob_call,
    blob_headers,
    forward_headers,
    next_state,
    rewrite_realm,
)
from edgeproxy.proxy.headers import HeaderMap
from edgeproxy.proxy.registry import RegistryRouter
from edgeproxy.proxy.upstream import UpstreamClient

CHALLENGE = (
    'Bearer realm="https://auth.docker.io/token",service="registry.docker.io",'
    'scope="repository:library/nginx:pull"'
)


class TestTransitions:
    def test_401_is_auth_challenge_from_any_state(self) -> None:
        assert next_state(DockerState.ROOT_PROBE, 401, HeaderMap()) is DockerState.AUTH_CHALLENGE
        assert next_state(DockerState.DISPATCH, 401, HeaderMap()) is DockerState.AUTH_CHALLENGE

    def test_redirect_with_location_is_blob_redirect(self) -> None:
        headers = HeaderMap([("Location", "https://cdn.example/blob")])
        assert next_state(DockerState.DISPATCH, 307, headers) is DockerState.BLOB_REDIRECT

    def test_redirect_without_location_is_final(self) -> None:
        assert next_state(DockerState.DISPATCH, 302, HeaderMap()) is DockerState.FINAL

    def test_root_probe_never_follows_redirects(self) -> None:
        headers = HeaderMap([("Location", "https://elsewhere/")])
        assert next_state(DockerState.ROOT_PROBE, 301, headers) is DockerState.FINAL


class TestPureHelpers:
    def test_rewrite_realm_only_touches_realm(self) -> None:
        rewritten = rewrite_realm(CHALLENGE, "https://edge.example.com")
        assert rewritten == (
            'Bearer realm="https://edge.example.com/token",service="registry.docker.io",'
            'scope="repository:library/nginx:pull"'
        )

    def test_forward_headers(self, make_request) -> None:
        request = make_request(
            "/v2/nginx/manifests/latest",
            headers={
                "Authorization": "Bearer t",
                "CF-Connecting-IP": "1.2.3.4",
                "X-Forwarded-For": "1.2.3.4",
                "User-Agent": "docker/27",
                "Host": "edge.example.com",
            },
        )
        headers = forward_headers(request, "registry-1.docker.io")
        assert headers.get("host") == "registry-1.docker.io"
        assert headers.get("user-agent") == DOCKER_USER_AGENT
        assert headers.get("authorization") == "Bearer t"
        assert "cf-connecting-ip" not in headers
        assert "x-forwarded-for" not in headers

    def test_blob_call_carries_only_ua_and_range(self, make_request) -> None:
        request = make_request(headers={"Range": "bytes=0-99", "Authorization": "Bearer t"})
        call = blob_call("https://cdn.example/blob?sig=1", request)
        assert call.method == "GET"
        assert call.headers.get("range") == "bytes=0-99"
        assert "authorization" not in call.headers

    def test_blob_headers_drop_encoding(self) -> None:
        headers = blob_headers(
            HeaderMap([("Content-Encoding", "gzip"), ("Content-Length", "10"), ("ETag", "x")])
        )
        assert headers.names() == {"etag", "access-control-allow-origin"}


class TestAdapter:
    async def test_auth_challenge_is_rewritten(self, make_request, mock_upstream) -> None:
        upstream = mock_upstream(
            lambda request: httpx.Response(
                401, headers={"WWW-Authenticate": CHALLENGE}, content=b'{"errors":[]}'
            )
        )
        adapter = DockerAdapter(UpstreamClient(transport=upstream.transport))
        route = RegistryRouter(DEFAULT_REGISTRIES).resolve("nginx/manifests/latest")

        response = await adapter.handle(route, make_request("/v2/nginx/manifests/latest"))

        assert response.status_code == 401
        challenge = response.headers["www-authenticate"]
        assert 'realm="https://edge.example.com/token"' in challenge
        assert upstream.urls() == [
            "https://registry-1.docker.io/v2/library/nginx/manifests/latest"
        ]

    async def test_blob_redirect_is_followed(self, make_request, mock_upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "registry-1.docker.io":
                return httpx.Response(307, headers={"Location": "https://cdn.example/blob?sig=1"})
            return httpx.Response(200, content=b"layer-bytes")

        upstream = mock_upstream(handler)
        adapter = DockerAdapter(UpstreamClient(transport=upstream.transport))
        route = RegistryRouter(DEFAULT_REGISTRIES).resolve("nginx/blobs/sha256:abc")

        response = await adapter.handle(
            route, make_request("/v2/nginx/blobs/sha256:abc", headers={"Range": "bytes=0-3"})
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert upstream.urls()[1] == "https://cdn.example/blob?sig=1"
        assert upstream.calls[1].headers["range"] == "bytes=0-3"
        assert "authorization" not in upstream.calls[1].headers

    async def test_final_adds_registry_headers(self, make_request, mock_upstream) -> None:
        upstream = mock_upstream(lambda request: httpx.Response(200, content=b"{}"))
        adapter = DockerAdapter(UpstreamClient(transport=upstream.transport))
        route = RegistryRouter(DEFAULT_REGISTRIES).resolve("ghcr.io/o/app/manifests/1")

        response = await adapter.handle(route, make_request("/v2/ghcr.io/o/app/manifests/1"))

        assert response.headers["docker-distribution-api-version"] == "registry/2.0"
        assert upstream.calls[0].headers["host"] == "ghcr.io"

    async def test_network_failure_is_502(self, make_request, mock_upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        upstream = mock_upstream(handler)
        adapter = DockerAdapter(UpstreamClient(transport=upstream.transport))
        route = RegistryRouter(DEFAULT_REGISTRIES).resolve("")

        with pytest.raises(UpstreamNetworkError, match="Docker Proxy Error: connection refused"):
            await adapter.handle(route, make_request("/v2/"))
