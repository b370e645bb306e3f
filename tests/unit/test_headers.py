"""Unit tests for the immutable HeaderMap."""

from __future__ import annotations

from edgeproxy.proxy.headers import CORS_ALLOW_ALL, HeaderMap


class TestReads:
    def test_get_is_case_insensitive(self) -> None:
        headers = HeaderMap([("Content-Type", "text/plain")])
        assert headers.get("content-type") == "text/plain"
        assert "CONTENT-TYPE" in headers

    def test_get_all_keeps_order(self) -> None:
        headers = HeaderMap([("Set-Cookie", "a=1"), ("X", "y"), ("set-cookie", "b=2")])
        assert headers.get_all("set-cookie") == ["a=1", "b=2"]

    def test_missing_returns_default(self) -> None:
        assert HeaderMap().get("x-missing", "fallback") == "fallback"


class TestUpdates:
    def test_with_override_replaces_every_value(self) -> None:
        headers = HeaderMap([("Via", "a"), ("via", "b")])
        updated = headers.with_override("Via", "edge")
        assert updated.get_all("via") == ["edge"]
        # Original untouched
        assert headers.get_all("via") == ["a", "b"]

    def test_without_keys_drops_case_insensitively(self) -> None:
        headers = HeaderMap([("Cookie", "x"), ("Accept", "*/*")])
        assert headers.without_keys("COOKIE").items() == [("Accept", "*/*")]

    def test_with_default_keeps_existing(self) -> None:
        headers = HeaderMap([("User-Agent", "curl/8")])
        assert headers.with_default("user-agent", "browser").get("user-agent") == "curl/8"
        assert HeaderMap().with_default("User-Agent", "browser").get("user-agent") == "browser"

    def test_copy_from_only_copies_present_names(self) -> None:
        source = HeaderMap([("Range", "bytes=0-9")])
        copied = HeaderMap().copy_from(source, "range", "if-none-match")
        assert copied.items() == [("range", "bytes=0-9")]

    def test_with_override_accepts_pair(self) -> None:
        assert HeaderMap().with_override(*CORS_ALLOW_ALL).get("access-control-allow-origin") == "*"


class TestWireForm:
    def test_encode_lowercases_names(self) -> None:
        encoded = HeaderMap([("X-Proxy-Mode", "Raw-Passthrough")]).encode()
        assert encoded == [(b"x-proxy-mode", b"Raw-Passthrough")]

    def test_equality_ignores_name_case(self) -> None:
        assert HeaderMap([("A", "1")]) == HeaderMap([("a", "1")])
        assert hash(HeaderMap([("A", "1")])) == hash(HeaderMap([("a", "1")]))
