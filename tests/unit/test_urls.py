"""Unit tests for target URL normalization."""

from __future__ import annotations

import pytest

from edgeproxy.middleware.error_handler import InvalidTargetURLError
from edgeproxy.proxy.urls import normalize_target_url, origin_of


class TestNormalizeTargetUrl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("https:/github.com/a/b", "https://github.com/a/b"),
            ("https:///github.com/a", "https://github.com/a"),
            ("http://example.com/x?y=1", "http://example.com/x?y=1"),
            ("github.com/a/b", "https://github.com/a/b"),
            ("HTTPS:/Example.com/", "HTTPS://Example.com/"),
        ],
    )
    def test_repairs(self, raw: str, expected: str) -> None:
        assert normalize_target_url(raw) == expected

    def test_keeps_double_slash_inside_path(self) -> None:
        assert (
            normalize_target_url("https:/host.com/a//b")
            == "https://host.com/a//b"
        )

    @pytest.mark.parametrize("raw", ["", "https://", "http:///", "https://host:notaport/"])
    def test_rejects_unusable_targets(self, raw: str) -> None:
        with pytest.raises(InvalidTargetURLError) as exc_info:
            normalize_target_url(raw)
        assert exc_info.value.status_code == 400
        assert "url" in exc_info.value.details


def test_origin_of() -> None:
    assert origin_of("https://example.com:8443/a/b?c") == "https://example.com:8443"
