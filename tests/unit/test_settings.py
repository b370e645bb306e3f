"""Unit tests for EdgeSettings and the upstream catalogue loader."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from edgeproxy.config.settings import EdgeSettings, parse_list
from edgeproxy.config.upstreams import DEFAULT_MIRRORS, DEFAULT_REGISTRIES, load_upstreams


class TestDefaults:
    def test_defaults(self) -> None:
        settings = EdgeSettings()
        assert settings.port == 21011
        assert settings.password == "123456"
        assert settings.max_redirects == 5
        assert settings.daily_limit == 200
        assert settings.quota_utc_offset_hours == 8
        assert settings.admin_ips == ["127.0.0.1"]
        assert settings.trust_forwarded_headers is False
        assert settings.max_body_bytes == 50 * 1024 * 1024
        assert settings.blacklist == []
        assert settings.charge_mode == "docker"
        assert settings.counter_backend == "memory"


class TestEnvironment:
    def test_reads_prefixed_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EDGE_PASSWORD", "hunter2")
        monkeypatch.setenv("EDGE_MAX_REDIRECTS", "3")
        monkeypatch.setenv("EDGE_ENABLE_CACHE", "false")
        settings = EdgeSettings()
        assert settings.password == "hunter2"
        assert settings.max_redirects == 3
        assert settings.enable_cache is False

    def test_delimited_lists(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EDGE_BLACKLIST", "evil.com, ,bad.org\nworse.net")
        monkeypatch.setenv("EDGE_ALLOW_COUNTRIES", "cn,hk")
        settings = EdgeSettings()
        assert settings.blacklist == ["evil.com", "bad.org", "worse.net"]
        assert settings.allow_countries == ["CN", "HK"]

    def test_public_origin_trailing_slash(self) -> None:
        assert EdgeSettings(public_origin="https://edge.example.com/").public_origin == (
            "https://edge.example.com"
        )

    @pytest.mark.parametrize(
        "overrides",
        [{"max_redirects": 0}, {"password": ""}, {"charge_mode": "weekly"}],
    )
    def test_rejects_invalid_values(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            EdgeSettings(**overrides)


def test_parse_list() -> None:
    assert parse_list(None) == []
    assert parse_list(" a ,b\n\nc,") == ["a", "b", "c"]
    assert parse_list(["x ", ""]) == ["x"]


class TestLoadUpstreams:
    def test_defaults_without_path(self) -> None:
        catalog = load_upstreams(None)
        assert catalog.registries == DEFAULT_REGISTRIES
        assert catalog.mirrors == DEFAULT_MIRRORS

    def test_missing_file_falls_back(self, tmp_path: Path) -> None:
        assert load_upstreams(str(tmp_path / "absent.yaml")).mirrors == DEFAULT_MIRRORS

    def test_overrides_present_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "upstreams.yaml"
        path.write_text("mirrors:\n  local: https://mirror.test/repo\n", encoding="utf-8")
        catalog = load_upstreams(str(path))
        assert catalog.mirrors == {"local": "https://mirror.test/repo"}
        assert catalog.registries == DEFAULT_REGISTRIES

    @pytest.mark.parametrize("content", ["mirrors: [unclosed", "- just\n- a list\n", "mirrors: 3\n"])
    def test_malformed_file_falls_back(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "upstreams.yaml"
        path.write_text(content, encoding="utf-8")
        assert load_upstreams(str(path)).mirrors == DEFAULT_MIRRORS
