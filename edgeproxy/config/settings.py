"""Pydantic Settings for the edge proxy.

All environment variables use the EDGE_ prefix.
Example: EDGE_PASSWORD=secret123, EDGE_MAX_REDIRECTS=3

List settings take comma or newline delimited strings; entries are trimmed
and empty entries are dropped (``EDGE_ADMIN_IPS="127.0.0.1, 10.0.0.2"``).
"""

from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

_LIST_SPLIT = re.compile(r"[\n,]")

DelimitedList = Annotated[list[str], NoDecode]


def parse_list(value: object) -> list[str]:
    """Split a comma/newline delimited string into trimmed, non-empty entries."""
    if value is None:
        return []
    if isinstance(value, str):
        items = _LIST_SPLIT.split(value)
    else:
        items = [str(item) for item in value]  # type: ignore[union-attr]
    return [item.strip() for item in items if item.strip()]


class EdgeSettings(BaseSettings):
    """Edge proxy configuration validated from environment variables."""

    # Service
    port: int = 21011
    log_level: str = "INFO"
    password: str = Field(default="123456", min_length=1)  # shared secret path segment
    public_origin: str | None = None  # e.g. "https://edge.example.com"

    # Upstream behaviour
    max_redirects: int = Field(default=5, ge=1, le=20)
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)
    upstreams_path: str | None = None  # optional YAML override of registries/mirrors
    max_body_bytes: int = Field(default=50 * 1024 * 1024, ge=0)  # inbound body cap, 413 above

    # Recursive-mode cache
    enable_cache: bool = True
    cache_ttl_seconds: int = Field(default=3600, ge=0)
    cache_max_entries: int = Field(default=1024, ge=1)

    # Domain policy (substring match)
    blacklist: DelimitedList = []
    whitelist: DelimitedList = []

    # Client policy
    allow_ips: DelimitedList = []
    allow_countries: DelimitedList = []
    country_header: str = "cf-ipcountry"
    trust_forwarded_headers: bool = False  # enable only behind a CDN that overwrites CF-Connecting-IP

    # Secret-less access
    trusted_referers: DelimitedList = []
    admin_ips: DelimitedList = ["127.0.0.1"]
    admin_ip_bypass: bool = False

    # Quota
    daily_limit: int = Field(default=200, ge=0)
    quota_utc_offset_hours: int = Field(default=8, ge=-12, le=14)
    quota_exempt_ips: DelimitedList = ["127.0.0.1"]
    charge_mode: Literal["docker", "all"] = "docker"
    dedup_ttl_seconds: float = Field(default=5.0, ge=0)
    dedup_granularity: Literal["path", "url"] = "path"

    # Counter storage
    counter_backend: Literal["memory", "kv", "sqlite"] = "memory"
    sqlite_path: str = "edgeproxy-counters.db"

    model_config = {"env_prefix": "EDGE_"}

    @field_validator(
        "blacklist",
        "whitelist",
        "allow_ips",
        "allow_countries",
        "trusted_referers",
        "admin_ips",
        "quota_exempt_ips",
        mode="before",
    )
    @classmethod
    def _split_delimited(cls, value: object) -> list[str]:
        return parse_list(value)

    @field_validator("allow_countries", mode="after")
    @classmethod
    def _upper_countries(cls, value: list[str]) -> list[str]:
        return [code.upper() for code in value]

    @field_validator("public_origin", mode="after")
    @classmethod
    def _strip_origin(cls, value: str | None) -> str | None:
        return value.rstrip("/") if value else None
