"""Request-scoped data models for routing and upstream calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from edgeproxy.proxy.headers import HeaderMap


class ProxyMode(str, Enum):
    """General proxy modes."""

    RAW = "raw"
    RECURSIVE = "recursive"


class RedirectPolicy(str, Enum):
    """How the HTTP client treats 3xx responses for one upstream call."""

    MANUAL = "manual"
    FOLLOW = "follow"


@dataclass(frozen=True)
class ProxyRequest:
    """Inbound request as seen by the edge. The only input to routing."""

    method: str
    path: str  # raw, percent-encoded
    query: str
    headers: HeaderMap
    body: bytes | None
    client_ip: str
    country: str | None
    url: str  # exact inbound URL; recursive cache key
    edge_origin: str

    @property
    def path_and_query(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path


@dataclass(frozen=True)
class UpstreamCall:
    """One outbound request."""

    url: str
    method: str = "GET"
    headers: HeaderMap = field(default_factory=HeaderMap)
    body: bytes | None = None
    redirect_policy: RedirectPolicy = RedirectPolicy.MANUAL


@dataclass(frozen=True)
class RewriteContext:
    """Link-rewriting parameters for one recursive-mode request."""

    edge_origin: str
    password_segment: str

    @property
    def recursive_prefix(self) -> str:
        if self.password_segment:
            return f"{self.edge_origin}/{self.password_segment}/r/"
        return f"{self.edge_origin}/r/"


# ---------------------------------------------------------------------------
# Route decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StaticAssetRoute:
    name: str  # "robots.txt" | "favicon.ico"


@dataclass(frozen=True)
class PreflightRoute:
    pass


@dataclass(frozen=True)
class TokenRoute:
    pass


@dataclass(frozen=True)
class DockerV2Route:
    registry_host: str
    upstream_base: str
    rewritten_path: str  # without the leading "/v2/"; "" is the root probe
    query: str = ""

    @property
    def is_root_probe(self) -> bool:
        return self.rewritten_path == ""

    @property
    def target_url(self) -> str:
        url = f"{self.upstream_base}/v2/{self.rewritten_path}"
        return f"{url}?{self.query}" if self.query else url


@dataclass(frozen=True)
class LinuxMirrorRoute:
    distro: str
    upstream_base: str
    real_path: str
    query: str = ""

    @property
    def target_url(self) -> str:
        sep = "" if self.upstream_base.endswith("/") else "/"
        url = f"{self.upstream_base}{sep}{self.real_path}"
        return f"{url}?{self.query}" if self.query else url


@dataclass(frozen=True)
class GeneralProxyRoute:
    mode: ProxyMode
    target_url: str
    rewrite: RewriteContext


@dataclass(frozen=True)
class AdminCommandRoute:
    name: str  # "reset" | "reset-all" | "stats"


@dataclass(frozen=True)
class DashboardRoute:
    pass


@dataclass(frozen=True)
class DeniedRoute:
    reason: str


@dataclass(frozen=True)
class NotFoundRoute:
    pass


RouteDecision = (
    StaticAssetRoute
    | PreflightRoute
    | TokenRoute
    | DockerV2Route
    | LinuxMirrorRoute
    | GeneralProxyRoute
    | AdminCommandRoute
    | DashboardRoute
    | DeniedRoute
    | NotFoundRoute
)
