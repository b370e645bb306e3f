"""Docker registry routing and Docker Hub namespace completion.

A path under ``/v2/`` either names an alternate registry in its first segment
(``ghcr.io/owner/repo/manifests/latest``) or targets Docker Hub, where
official images live under the implicit ``library/`` namespace
(``nginx/manifests/latest`` -> ``library/nginx/manifests/latest``).
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlsplit

from edgeproxy.config.upstreams import DOCKER_HUB_AUTH_URL, DOCKER_HUB_HOST
from edgeproxy.proxy.types import DockerV2Route

_API_KEYWORDS = frozenset({"manifests", "blobs", "tags"})


class RegistryRouter:
    """Maps Docker API paths and token scopes to upstream registries.

    Args:
        aliases: Registry alias (first path segment) -> HTTPS origin.
        default_host: Registry used when no alias matches.
    """

    def __init__(
        self,
        aliases: Mapping[str, str],
        default_host: str = DOCKER_HUB_HOST,
    ) -> None:
        self._aliases = {alias: base.rstrip("/") for alias, base in aliases.items()}
        self._default_host = default_host

    @property
    def aliases(self) -> list[str]:
        return list(self._aliases)

    @property
    def default_base(self) -> str:
        return f"https://{self._default_host}"

    def resolve(self, path: str, query: str = "") -> DockerV2Route:
        """Route a Docker API path (everything after ``/v2/``)."""
        path = path.lstrip("/")
        if path == "":
            return DockerV2Route(
                registry_host=self._default_host,
                upstream_base=self.default_base,
                rewritten_path="",
                query=query,
            )

        parts = path.split("/")
        alias_base = self._aliases.get(parts[0])
        if alias_base is not None:
            return DockerV2Route(
                registry_host=urlsplit(alias_base).hostname or parts[0],
                upstream_base=alias_base,
                rewritten_path="/".join(parts[1:]),
                query=query,
            )

        return DockerV2Route(
            registry_host=self._default_host,
            upstream_base=self.default_base,
            rewritten_path=complete_library_path(path),
            query=query,
        )

    def auth_endpoint(self, scope: str | None) -> str:
        """Token endpoint for a scope: the first alias it mentions, else Docker Hub."""
        if scope:
            for alias in self._aliases:
                if alias in scope:
                    return f"https://{alias}/token"
        return DOCKER_HUB_AUTH_URL

    def complete_scope(self, scope: str) -> str:
        """Insert ``library/`` into ``repository:<name>:<actions>`` for bare names."""
        if not scope.startswith("repository:"):
            return scope
        parts = scope.split(":")
        if len(parts) < 3:
            return scope
        name = parts[1]
        if "/" in name or any(name.startswith(alias) for alias in self._aliases):
            return scope
        parts[1] = "library/" + name
        return ":".join(parts)


def complete_library_path(path: str) -> str:
    """Docker Hub namespace completion for ``<image>/<manifests|blobs|tags>/...``."""
    parts = path.split("/")
    if len(parts) < 2:
        return path
    first = parts[0]
    if (
        "." in first
        or first == "library"
        or first in _API_KEYWORDS
        or first.startswith("sha256:")
    ):
        return path
    if parts[1] in _API_KEYWORDS:
        return "library/" + path
    return path
