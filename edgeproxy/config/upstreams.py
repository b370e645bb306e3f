"""Upstream catalogues and YAML loader.

Provides the built-in Docker registry aliases and Linux mirror bases, plus a
loader that lets a deployment override them from a YAML file::

    registries:
      ghcr.io: https://ghcr.io
    mirrors:
      debian: http://deb.debian.org/debian

Keys present in the file replace the built-in section entirely.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DOCKER_HUB_HOST = "registry-1.docker.io"
DOCKER_HUB_AUTH_URL = "https://auth.docker.io/token"
DOCKER_HUB_SERVICE = "registry.docker.io"

DEFAULT_REGISTRIES: dict[str, str] = {
    "ghcr.io": "https://ghcr.io",
    "quay.io": "https://quay.io",
    "gcr.io": "https://gcr.io",
    "k8s.gcr.io": "https://k8s.gcr.io",
    "registry.k8s.io": "https://registry.k8s.io",
    "docker.cloudsmith.io": "https://docker.cloudsmith.io",
    "nvcr.io": "https://nvcr.io",
}

DEFAULT_MIRRORS: dict[str, str] = {
    "ubuntu": "http://archive.ubuntu.com/ubuntu",
    "ubuntu-security": "http://security.ubuntu.com/ubuntu",
    "debian": "http://deb.debian.org/debian",
    "debian-security": "http://security.debian.org/debian-security",
    "centos": "https://vault.centos.org",
    "centos-stream": "http://mirror.stream.centos.org",
    "rockylinux": "https://download.rockylinux.org/pub/rocky",
    "almalinux": "https://repo.almalinux.org/almalinux",
    "fedora": "https://download.fedoraproject.org/pub/fedora/linux",
    "alpine": "http://dl-cdn.alpinelinux.org/alpine",
    "kali": "http://http.kali.org/kali",
    "archlinux": "https://geo.mirror.pkgbuild.com",
    "termux": "https://packages.termux.org/apt/termux-main",
}


class UpstreamCatalog(BaseModel):
    """Registry aliases (alias -> HTTPS origin) and mirror bases (distro -> URL)."""

    registries: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_REGISTRIES))
    mirrors: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MIRRORS))


def load_upstreams(yaml_path: str | None) -> UpstreamCatalog:
    """Parse an upstream catalogue YAML file.

    Args:
        yaml_path: Path to the YAML file, or None for the built-in catalogue.

    Returns:
        An UpstreamCatalog. Missing or malformed files yield the built-in defaults.
    """
    if not yaml_path:
        return UpstreamCatalog()

    path = Path(yaml_path)
    if not path.exists():
        logger.warning("Upstreams file not found at %s; using built-in defaults", yaml_path)
        return UpstreamCatalog()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse upstreams YAML at %s: %s", yaml_path, exc)
        return UpstreamCatalog()

    if not isinstance(raw, dict):
        logger.warning("Upstreams YAML at %s is not a mapping; using built-in defaults", yaml_path)
        return UpstreamCatalog()

    try:
        catalog = UpstreamCatalog.model_validate(
            {key: value for key, value in raw.items() if key in ("registries", "mirrors")}
        )
    except ValidationError as exc:
        logger.error("Invalid upstreams YAML at %s: %s; using built-in defaults", yaml_path, exc)
        return UpstreamCatalog()

    logger.info(
        "Loaded %d registries and %d mirrors from %s",
        len(catalog.registries),
        len(catalog.mirrors),
        yaml_path,
    )
    return catalog
