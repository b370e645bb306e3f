"""Configuration module: settings and upstream catalogues."""

from edgeproxy.config.settings import EdgeSettings, parse_list
from edgeproxy.config.upstreams import UpstreamCatalog, load_upstreams

__all__ = [
    "EdgeSettings",
    "UpstreamCatalog",
    "load_upstreams",
    "parse_list",
]
