"""HTTP routers."""

from edgeproxy.routers.edge import create_edge_router

__all__ = ["create_edge_router"]
