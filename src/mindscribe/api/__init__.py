"""HTTP surface for the content graph."""

from .app import create_app
from .graph_api import build_graph_router

__all__ = ["build_graph_router", "create_app"]
