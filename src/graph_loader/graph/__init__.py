"""Graph package — Bolt client for the target graph database."""

from __future__ import annotations

from graph_loader.graph.client import GraphClient, GraphUnavailableError, QueryTimeoutError

__all__ = [
    "GraphClient",
    "GraphUnavailableError",
    "QueryTimeoutError",
]
