"""Graph load and save engines."""

from entitygraph.graph.loader import GraphLoader
from entitygraph.graph.saver import GraphSaver

__all__ = ["GraphLoader", "GraphSaver"]
