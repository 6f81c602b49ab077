"""layerloom connection graph — nodes wired through directional ports.

ConnectionGraph owns the nodes and decides which edges are legal;
GraphCompiler lowers a valid graph into a tree of composite layers.
"""

from .port import Port, PortDirection, PortValidator, link, unlink
from .node import LayerNode, SpecialNode, create_node
from .graph import ConnectionGraph, ValidationResult
from .compiler import CompilationError, CompositeLayer, GraphCompiler, compile_graph
from .serialization import (
    GraphLoadError,
    graph_from_config,
    graph_to_config,
    load_graph,
    save_graph,
)

__all__ = [
    "CompilationError",
    "CompositeLayer",
    "ConnectionGraph",
    "GraphCompiler",
    "GraphLoadError",
    "LayerNode",
    "Port",
    "PortDirection",
    "PortValidator",
    "SpecialNode",
    "ValidationResult",
    "compile_graph",
    "create_node",
    "graph_from_config",
    "graph_to_config",
    "link",
    "load_graph",
    "save_graph",
    "unlink",
]
