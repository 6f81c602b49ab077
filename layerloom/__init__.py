# layerloom/__init__.py
"""layerloom — neural network topologies as port graphs.

Build a network as a graph of layer nodes wired through directional
ports, compile it into sequential/parallel composite layers and lower it
onto a numeric engine.

Использование:
    from layerloom import ConnectionGraph, TorchEngine, build_network

    graph = ConnectionGraph("xor")
    hidden = graph.add_node("LayerDense", numeric_params=[8])
    act = graph.add_node("LayerActivation", string_params=["Tanh"])
    out = graph.add_node("LayerDense", numeric_params=[1])
    graph.connect(hidden.output_port, act.input_port)
    graph.connect(act.output_port, out.input_port)

    engine = TorchEngine()
    build_network(graph, engine)
    engine.fit(x, y, {"epochs": 200})

    # Из CLI
    python -m layerloom.runner graph.yaml --validate
"""
__version__ = "0.1.0"

from .core.layer import LayerRegistry, LayerSpec, AuxPortSpec, register_layer
from .core.graph import (
    CompilationError,
    CompositeLayer,
    ConnectionGraph,
    GraphCompiler,
    GraphLoadError,
    LayerNode,
    Port,
    PortDirection,
    SpecialNode,
    ValidationResult,
    compile_graph,
    graph_from_config,
    graph_to_config,
    load_graph,
    save_graph,
)
from .engine import EngineError, LayerEngine, TorchEngine, build_network, lower
from .training import NetworkTrainer, TrainingConfig
from .validation import validate_all, validate_layers, validate_training

__all__ = [
    "AuxPortSpec",
    "CompilationError",
    "CompositeLayer",
    "ConnectionGraph",
    "EngineError",
    "GraphCompiler",
    "GraphLoadError",
    "LayerEngine",
    "LayerNode",
    "LayerRegistry",
    "LayerSpec",
    "NetworkTrainer",
    "Port",
    "PortDirection",
    "SpecialNode",
    "TorchEngine",
    "TrainingConfig",
    "ValidationResult",
    "build_network",
    "compile_graph",
    "graph_from_config",
    "graph_to_config",
    "load_graph",
    "lower",
    "register_layer",
    "save_graph",
    "validate_all",
    "validate_layers",
    "validate_training",
]
