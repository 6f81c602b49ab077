"""Shared test configuration — fresh layer registry and common graph shapes."""
import pytest

from layerloom.core.graph.graph import ConnectionGraph
from layerloom.core.layer.registry import LayerRegistry


@pytest.fixture(autouse=True)
def reset_registry():
    """Each test starts from the built-in layer catalogue."""
    LayerRegistry.reset()
    yield
    LayerRegistry.reset()


@pytest.fixture
def graph() -> ConnectionGraph:
    return ConnectionGraph("test")


def chain(graph: ConnectionGraph, *nodes):
    """Connect ``nodes`` output-to-input in order; every connect must succeed."""
    for a, b in zip(nodes, nodes[1:]):
        assert graph.connect(a.output_port, b.input_port), f"{a.name} -> {b.name} rejected"
    return nodes


def wire_body(graph: ConnectionGraph, special, *body, feedback: bool = False):
    """Wire ``body`` as the subgraph of ``special``: IN mirror -> body... -> OUT pass."""
    assert graph.connect(special.auxiliary_port("IN mirror"), body[0].input_port)
    if feedback:
        assert graph.connect(special.auxiliary_port("OUT t-1"), body[0].input_port)
    chain(graph, *body)
    assert graph.connect(body[-1].output_port, special.auxiliary_port("OUT pass"))
    return body


@pytest.fixture
def helpers():
    """Graph building helpers: ``helpers.chain`` and ``helpers.wire_body``."""
    class _Helpers:
        pass
    h = _Helpers()
    h.chain = chain
    h.wire_body = wire_body
    return h


@pytest.fixture
def abc_chain(graph):
    """A -> B -> C of dense layers."""
    a = graph.add_node("LayerDense", numeric_params=[4], name="A")
    b = graph.add_node("LayerDense", numeric_params=[4], name="B")
    c = graph.add_node("LayerDense", numeric_params=[1], name="C")
    chain(graph, a, b, c)
    return a, b, c


@pytest.fixture
def engine():
    torch = pytest.importorskip("torch")
    from layerloom.engine.torch_engine import TorchEngine
    torch.manual_seed(0)
    return TorchEngine(device="cpu", seed=0)
