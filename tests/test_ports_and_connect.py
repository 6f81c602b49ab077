"""Tests for ports, nodes and ConnectionGraph.connect edge legality."""
import random

import pytest

from layerloom.core.graph.graph import ConnectionGraph
from layerloom.core.graph.node import LayerNode, SpecialNode
from layerloom.core.graph.port import PortDirection, link, unlink


def _all_ports(graph):
    for node in graph.nodes:
        yield from node.ports


def _assert_symmetric(graph):
    for port in _all_ports(graph):
        for peer in port.connected:
            assert port in peer.connected


# ==================== NODES ====================

def test_plain_node_ports(graph) -> None:
    node = graph.add_node("LayerDense", numeric_params=[8])
    assert isinstance(node, LayerNode) and not node.is_special
    assert node.name == f"LayerDense_{node.node_id}"
    assert node.input_port.direction is PortDirection.INPUT
    assert node.output_port.direction is PortDirection.OUTPUT
    assert node.ports == (node.input_port, node.output_port)
    assert node.numeric_params == [8.0]


def test_special_node_auxiliary_ports(graph) -> None:
    rnn = graph.add_node("LayerSimpleRNN", numeric_params=[4])
    assert isinstance(rnn, SpecialNode)
    names = [(p.name, p.is_input) for p in rnn.auxiliary_ports]
    assert names == [("OUT t-1", False), ("IN mirror", False), ("OUT pass", True)]
    assert all(p.auxiliary for p in rnn.auxiliary_ports)
    assert [p.name for p in rnn.auxiliary_outputs] == ["OUT t-1", "IN mirror"]

    router = graph.add_node("LayerRouter")
    assert [p.name for p in router.auxiliary_ports] == ["IN mirror", "experts weight", "experts"]


def test_similarly_named_type_is_plain(graph) -> None:
    node = graph.add_node("MyParallelRNNThing")
    assert not node.is_special
    assert not node.is_merge
    assert node.reduction is None


def test_node_ids_are_sequential_and_stable(graph) -> None:
    a = graph.add_node("LayerDense")
    b = graph.add_node("LayerDense")
    graph.remove_node(a)
    c = graph.add_node("LayerDense")
    assert (b.node_id, c.node_id) == (1, 2)
    assert graph.get_node(2) is c
    with pytest.raises(KeyError):
        graph.get_node(0)


def test_explicit_duplicate_id_raises(graph) -> None:
    graph.add_node("LayerDense", node_id=5)
    with pytest.raises(ValueError):
        graph.add_node("LayerDense", node_id=5)


def test_empty_layer_type_raises(graph) -> None:
    with pytest.raises(ValueError):
        graph.add_node("  ")


# ==================== CONNECT ====================

def test_connect_registers_both_sides(graph) -> None:
    a = graph.add_node("LayerDense")
    b = graph.add_node("LayerDense")
    assert graph.connect(a.output_port, b.input_port)
    assert a.output_port.connected == (b.input_port,)
    assert b.input_port.connected == (a.output_port,)


def test_connect_accepts_reversed_order(graph) -> None:
    a = graph.add_node("LayerDense")
    b = graph.add_node("LayerDense")
    assert graph.connect(b.input_port, a.output_port)
    assert graph.successors(a) == [b]
    assert graph.edges() == [(a.output_port, b.input_port)]


def test_unconnected_port_is_truthy(graph) -> None:
    a = graph.add_node("LayerDense")
    assert a.input_port
    assert a.input_port.degree == 0
    with pytest.raises(TypeError):
        len(a.input_port)


def test_connect_port_to_itself_rejected(graph) -> None:
    a = graph.add_node("LayerDense")
    assert not graph.connect(a.output_port, a.output_port)
    assert a.output_port.degree == 0


def test_connect_same_node_rejected(graph) -> None:
    a = graph.add_node("LayerDense")
    assert not graph.connect(a.output_port, a.input_port)
    assert not a.is_connected


def test_connect_same_direction_rejected(graph) -> None:
    a = graph.add_node("LayerDense")
    b = graph.add_node("LayerDense")
    assert not graph.connect(a.output_port, b.output_port)
    assert not graph.connect(a.input_port, b.input_port)
    assert not a.is_connected and not b.is_connected


def test_connect_is_idempotent(graph) -> None:
    a = graph.add_node("LayerDense")
    b = graph.add_node("LayerDense")
    assert graph.connect(a.output_port, b.input_port)
    assert graph.connect(a.output_port, b.input_port)
    assert graph.connect(b.input_port, a.output_port)
    assert a.output_port.degree == 1 and b.input_port.degree == 1


def test_connect_port_of_foreign_node_rejected(graph) -> None:
    other = ConnectionGraph("other")
    a = graph.add_node("LayerDense")
    b = other.add_node("LayerDense")
    assert not graph.connect(a.output_port, b.input_port)


def test_cycle_rejected(graph, abc_chain) -> None:
    a, b, c = abc_chain
    assert not graph.connect(c.output_port, a.input_port)
    assert not graph.connect(b.output_port, a.input_port)
    assert not graph.has_cycle()


def test_random_primary_connects_keep_graph_acyclic(graph) -> None:
    rng = random.Random(0)
    nodes = [graph.add_node("LayerDense") for _ in range(7)]
    accepted = 0
    for _ in range(200):
        a, b = rng.sample(nodes, 2)
        if rng.random() < 0.2:
            graph.disconnect(a.output_port, b.input_port)
        elif graph.connect(a.output_port, b.input_port):
            accepted += 1
    assert accepted > 0
    assert not graph.has_cycle()
    _assert_symmetric(graph)


# ==================== DISCONNECT ====================

def test_disconnect_removes_both_sides(graph, abc_chain) -> None:
    a, b, c = abc_chain
    graph.disconnect(b.input_port, a.output_port)
    assert a.output_port.degree == 0 and b.input_port.degree == 0
    assert b.output_port.connected == (c.input_port,)


def test_disconnect_absent_edge_is_noop(graph, abc_chain) -> None:
    a, b, c = abc_chain
    graph.disconnect(a.output_port, c.input_port)
    assert a.output_port.connected == (b.input_port,)


def test_remove_node_severs_every_edge(graph, abc_chain) -> None:
    a, b, c = abc_chain
    graph.remove_node(b)
    assert b not in graph
    assert a.output_port.degree == 0 and c.input_port.degree == 0
    assert len(graph) == 2


def test_link_unlink_are_symmetric(graph) -> None:
    a = graph.add_node("LayerDense")
    b = graph.add_node("LayerDense")
    assert link(a.output_port, b.input_port)
    assert not link(b.input_port, a.output_port)
    assert unlink(b.input_port, a.output_port)
    assert not unlink(a.output_port, b.input_port)
    assert not a.is_connected and not b.is_connected


# ==================== SUBGRAPH RULE ====================

def test_auxiliary_ports_of_two_special_nodes_never_connect(graph) -> None:
    s1 = graph.add_node("LayerSimpleRNN", numeric_params=[4])
    s2 = graph.add_node("LayerStacked", numeric_params=[2])
    assert not graph.connect(s1.auxiliary_port("IN mirror"), s2.auxiliary_port("OUT pass"))
    assert not graph.connect(s2.auxiliary_port("IN mirror"), s1.auxiliary_port("OUT pass"))


def test_node_captured_by_one_special_rejected_by_another(graph, helpers) -> None:
    s1 = graph.add_node("LayerSimpleRNN", numeric_params=[4], name="S1")
    s2 = graph.add_node("LayerSimpleRNN", numeric_params=[4], name="S2")
    d = graph.add_node("LayerDense", numeric_params=[4], name="d")
    helpers.wire_body(graph, s1, d)
    assert graph.owning_special_nodes(d) == [s1]

    assert not graph.connect(d.output_port, s2.auxiliary_port("OUT pass"))
    assert not graph.connect(s2.auxiliary_port("IN mirror"), d.input_port)
    assert s2.auxiliary_port("OUT pass").degree == 0


def test_capture_follows_primary_reach(graph, helpers) -> None:
    s1 = graph.add_node("LayerRepetitive", numeric_params=[2], name="S1")
    s2 = graph.add_node("LayerRepetitive", numeric_params=[2], name="S2")
    d1 = graph.add_node("LayerDense", numeric_params=[4], name="d1")
    d2 = graph.add_node("LayerDense", numeric_params=[4], name="d2")
    helpers.wire_body(graph, s1, d2)
    helpers.chain(graph, d1, d2)
    # d1 feeds d2, which already belongs to S1
    assert not graph.connect(s2.auxiliary_port("IN mirror"), d1.input_port)


def test_feedback_edges_exempt_from_cycle_check(graph, helpers) -> None:
    rnn = graph.add_node("LayerSimpleRNN", numeric_params=[4])
    d = graph.add_node("LayerDense", numeric_params=[4])
    helpers.wire_body(graph, rnn, d, feedback=True)
    assert d.input_port.degree == 2
    assert graph.special_subgraph(rnn) == {d}


def test_special_node_cannot_join_its_own_subgraph(graph) -> None:
    s = graph.add_node("LayerStacked", numeric_params=[2])
    x = graph.add_node("LayerDense", numeric_params=[4])
    assert graph.connect(x.output_port, s.input_port)
    assert not graph.connect(s.auxiliary_port("IN mirror"), x.input_port)


def test_special_subgraph_queries(graph, helpers) -> None:
    s = graph.add_node("LayerStacked", numeric_params=[2])
    d1 = graph.add_node("LayerDense", numeric_params=[4])
    d2 = graph.add_node("LayerActivation", string_params=["Relu"])
    outside = graph.add_node("LayerDense", numeric_params=[1])
    helpers.wire_body(graph, s, d1, d2)
    helpers.chain(graph, s, outside)

    assert graph.special_subgraph(s) == {d1, d2}
    assert graph.subgraph_entries(s) == [d1]
    assert graph.is_in_special_subgraph(d2)
    assert not graph.is_in_special_subgraph(outside)
    assert graph.special_subgraph(outside) == set()
    assert graph.successors(d2) == []
