# layerloom/core/graph/graph.py
"""ConnectionGraph — owner of all nodes and the rules for wiring them.

Edges are legal only between an output and an input port on different
nodes. Primary edges must stay acyclic; auxiliary edges (feedback, mirror,
pass) are exempt because they model intentional self-reference of a
special node. Illegal requests are reported by ``connect`` returning
``False``; structural problems of the whole network are reported by
``validate_network`` as diagnostics.
"""
from __future__ import annotations

import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .node import LayerNode, SpecialNode, create_node
from .port import Port, PortValidator, link, unlink, unlink_all

logger = logging.getLogger(__name__)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


@dataclass
class ValidationResult:
    """Result of validation: errors (blocking) and warnings (informational)."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def diagnostics(self) -> Iterator[Tuple[str, str]]:
        for msg in self.errors:
            yield SEVERITY_ERROR, msg
        for msg in self.warnings:
            yield SEVERITY_WARNING, msg

    def extend(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def __bool__(self) -> bool:
        return self.is_valid


class ConnectionGraph:
    """Directed graph of layer nodes connected through ports.

    Example::

        graph = ConnectionGraph()
        dense = graph.add_node("LayerDense", numeric_params=[16])
        act = graph.add_node("LayerActivation", string_params=["Relu"])
        graph.connect(dense.output_port, act.input_port)
        assert graph.validate_network().is_valid
    """

    def __init__(self, name: str = "network"):
        self.name = name
        self._nodes: "OrderedDict[int, LayerNode]" = OrderedDict()
        self._next_id = 0

    # ==================== NODES ====================

    def add_node(
        self,
        layer_type: str,
        string_params: Sequence[str] = (),
        numeric_params: Sequence[float] = (),
        position: Tuple[float, float] = (0.0, 0.0),
        name: Optional[str] = None,
        node_id: Optional[int] = None,
    ) -> LayerNode:
        """Create a node and take ownership of it.

        ``node_id`` is normally assigned; loaders pass it explicitly to keep
        ids stable across a save/load round trip.
        """
        if node_id is None:
            node_id = self._next_id
        elif node_id in self._nodes:
            raise ValueError(f"Node id {node_id} already exists")
        node = create_node(node_id, layer_type, string_params, numeric_params, position, name)
        self._nodes[node.node_id] = node
        self._next_id = max(self._next_id, node.node_id + 1)
        logger.debug(f"Added node {node!r}")
        return node

    def remove_node(self, node: LayerNode) -> None:
        if self._nodes.get(node.node_id) is not node:
            raise KeyError(f"Node '{node.name}' does not belong to this graph")
        self.disconnect_all(node)
        del self._nodes[node.node_id]
        logger.debug(f"Removed node {node!r}")

    def get_node(self, node_id: int) -> LayerNode:
        if node_id not in self._nodes:
            raise KeyError(f"Node id {node_id} not found. Available: {list(self._nodes)}")
        return self._nodes[node_id]

    def find_node(self, name: str) -> Optional[LayerNode]:
        for node in self._nodes.values():
            if node.name == name:
                return node
        return None

    @property
    def nodes(self) -> List[LayerNode]:
        return list(self._nodes.values())

    @property
    def special_nodes(self) -> List[SpecialNode]:
        return [n for n in self._nodes.values() if n.is_special]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: LayerNode) -> bool:
        return self._nodes.get(getattr(node, "node_id", None)) is node

    def __iter__(self) -> Iterator[LayerNode]:
        return iter(list(self._nodes.values()))

    def __repr__(self) -> str:
        return f"<ConnectionGraph '{self.name}' nodes={len(self)} edges={len(self.edges())}>"

    # ==================== EDGES ====================

    def connect(self, source: Port, target: Port) -> bool:
        """Connect two ports. Returns ``False`` for an illegal request.

        The ports may be given in either order; the edge always runs from
        the output side to the input side.
        """
        ok, reason = PortValidator.validate_pair(source, target)
        if not ok:
            logger.debug(f"connect rejected: {reason}")
            return False
        if source not in self._owned_ports(source.node) or target not in self._owned_ports(target.node):
            logger.debug("connect rejected: port belongs to a node outside this graph")
            return False
        if source.is_connected_to(target):
            return True

        output, input_ = PortValidator.orient(source, target)
        if output.auxiliary or input_.auxiliary:
            ok, reason = self._check_subgraph_rule(output, input_)
            if not ok:
                logger.debug(f"connect rejected: {reason}")
                return False
        elif self._would_create_cycle(output, input_):
            logger.debug(
                f"connect rejected: {output.node.name} -> {input_.node.name} would close a cycle"
            )
            return False

        link(output, input_)
        return True

    def disconnect(self, a: Port, b: Port) -> None:
        unlink(a, b)

    def disconnect_all(self, node: LayerNode) -> None:
        removed = sum(unlink_all(port) for port in node.ports)
        if removed:
            logger.debug(f"Disconnected {removed} edge(s) from '{node.name}'")

    def edges(self) -> List[Tuple[Port, Port]]:
        """All edges as ``(output_port, input_port)``, in node order."""
        result = []
        for node in self._nodes.values():
            for port in node.ports:
                if port.is_output:
                    result.extend((port, peer) for peer in port.connected)
        return result

    def _owned_ports(self, node: LayerNode) -> Tuple[Port, ...]:
        if node not in self:
            return ()
        return node.ports

    def _would_create_cycle(self, output: Port, input_: Port) -> bool:
        # The new edge closes a cycle iff the output side is already reachable from the input side.
        return output.node in self.reachable_from(input_.node, include_start=True)

    def _check_subgraph_rule(self, output: Port, input_: Port) -> Tuple[bool, str]:
        if output.auxiliary and input_.auxiliary:
            if output.node is not input_.node:
                return False, "auxiliary ports of different special nodes cannot be connected"
            return True, ""

        aux, primary = (output, input_) if output.auxiliary else (input_, output)
        special = aux.node
        captured = self.reachable_from(primary.node, include_start=True)
        if special in captured:
            return False, f"'{special.name}' would become part of its own subgraph"
        for node in captured:
            owners = [s for s in self.owning_special_nodes(node) if s is not special]
            if owners:
                return False, (
                    f"'{node.name}' already belongs to the subgraph of '{owners[0].name}'"
                )
        return True, ""

    # ==================== STRUCTURE ====================

    def successors(self, node: LayerNode) -> List[LayerNode]:
        """Nodes fed by ``node``'s primary output over primary edges."""
        return _unique(p.node for p in node.output_port.connected if p.is_primary)

    def predecessors(self, node: LayerNode) -> List[LayerNode]:
        return _unique(p.node for p in node.input_port.connected if p.is_primary)

    def reachable_from(self, node: LayerNode, include_start: bool = True) -> Set[LayerNode]:
        """Forward BFS over primary edges."""
        return self._reach([node], include_start=include_start)

    def _reach(self, starts: Iterable[LayerNode], include_start: bool = True) -> Set[LayerNode]:
        starts = list(starts)
        visited: Set[LayerNode] = set(starts) if include_start else set()
        queue = deque(starts)
        while queue:
            current = queue.popleft()
            for nxt in self.successors(current):
                if nxt not in visited:
                    visited.add(nxt)
                    queue.append(nxt)
        return visited

    def subgraph_entries(self, special: SpecialNode) -> List[LayerNode]:
        """Nodes whose primary input is wired to one of ``special``'s auxiliary outputs."""
        return _unique(
            peer.node
            for port in special.auxiliary_outputs
            for peer in port.connected
            if peer.is_primary
        )

    def special_subgraph(self, special: LayerNode) -> Set[LayerNode]:
        """Nodes reachable over primary edges from ``special``'s auxiliary ports."""
        if not special.is_special:
            return set()
        members = self._reach(self._aux_peers(special))
        members.discard(special)
        return members

    def _aux_peers(self, special: SpecialNode) -> List[LayerNode]:
        return _unique(
            peer.node
            for port in special.auxiliary_ports
            for peer in port.connected
            if peer.is_primary
        )

    def owning_special_nodes(self, node: LayerNode) -> List[SpecialNode]:
        return [s for s in self.special_nodes if node in self.special_subgraph(s)]

    def is_in_special_subgraph(self, node: LayerNode) -> bool:
        return bool(self.owning_special_nodes(node))

    def input_nodes(self) -> List[LayerNode]:
        """Real inputs: connected, nothing on the primary input, not inside a subgraph."""
        captured = self._all_captured()
        return [
            n for n in self._nodes.values()
            if n.is_connected and not n.input_port.degree and n not in captured
        ]

    def output_nodes(self) -> List[LayerNode]:
        """Real outputs: connected, nothing on the primary output, not inside a subgraph."""
        captured = self._all_captured()
        return [
            n for n in self._nodes.values()
            if n.is_connected and not n.output_port.degree and n not in captured
        ]

    def _all_captured(self) -> Set[LayerNode]:
        captured: Set[LayerNode] = set()
        for special in self.special_nodes:
            captured |= self.special_subgraph(special)
        return captured

    def topological_order(self) -> List[LayerNode]:
        """Kahn's algorithm over primary edges. Raises ``ValueError`` on a cycle."""
        in_degree: Dict[LayerNode, int] = {n: len(self.predecessors(n)) for n in self._nodes.values()}
        queue = deque(n for n, d in in_degree.items() if d == 0)
        order: List[LayerNode] = []
        while queue:
            node = queue.popleft()
            order.append(node)
            for nxt in self.successors(node):
                in_degree[nxt] -= 1
                if in_degree[nxt] == 0:
                    queue.append(nxt)
        if len(order) != len(self._nodes):
            remaining = [n.name for n in self._nodes.values() if n not in order]
            raise ValueError(f"Network contains a cycle through primary connections: {remaining}")
        return order

    def has_cycle(self) -> bool:
        try:
            self.topological_order()
        except ValueError:
            return True
        return False

    # ==================== VALIDATION ====================

    def validate_network(self) -> ValidationResult:
        """Structural validation. Never raises; errors block compilation."""
        result = ValidationResult()

        for node in self._nodes.values():
            if not node.is_connected:
                result.errors.append(f"Node '{node.name}' is disconnected")

        try:
            self.topological_order()
        except ValueError as e:
            # Remaining checks walk primary edges and assume a DAG.
            result.errors.append(str(e))
            return result

        inputs = self.input_nodes()
        outputs = set(self.output_nodes())
        if not inputs:
            result.errors.append("Network has no input nodes")
        if not outputs:
            result.errors.append("Network has no output nodes")
        for node in inputs:
            if outputs and not (self.reachable_from(node) & outputs):
                result.errors.append(f"Input node '{node.name}' has no path to any output")

        for node in self._nodes.values():
            fan_in = len(self.predecessors(node))
            if fan_in > 1 and not node.is_merge:
                result.warnings.append(
                    f"Node '{node.name}' receives {fan_in} inputs but '{node.layer_type}' "
                    f"is not a merge layer; inputs will be concatenated"
                )

        self._validate_subgraphs(result)
        return result

    def _validate_subgraphs(self, result: ValidationResult) -> None:
        for output, input_ in self.edges():
            if output.auxiliary and input_.auxiliary:
                result.errors.append(
                    f"Auxiliary ports '{output.node.name}.{output.name}' and "
                    f"'{input_.node.name}.{input_.name}' of different special nodes are connected"
                )

        owners: Dict[LayerNode, List[SpecialNode]] = {}
        for special in self.special_nodes:
            members = self.special_subgraph(special)
            if special in self._reach(self._aux_peers(special)):
                result.errors.append(f"Special node '{special.name}' is part of its own subgraph")
            for member in members:
                owners.setdefault(member, []).append(special)
                if not member.input_port.degree:
                    result.errors.append(
                        f"Node '{member.name}' in the subgraph of '{special.name}' has no input connection"
                    )
                if not member.output_port.degree:
                    result.errors.append(
                        f"Node '{member.name}' in the subgraph of '{special.name}' has no output connection"
                    )
            if members:
                for port in special.auxiliary_inputs:
                    if not port.degree:
                        result.errors.append(
                            f"Special node '{special.name}' has an unconnected '{port.name}' port"
                        )
        for member, specials in owners.items():
            if len(specials) > 1:
                names = ", ".join(f"'{s.name}'" for s in specials)
                result.errors.append(f"Node '{member.name}' belongs to the subgraphs of {names}")


def _unique(nodes: Iterable[LayerNode]) -> List[LayerNode]:
    seen: Set[int] = set()
    result = []
    for node in nodes:
        if id(node) not in seen:
            seen.add(id(node))
            result.append(node)
    return result
