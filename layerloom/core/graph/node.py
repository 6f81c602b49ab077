# layerloom/core/graph/node.py
"""Nodes of the connection graph.

``LayerNode`` is a plain layer with one primary input and one primary output.
``SpecialNode`` additionally owns the auxiliary ports declared by its layer
type's spec; the subgraph wired to those ports is the node's inner body.
"""
from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Tuple

from ..layer.registry import LayerRegistry
from ..layer.spec import LayerSpec
from .port import Port, PortDirection

INPUT_PORT_NAME = "in"
OUTPUT_PORT_NAME = "out"


class LayerNode:
    """One layer of the topology.

    Attributes:
        node_id: Stable integer id assigned by the owning graph.
        name: Display name, ``<type>_<id>`` unless given.
        position: Canvas coordinates. Not used by graph logic.
        layer_type: Type tag looked up in ``LayerRegistry``.
        string_params: Ordered string parameters.
        numeric_params: Ordered numeric parameters.
    """

    def __init__(
        self,
        node_id: int,
        layer_type: str,
        string_params: Sequence[str] = (),
        numeric_params: Sequence[float] = (),
        position: Tuple[float, float] = (0.0, 0.0),
        name: Optional[str] = None,
    ):
        if not layer_type or not str(layer_type).strip():
            raise ValueError("layer_type must be non-empty")
        self.node_id = int(node_id)
        self.layer_type = layer_type
        self.name = name or f"{layer_type}_{node_id}"
        self.position = (float(position[0]), float(position[1]))
        self.string_params: List[str] = [str(s) for s in string_params]
        self.numeric_params: List[float] = [float(v) for v in numeric_params]
        self.input_port = Port(self, INPUT_PORT_NAME, PortDirection.INPUT)
        self.output_port = Port(self, OUTPUT_PORT_NAME, PortDirection.OUTPUT)

    @property
    def spec(self) -> LayerSpec:
        return LayerRegistry.get(self.layer_type)

    @property
    def is_special(self) -> bool:
        return False

    @property
    def is_merge(self) -> bool:
        return self.spec.merge

    @property
    def reduction(self) -> Optional[str]:
        """Reduction this node applies when it merges branches, else ``None``."""
        return self.spec.resolve_reduction(self.string_params)

    @property
    def auxiliary_ports(self) -> Tuple[Port, ...]:
        return ()

    @property
    def ports(self) -> Tuple[Port, ...]:
        """All ports in serialization order: input, output, then auxiliary."""
        return (self.input_port, self.output_port) + self.auxiliary_ports

    def port_index(self, port: Port) -> int:
        for i, p in enumerate(self.ports):
            if p is port:
                return i
        raise ValueError(f"Port {port!r} does not belong to node '{self.name}'")

    def iter_edges(self) -> Iterator[Tuple[Port, Port]]:
        """Yield ``(own_port, peer_port)`` for every edge on this node."""
        for port in self.ports:
            for peer in port.connected:
                yield port, peer

    @property
    def is_connected(self) -> bool:
        return any(p.degree for p in self.ports)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.node_id}, name={self.name!r}, type={self.layer_type!r})"


class SpecialNode(LayerNode):
    """Layer whose behaviour is defined by a subgraph wired to its auxiliary ports."""

    def __init__(self, node_id: int, layer_type: str, *args, **kwargs):
        super().__init__(node_id, layer_type, *args, **kwargs)
        spec = self.spec
        if not spec.is_special:
            raise ValueError(f"Layer type '{layer_type}' declares no auxiliary ports")
        self._auxiliary_ports: Tuple[Port, ...] = tuple(
            Port(
                self,
                aux.name,
                PortDirection.INPUT if aux.is_input else PortDirection.OUTPUT,
                auxiliary=True,
            )
            for aux in spec.auxiliary_ports
        )

    @property
    def is_special(self) -> bool:
        return True

    @property
    def auxiliary_ports(self) -> Tuple[Port, ...]:
        return self._auxiliary_ports

    def auxiliary_port(self, name: str) -> Port:
        for port in self._auxiliary_ports:
            if port.name == name:
                return port
        available = [p.name for p in self._auxiliary_ports]
        raise KeyError(f"Node '{self.name}' has no auxiliary port '{name}'. Available: {available}")

    @property
    def auxiliary_outputs(self) -> Tuple[Port, ...]:
        """Ports that feed the subgraph (its entry points)."""
        return tuple(p for p in self._auxiliary_ports if p.is_output)

    @property
    def auxiliary_inputs(self) -> Tuple[Port, ...]:
        """Ports that receive the subgraph's results."""
        return tuple(p for p in self._auxiliary_ports if p.is_input)


def create_node(node_id: int, layer_type: str, *args, **kwargs) -> LayerNode:
    """Build a ``SpecialNode`` or ``LayerNode`` according to the registered spec."""
    if LayerRegistry.get(layer_type).is_special:
        return SpecialNode(node_id, layer_type, *args, **kwargs)
    return LayerNode(node_id, layer_type, *args, **kwargs)
