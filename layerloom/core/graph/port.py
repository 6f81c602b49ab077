# layerloom/core/graph/port.py
"""Port System — directional endpoints owned by nodes.

A port belongs to exactly one node. Edges are stored as mutual membership in
the two ports' connected lists; ``link``/``unlink`` are the only functions
that touch those lists, so the relation stays symmetric.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, List, Tuple

if TYPE_CHECKING:
    from .node import LayerNode


class PortDirection(Enum):
    INPUT = "input"
    OUTPUT = "output"


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------

class Port:
    """Directional connection endpoint.

    Attributes:
        node: Owning node.
        name: Display name, e.g. ``"in"``, ``"out"``, ``"IN mirror"``.
        direction: ``PortDirection.INPUT`` or ``PortDirection.OUTPUT``.
        auxiliary: ``True`` for the extra ports of a special node.
        highlighted: UI-only flag, never read by graph logic.
    """

    def __init__(self, node: "LayerNode", name: str, direction: PortDirection, auxiliary: bool = False):
        self.node = node
        self.name = name
        self.direction = direction
        self.auxiliary = auxiliary
        self.highlighted = False
        self._connected: List[Port] = []

    @property
    def is_input(self) -> bool:
        return self.direction is PortDirection.INPUT

    @property
    def is_output(self) -> bool:
        return self.direction is PortDirection.OUTPUT

    @property
    def is_primary(self) -> bool:
        return not self.auxiliary

    @property
    def connected(self) -> Tuple[Port, ...]:
        """Peers of this port, in connection order."""
        return tuple(self._connected)

    def is_connected_to(self, other: Port) -> bool:
        return any(p is other for p in self._connected)

    @property
    def degree(self) -> int:
        """Number of edges on this port."""
        return len(self._connected)

    def __repr__(self) -> str:
        kind = "aux" if self.auxiliary else self.direction.value
        return f"<Port {self.node.name}.{self.name} ({kind})>"


# ---------------------------------------------------------------------------
# Edge registration: the single entry point for mutations
# ---------------------------------------------------------------------------

def link(a: Port, b: Port) -> bool:
    """Register ``a`` and ``b`` in each other's connected lists.

    Returns ``False`` if the edge already existed.
    """
    if a.is_connected_to(b):
        return False
    a._connected.append(b)
    b._connected.append(a)
    return True


def unlink(a: Port, b: Port) -> bool:
    """Remove the mutual registration of ``a`` and ``b``. No-op if absent."""
    if not a.is_connected_to(b):
        return False
    a._connected = [p for p in a._connected if p is not b]
    b._connected = [p for p in b._connected if p is not a]
    return True


def unlink_all(port: Port) -> int:
    """Sever every edge on ``port``. Returns the number of edges removed."""
    removed = 0
    for peer in list(port._connected):
        if unlink(port, peer):
            removed += 1
    return removed


# ---------------------------------------------------------------------------
# PortValidator: local legality of a pair of ports
# ---------------------------------------------------------------------------

class PortValidator:
    """Checks that only look at the two ports, not at the rest of the graph."""

    @staticmethod
    def validate_pair(source: Port, target: Port) -> Tuple[bool, str]:
        """
        Returns:
            (is_valid, error_message)
        """
        if source is target:
            return False, f"Cannot connect port '{source.name}' to itself"
        if source.node is target.node:
            return False, f"Ports '{source.name}' and '{target.name}' are on the same node '{source.node.name}'"
        if source.direction is target.direction:
            return False, (
                f"Ports '{source.node.name}.{source.name}' and '{target.node.name}.{target.name}' "
                f"are both {source.direction.value} ports"
            )
        return True, ""

    @staticmethod
    def orient(a: Port, b: Port) -> Tuple[Port, Port]:
        """Return ``(output, input)`` for a pair of opposite-direction ports."""
        return (b, a) if a.is_input else (a, b)
