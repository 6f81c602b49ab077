# layerloom/core/layer/spec.py
"""Layer specs — per-type metadata looked up by type tag.

A spec says whether a layer type is special (owns auxiliary ports),
whether it merges parallel branches and with which reduction, and how its
string/numeric parameters are named.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple


# ---------------------------------------------------------------------------
# Reductions
# ---------------------------------------------------------------------------

REDUCTION_SUM = "sum"
REDUCTION_AVERAGE = "average"
REDUCTION_CONCAT = "concat"
REDUCTION_MAX = "max"

DEFAULT_MERGE_REDUCTION = REDUCTION_CONCAT

REDUCTIONS: Tuple[str, ...] = (
    REDUCTION_SUM,
    REDUCTION_AVERAGE,
    REDUCTION_CONCAT,
    REDUCTION_MAX,
)


# ---------------------------------------------------------------------------
# AuxPortSpec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuxPortSpec:
    """Auxiliary port declared by a special layer type.

    Names describe the inner subgraph's point of view: ``IN mirror`` re-emits
    the node's input into the subgraph, so it is an *output* port.
    """
    name: str
    is_input: bool


FEEDBACK = AuxPortSpec("OUT t-1", is_input=False)
MIRROR = AuxPortSpec("IN mirror", is_input=False)
PASS = AuxPortSpec("OUT pass", is_input=True)
EXPERTS_WEIGHT = AuxPortSpec("experts weight", is_input=True)
EXPERTS = AuxPortSpec("experts", is_input=True)

RECURRENT_PORTS = (FEEDBACK, MIRROR, PASS)
STACKING_PORTS = (MIRROR, PASS)
ROUTING_PORTS = (MIRROR, EXPERTS_WEIGHT, EXPERTS)


# ---------------------------------------------------------------------------
# LayerSpec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LayerSpec:
    """Metadata for one layer type tag.

    Attributes:
        layer_type: Type tag, e.g. ``"LayerDense"``.
        auxiliary_ports: Ports of a special node, in order. Empty for plain layers.
        merge: ``True`` if the layer combines parallel branches.
        reduction: Declared reduction of a merge layer. ``None`` means the
            reduction is read from the first string parameter.
        string_params: Descriptions of string parameters, in order.
        numeric_params: Descriptions of numeric parameters, in order.
        description: Human readable summary (for UI and ``--help`` output).
    """
    layer_type: str
    auxiliary_ports: Tuple[AuxPortSpec, ...] = ()
    merge: bool = False
    reduction: Optional[str] = None
    string_params: Tuple[str, ...] = ()
    numeric_params: Tuple[str, ...] = ()
    description: str = ""

    @property
    def is_special(self) -> bool:
        return bool(self.auxiliary_ports)

    def resolve_reduction(self, string_params: Sequence[str] = ()) -> Optional[str]:
        """Reduction a node of this type applies, or ``None`` for non-merge types."""
        if not self.merge:
            return None
        if self.reduction is not None:
            return self.reduction
        if string_params and string_params[0]:
            return str(string_params[0]).lower()
        return REDUCTION_SUM

    def usage(self) -> str:
        """Three-line usage string: type, string params, numeric params (``;``-separated)."""
        return "\n".join([
            self.layer_type,
            ";".join(self.string_params),
            ";".join(self.numeric_params),
        ])


def plain_spec(layer_type: str) -> LayerSpec:
    """Spec used for type tags nobody registered: plain, non-merge."""
    return LayerSpec(layer_type=layer_type, description="unregistered layer type")
