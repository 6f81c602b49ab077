"""Layer type catalogue: specs and the registry that maps type tags to them."""

from .spec import (
    AuxPortSpec,
    LayerSpec,
    DEFAULT_MERGE_REDUCTION,
    REDUCTIONS,
    REDUCTION_AVERAGE,
    REDUCTION_CONCAT,
    REDUCTION_MAX,
    REDUCTION_SUM,
)
from .registry import LayerRegistry, register_layer, get_layer_spec, list_layers, is_merge_type, is_special_type

__all__ = [
    "AuxPortSpec",
    "LayerSpec",
    "LayerRegistry",
    "DEFAULT_MERGE_REDUCTION",
    "REDUCTIONS",
    "REDUCTION_AVERAGE",
    "REDUCTION_CONCAT",
    "REDUCTION_MAX",
    "REDUCTION_SUM",
    "register_layer",
    "get_layer_spec",
    "list_layers",
    "is_merge_type",
    "is_special_type",
]
