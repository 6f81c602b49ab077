# layerloom/core/layer/registry.py
import logging
from difflib import get_close_matches
from typing import Dict, List

from .spec import (
    LayerSpec,
    RECURRENT_PORTS,
    REDUCTION_AVERAGE,
    REDUCTION_CONCAT,
    REDUCTION_MAX,
    REDUCTION_SUM,
    ROUTING_PORTS,
    STACKING_PORTS,
    plain_spec,
)

logger = logging.getLogger(__name__)


class LayerRegistry:
    """Global registry of layer type tags.

    Specs are looked up explicitly by type tag. Nothing about a layer is
    inferred from the spelling of its tag: a user type called
    ``"MyParallelThing"`` is a plain layer unless a spec says otherwise.
    """
    _registry: Dict[str, LayerSpec] = {}

    @classmethod
    def register(cls, spec: LayerSpec) -> LayerSpec:
        if not spec.layer_type or not spec.layer_type.strip():
            raise ValueError("layer_type must be non-empty")
        if spec.layer_type in cls._registry:
            logger.debug(f"Replacing layer spec '{spec.layer_type}'")
        cls._registry[spec.layer_type] = spec
        return spec

    @classmethod
    def get(cls, layer_type: str, strict: bool = False) -> LayerSpec:
        """Spec for ``layer_type``.

        Unknown tags resolve to a plain spec, or raise a ``KeyError`` with
        suggestions when ``strict`` is set.
        """
        spec = cls._registry.get(layer_type)
        if spec is not None:
            return spec
        if not strict:
            return plain_spec(layer_type)
        similar = get_close_matches(layer_type, cls._registry.keys(), n=5, cutoff=0.4)
        msg = f"Layer type '{layer_type}' not found in registry."
        if similar:
            msg += f" Did you mean: {', '.join(similar)}?"
        raise KeyError(msg)

    @classmethod
    def list_layers(cls) -> List[str]:
        return sorted(cls._registry)

    @classmethod
    def unregister(cls, layer_type: str) -> None:
        cls._registry.pop(layer_type, None)

    @classmethod
    def reset(cls):
        """Restore the built-in catalogue (for testing)."""
        cls._registry.clear()
        _register_builtin_layers()


# Convenience aliases
register_layer = LayerRegistry.register
get_layer_spec = LayerRegistry.get
list_layers = LayerRegistry.list_layers


def is_special_type(layer_type: str) -> bool:
    return LayerRegistry.get(layer_type).is_special


def is_merge_type(layer_type: str) -> bool:
    return LayerRegistry.get(layer_type).merge


def _register_builtin_layers():
    builtin = [
        LayerSpec("LayerDense", string_params=("weight initializer",),
                  numeric_params=("units",), description="Fully connected layer"),
        LayerSpec("LayerActivation", string_params=("activation",),
                  description="Element-wise activation"),
        LayerSpec("LayerDropout", numeric_params=("rate",), description="Dropout"),
        LayerSpec("LayerGain", numeric_params=("gain",), description="Constant gain"),
        LayerSpec("LayerBias", description="Learned bias"),
        LayerSpec("LayerSoftmax", description="Softmax over the last dimension"),
        LayerSpec("LayerIdentity", description="Pass-through"),
        LayerSpec("LayerParallel", merge=True, reduction=None, string_params=("reduction",),
                  description="Merge with the reduction named by its parameter"),
        LayerSpec("LayerParallelSum", merge=True, reduction=REDUCTION_SUM,
                  description="Merge by element-wise sum"),
        LayerSpec("LayerParallelAverage", merge=True, reduction=REDUCTION_AVERAGE,
                  description="Merge by element-wise mean"),
        LayerSpec("LayerParallelConcat", merge=True, reduction=REDUCTION_CONCAT,
                  description="Merge by concatenation"),
        LayerSpec("LayerParallelMax", merge=True, reduction=REDUCTION_MAX,
                  description="Merge by element-wise maximum"),
        LayerSpec("LayerSimpleRNN", auxiliary_ports=RECURRENT_PORTS, numeric_params=("units",),
                  description="Recurrent layer; the subgraph is the cell"),
        LayerSpec("LayerGRU", auxiliary_ports=RECURRENT_PORTS, numeric_params=("units",),
                  description="Gated recurrent unit"),
        LayerSpec("LayerLSTM", auxiliary_ports=RECURRENT_PORTS, numeric_params=("units",),
                  description="Long short-term memory"),
        LayerSpec("LayerStacked", auxiliary_ports=STACKING_PORTS, numeric_params=("count",),
                  description="Stacks independent copies of the subgraph"),
        LayerSpec("LayerRepetitive", auxiliary_ports=STACKING_PORTS, numeric_params=("repetitions",),
                  description="Applies the same subgraph repeatedly"),
        LayerSpec("LayerRouter", auxiliary_ports=ROUTING_PORTS, numeric_params=("experts", "top k"),
                  description="Routes the input through a gated set of experts"),
    ]
    for spec in builtin:
        LayerRegistry.register(spec)


_register_builtin_layers()
