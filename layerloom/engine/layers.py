# layerloom/engine/layers.py
"""torch modules backing the built-in layer types.

Every module is registered under its type tag with ``@register_module`` and
built through ``from_params(numeric, string, inner)``. Tensors are
``[batch, features]``; recurrent layers also accept ``[batch, time, features]``.
"""
from __future__ import annotations

import copy
from typing import Callable, Dict, List, Optional, Sequence, Type

import torch
import torch.nn as nn
from torch.nn.modules.lazy import LazyModuleMixin
from torch.nn.parameter import UninitializedParameter

from ..core.layer.spec import REDUCTION_AVERAGE, REDUCTION_CONCAT, REDUCTION_MAX, REDUCTION_SUM


_MODULES: Dict[str, Type["EngineModule"]] = {}


def register_module(layer_type: str):
    """Decorator: @register_module("LayerDense")"""
    def decorator(module_cls):
        _MODULES[layer_type] = module_cls
        module_cls.layer_type = layer_type
        return module_cls
    return decorator


def module_types() -> List[str]:
    return sorted(_MODULES)


def get_module_class(layer_type: str) -> Optional[Type["EngineModule"]]:
    return _MODULES.get(layer_type)


# ---------------------------------------------------------------------------
# Name tables
# ---------------------------------------------------------------------------

ACTIVATIONS: Dict[str, Callable[[], nn.Module]] = {
    "Linear": nn.Identity,
    "Relu": nn.ReLU,
    "LeakyRelu": nn.LeakyReLU,
    "Elu": nn.ELU,
    "Selu": nn.SELU,
    "Gelu": nn.GELU,
    "Swish": nn.SiLU,
    "Sigmoid": nn.Sigmoid,
    "Tanh": nn.Tanh,
    "Softplus": nn.Softplus,
    "Softsign": nn.Softsign,
}

INITIALIZERS: Dict[str, Callable[[torch.Tensor], torch.Tensor]] = {
    "GlorotUniform": nn.init.xavier_uniform_,
    "GlorotNormal": nn.init.xavier_normal_,
    "HeUniform": nn.init.kaiming_uniform_,
    "HeNormal": nn.init.kaiming_normal_,
    "Normal": lambda w: nn.init.normal_(w, std=0.05),
    "Uniform": lambda w: nn.init.uniform_(w, -0.05, 0.05),
    "Zeros": nn.init.zeros_,
    "Ones": nn.init.ones_,
}

REDUCTIONS = (REDUCTION_SUM, REDUCTION_AVERAGE, REDUCTION_CONCAT, REDUCTION_MAX)


def _int_param(numeric: Sequence[float], index: int, name: str, default: Optional[int] = None) -> int:
    if index < len(numeric):
        value = int(round(numeric[index]))
    elif default is not None:
        value = default
    else:
        raise ValueError(f"missing numeric parameter '{name}'")
    if value < 1:
        raise ValueError(f"'{name}' must be >= 1, got {value}")
    return value


class EngineModule(nn.Module):
    """Base class: construction from the node's parameter lists."""

    layer_type = "unknown"

    @classmethod
    def from_params(cls, numeric: Sequence[float], string: Sequence[str], inner: Optional[nn.Module]):
        return cls()


# ---------------------------------------------------------------------------
# Plain layers
# ---------------------------------------------------------------------------

@register_module("LayerDense")
class Dense(EngineModule):
    """Fully connected layer; input width is inferred on the first batch."""

    def __init__(self, units: int, initializer: str = "GlorotUniform"):
        super().__init__()
        if initializer not in INITIALIZERS:
            raise ValueError(f"Unknown initializer '{initializer}'. Available: {sorted(INITIALIZERS)}")
        self.units = units
        self.initializer = initializer
        self.linear = nn.LazyLinear(units)

    @classmethod
    def from_params(cls, numeric, string, inner):
        initializer = string[0] if string and string[0] else "GlorotUniform"
        return cls(_int_param(numeric, 0, "units"), initializer)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if self.linear.has_uninitialized_params():
            self.linear.initialize_parameters(x)
            with torch.no_grad():
                INITIALIZERS[self.initializer](self.linear.weight)
                nn.init.zeros_(self.linear.bias)
        return self.linear(x)


@register_module("LayerActivation")
class Activation(EngineModule):

    def __init__(self, name: str = "Relu"):
        super().__init__()
        if name not in ACTIVATIONS:
            raise ValueError(f"Unknown activation '{name}'. Available: {sorted(ACTIVATIONS)}")
        self.name = name
        self.fn = ACTIVATIONS[name]()

    @classmethod
    def from_params(cls, numeric, string, inner):
        if not string or not string[0]:
            raise ValueError("missing string parameter 'activation'")
        return cls(string[0])

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.fn(x)


@register_module("LayerDropout")
class Dropout(EngineModule):

    def __init__(self, rate: float = 0.5):
        super().__init__()
        if not 0.0 <= rate < 1.0:
            raise ValueError(f"dropout rate must be in [0, 1), got {rate}")
        self.dropout = nn.Dropout(rate)

    @classmethod
    def from_params(cls, numeric, string, inner):
        return cls(float(numeric[0]) if numeric else 0.5)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.dropout(x)


@register_module("LayerGain")
class Gain(EngineModule):

    def __init__(self, gain: float = 1.0):
        super().__init__()
        self.register_buffer("gain", torch.tensor(float(gain)))

    @classmethod
    def from_params(cls, numeric, string, inner):
        return cls(float(numeric[0]) if numeric else 1.0)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x * self.gain


@register_module("LayerBias")
class Bias(LazyModuleMixin, EngineModule):
    """Learned per-feature bias, sized on the first batch."""

    cls_to_become = None

    def __init__(self):
        super().__init__()
        self.bias = UninitializedParameter()

    def initialize_parameters(self, x: torch.Tensor) -> None:
        if self.has_uninitialized_params():
            with torch.no_grad():
                self.bias.materialize((x.shape[-1],))
                self.bias.zero_()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x + self.bias


@register_module("LayerSoftmax")
class Softmax(EngineModule):

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.softmax(x, dim=-1)


@register_module("LayerIdentity")
class Identity(EngineModule):

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x


# ---------------------------------------------------------------------------
# Merge and sequence constructs
# ---------------------------------------------------------------------------

def reduce_outputs(outputs: List[torch.Tensor], reduction: str) -> torch.Tensor:
    if reduction == REDUCTION_CONCAT:
        return torch.cat(outputs, dim=-1)
    stacked = torch.stack(outputs, dim=0)
    if reduction == REDUCTION_SUM:
        return stacked.sum(dim=0)
    if reduction == REDUCTION_AVERAGE:
        return stacked.mean(dim=0)
    if reduction == REDUCTION_MAX:
        return stacked.max(dim=0).values
    raise ValueError(f"Unknown reduction '{reduction}'. Available: {list(REDUCTIONS)}")


class Merge(EngineModule):
    """Feeds the same input to every branch and reduces the branch outputs.

    Without branches it passes its input through, which is what a merge
    layer placed on a single path does.
    """

    layer_type = "parallel"

    def __init__(self, reduction: str, branches: Sequence[nn.Module] = ()):
        super().__init__()
        if reduction not in REDUCTIONS:
            raise ValueError(f"Unknown reduction '{reduction}'. Available: {list(REDUCTIONS)}")
        self.reduction = reduction
        self.branches = nn.ModuleList(branches)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if not len(self.branches):
            return x
        return reduce_outputs([branch(x) for branch in self.branches], self.reduction)

    def extra_repr(self) -> str:
        return f"reduction={self.reduction!r}"


@register_module("LayerParallel")
class Parallel(Merge):
    """Merge whose reduction is named by its first string parameter."""

    def __init__(self, reduction: str = REDUCTION_SUM, branches: Sequence[nn.Module] = ()):
        super().__init__(reduction, branches)

    @classmethod
    def from_params(cls, numeric, string, inner):
        return cls(string[0].lower() if string and string[0] else REDUCTION_SUM)


@register_module("LayerParallelSum")
class ParallelSum(Merge):

    def __init__(self, branches: Sequence[nn.Module] = ()):
        super().__init__(REDUCTION_SUM, branches)


@register_module("LayerParallelAverage")
class ParallelAverage(Merge):

    def __init__(self, branches: Sequence[nn.Module] = ()):
        super().__init__(REDUCTION_AVERAGE, branches)


@register_module("LayerParallelConcat")
class ParallelConcat(Merge):

    def __init__(self, branches: Sequence[nn.Module] = ()):
        super().__init__(REDUCTION_CONCAT, branches)


@register_module("LayerParallelMax")
class ParallelMax(Merge):

    def __init__(self, branches: Sequence[nn.Module] = ()):
        super().__init__(REDUCTION_MAX, branches)


# ---------------------------------------------------------------------------
# Special layers: ``inner`` is the compiled body of the subgraph
# ---------------------------------------------------------------------------

@register_module("LayerStacked")
class Stacked(EngineModule):
    """``count`` independent copies of the body applied one after another."""

    def __init__(self, count: int, body: nn.Module):
        super().__init__()
        self.blocks = nn.ModuleList([copy.deepcopy(body) for _ in range(count)])

    @classmethod
    def from_params(cls, numeric, string, inner):
        return cls(_int_param(numeric, 0, "count", default=1), inner if inner is not None else nn.Identity())

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        for block in self.blocks:
            x = block(x)
        return x


@register_module("LayerRepetitive")
class Repetitive(EngineModule):
    """The same body (shared weights) applied ``repetitions`` times."""

    def __init__(self, repetitions: int, body: nn.Module):
        super().__init__()
        self.repetitions = repetitions
        self.body = body

    @classmethod
    def from_params(cls, numeric, string, inner):
        return cls(_int_param(numeric, 0, "repetitions", default=1), inner if inner is not None else nn.Identity())

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        for _ in range(self.repetitions):
            x = self.body(x)
        return x


@register_module("LayerRouter")
class Router(EngineModule):
    """Mixture of experts: copies of the body weighted by a learned gate.

    Only the ``top_k`` largest gate weights per sample are kept.
    """

    def __init__(self, experts: int, top_k: int, body: nn.Module):
        super().__init__()
        self.top_k = min(top_k, experts)
        self.experts = nn.ModuleList([copy.deepcopy(body) for _ in range(experts)])
        self.gate = nn.LazyLinear(experts)

    @classmethod
    def from_params(cls, numeric, string, inner):
        experts = _int_param(numeric, 0, "experts", default=2)
        top_k = _int_param(numeric, 1, "top k", default=experts)
        return cls(experts, top_k, inner if inner is not None else nn.Identity())

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        weights = torch.softmax(self.gate(x), dim=-1)
        if self.top_k < weights.shape[-1]:
            top, idx = weights.topk(self.top_k, dim=-1)
            weights = torch.zeros_like(weights).scatter(-1, idx, top)
            weights = weights / weights.sum(dim=-1, keepdim=True)
        outputs = torch.stack([expert(x) for expert in self.experts], dim=-1)
        return (outputs * weights.unsqueeze(-2)).sum(dim=-1)


class Recurrent(EngineModule):
    """Recurrent layer over ``[batch, time, features]``; 2-D input is one time step.

    With a body, the body is the cell: it receives ``cat(x_t, h_{t-1})`` and
    must return ``units`` features. Without one, the built-in cell of the
    layer kind is used. Returns the last hidden state.
    """

    kind = "rnn"

    def __init__(self, units: int, body: Optional[nn.Module] = None):
        super().__init__()
        self.units = units
        self.body = body
        if body is None:
            gates = {"rnn": 1, "gru": 3, "lstm": 4}[self.kind]
            self.cell = nn.LazyLinear(gates * units)

    @classmethod
    def from_params(cls, numeric, string, inner):
        return cls(_int_param(numeric, 0, "units"), inner)

    def _step(self, x_t, h, c):
        if self.body is not None:
            return self.body(torch.cat([x_t, h], dim=-1)), c
        if self.kind == "rnn":
            return torch.tanh(self.cell(torch.cat([x_t, h], dim=-1))), c
        if self.kind == "gru":
            z, r, _ = self.cell(torch.cat([x_t, h], dim=-1)).chunk(3, dim=-1)
            z, r = torch.sigmoid(z), torch.sigmoid(r)
            _, _, n = self.cell(torch.cat([x_t, r * h], dim=-1)).chunk(3, dim=-1)
            return (1 - z) * torch.tanh(n) + z * h, c
        i, f, g, o = self.cell(torch.cat([x_t, h], dim=-1)).chunk(4, dim=-1)
        c = torch.sigmoid(f) * c + torch.sigmoid(i) * torch.tanh(g)
        return torch.sigmoid(o) * torch.tanh(c), c

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if x.dim() == 2:
            x = x.unsqueeze(1)
        batch = x.shape[0]
        h = x.new_zeros(batch, self.units)
        c = x.new_zeros(batch, self.units)
        for t in range(x.shape[1]):
            h, c = self._step(x[:, t], h, c)
        return h

    def extra_repr(self) -> str:
        return f"kind={self.kind!r}, units={self.units}, body={'yes' if self.body is not None else 'no'}"


@register_module("LayerSimpleRNN")
class SimpleRNN(Recurrent):
    kind = "rnn"


@register_module("LayerGRU")
class GRU(Recurrent):
    kind = "gru"


@register_module("LayerLSTM")
class LSTM(Recurrent):
    kind = "lstm"
