# layerloom/engine/torch_engine.py
"""TorchEngine — ``LayerEngine`` on top of ``torch.nn``.

Handles are ``nn.Module`` instances. The network is an ``nn.Sequential``
that ``add_layer`` appends to; lazy layers are sized by the first batch
that goes through ``predict`` or ``fit``.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from ..core.layer.registry import LayerRegistry
from .base import EngineError, LayerEngine
from .layers import ACTIVATIONS, INITIALIZERS, REDUCTIONS, Merge, get_module_class, module_types

logger = logging.getLogger(__name__)


LOSSES: Dict[str, Callable[[], nn.Module]] = {
    "MeanSquaredError": nn.MSELoss,
    "MeanAbsoluteError": nn.L1Loss,
    "Huber": nn.HuberLoss,
    "CrossEntropy": nn.CrossEntropyLoss,
    "BinaryCrossEntropy": nn.BCEWithLogitsLoss,
}

OPTIMIZERS = ("SGD", "Momentum", "Nesterov", "Adam", "AdamW", "RMSProp", "Adagrad")

REGULARIZERS = ("None", "L1", "L2")


class TorchEngine(LayerEngine):
    """Numeric engine backed by torch.

    Example::

        engine = TorchEngine()
        dense = engine.create_layer("LayerDense", [4], [])
        engine.add_layer(dense)
        engine.predict([[0.0, 1.0]])
    """

    def __init__(self, device: str = "auto", seed: Optional[int] = None):
        self.device = self._resolve_device(device)
        if seed is not None:
            torch.manual_seed(int(seed))
        self.network = nn.Sequential()

    @staticmethod
    def _resolve_device(device: str) -> torch.device:
        if device != "auto":
            return torch.device(device)
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")

    # ==================== CONSTRUCTION ====================

    def create_layer(
        self,
        layer_type: str,
        numeric_params: Sequence[float],
        string_params: Sequence[str],
        inner: Sequence[Any] = (),
    ) -> nn.Module:
        module_cls = get_module_class(layer_type)
        if module_cls is None:
            raise EngineError(f"Layer type '{layer_type}' is not available")
        body = self.create_sequence(inner) if inner else None
        try:
            return module_cls.from_params(list(numeric_params), list(string_params), body)
        except (ValueError, TypeError, IndexError) as e:
            raise EngineError(f"Cannot create {layer_type}: {e}") from e

    def create_merge(self, reduction: str, children: Sequence[Any]) -> nn.Module:
        try:
            return Merge(reduction, list(children))
        except ValueError as e:
            raise EngineError(str(e)) from e

    def create_sequence(self, handles: Sequence[Any]) -> nn.Module:
        handles = list(handles)
        if len(handles) == 1:
            return handles[0]
        return nn.Sequential(*handles)

    def add_layer(self, handle: nn.Module) -> None:
        self.network.append(handle)

    def reset(self) -> None:
        self.network = nn.Sequential()

    def __len__(self) -> int:
        return len(self.network)

    # ==================== DATA ====================

    def as_tensor(self, data: Any, rows: Optional[int] = None, cols: Optional[int] = None) -> torch.Tensor:
        """2-D float tensor from an array-like, or from a flat buffer with explicit ``rows``/``cols``."""
        array = np.asarray(data, dtype=np.float32)
        if rows is not None or cols is not None:
            if rows is None:
                rows = array.size // int(cols)
            if cols is None:
                cols = array.size // int(rows)
            if array.size != int(rows) * int(cols):
                raise EngineError(f"Buffer of {array.size} values does not hold {rows}x{cols}")
            array = array.reshape(int(rows), int(cols))
        elif array.ndim == 1:
            array = array.reshape(1, -1)
        return torch.from_numpy(np.ascontiguousarray(array)).to(self.device)

    def materialize(self, sample: torch.Tensor) -> None:
        """Run one batch through the network so lazy layers get their shapes."""
        self.network.to(self.device)
        was_training = self.network.training
        self.network.eval()
        with torch.no_grad():
            self.network(sample[:1])
        self.network.train(was_training)

    # ==================== RUNNING ====================

    def predict(self, inputs: Any, rows: Optional[int] = None, cols: Optional[int] = None) -> np.ndarray:
        if not len(self.network):
            raise EngineError("Network is empty; add layers before predicting")
        x = self.as_tensor(inputs, rows, cols)
        self.network.to(self.device)
        self.network.eval()
        try:
            with torch.no_grad():
                y = self.network(x)
        except RuntimeError as e:
            raise EngineError(f"Forward pass failed: {e}") from e
        return y.detach().cpu().numpy()

    def fit(self, inputs: Any, targets: Any, config: Any = None):
        """Train on ``inputs``/``targets`` with a ``TrainingConfig`` (or dict). Returns the trainer."""
        from ..training.trainer import NetworkTrainer

        trainer = NetworkTrainer(self, config)
        trainer.fit(inputs, targets)
        return trainer

    # ==================== TRAINING HOOKS ====================

    def build_loss(self, name: str) -> nn.Module:
        if name not in LOSSES:
            raise EngineError(f"Loss function '{name}' is not available. Available: {sorted(LOSSES)}")
        return LOSSES[name]()

    def build_optimizer(
        self,
        name: str,
        params,
        learning_rate: float,
        momentum: float = 0.0,
        decay: float = 0.0,
    ) -> torch.optim.Optimizer:
        if name == "SGD":
            return torch.optim.SGD(params, lr=learning_rate, weight_decay=decay)
        elif name == "Momentum":
            return torch.optim.SGD(params, lr=learning_rate, momentum=momentum, weight_decay=decay)
        elif name == "Nesterov":
            return torch.optim.SGD(params, lr=learning_rate, momentum=momentum or 0.9,
                                   nesterov=True, weight_decay=decay)
        elif name == "Adam":
            return torch.optim.Adam(params, lr=learning_rate, weight_decay=decay)
        elif name == "AdamW":
            return torch.optim.AdamW(params, lr=learning_rate, weight_decay=decay)
        elif name == "RMSProp":
            return torch.optim.RMSprop(params, lr=learning_rate, momentum=momentum, weight_decay=decay)
        elif name == "Adagrad":
            return torch.optim.Adagrad(params, lr=learning_rate, weight_decay=decay)
        raise EngineError(f"Optimizer '{name}' is not available. Available: {list(OPTIMIZERS)}")

    def regularization(self, name: str, param: float) -> torch.Tensor:
        if name in (None, "", "None") or not param:
            return torch.zeros((), device=self.device)
        weights = [p for n, p in self.network.named_parameters() if n.endswith("weight")]
        if name == "L1":
            return param * sum(w.abs().sum() for w in weights)
        if name == "L2":
            return param * sum((w ** 2).sum() for w in weights)
        raise EngineError(f"Regularizer '{name}' is not available. Available: {list(REGULARIZERS)}")

    # ==================== CAPABILITIES ====================

    def available_layers(self) -> List[str]:
        return module_types()

    def available_activations(self) -> List[str]:
        return sorted(ACTIVATIONS)

    def available_initializers(self) -> List[str]:
        return sorted(INITIALIZERS)

    def available_reductions(self) -> List[str]:
        return list(REDUCTIONS)

    def available_losses(self) -> List[str]:
        return sorted(LOSSES)

    def available_optimizers(self) -> List[str]:
        return list(OPTIMIZERS)

    def available_regularizers(self) -> List[str]:
        return list(REGULARIZERS)

    def layer_usage(self, layer_type: str) -> str:
        if get_module_class(layer_type) is None:
            raise EngineError(f"Layer type '{layer_type}' is not available")
        return LayerRegistry.get(layer_type).usage()
