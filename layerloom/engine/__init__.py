"""Numeric engines and the lowering of compiled graphs onto them."""

from .base import EngineError, LayerEngine
from .lowering import Lowering, build_network, lower
from .torch_engine import TorchEngine

__all__ = [
    "EngineError",
    "LayerEngine",
    "Lowering",
    "TorchEngine",
    "build_network",
    "lower",
]
