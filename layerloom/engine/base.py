# layerloom/engine/base.py
"""Capability interface of a numeric engine.

The compiler never talks to a concrete framework: lowering only calls the
methods below, and capability validation only reads the ``available_*``
lists and ``layer_usage``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Sequence


class EngineError(RuntimeError):
    """The engine rejected a layer, a parameter combination or a training setting."""


class LayerEngine(ABC):
    """Abstract numeric engine.

    Handles returned by ``create_*`` are opaque to the caller; they are only
    passed back to the same engine.
    """

    # ==================== CONSTRUCTION ====================

    @abstractmethod
    def create_layer(
        self,
        layer_type: str,
        numeric_params: Sequence[float],
        string_params: Sequence[str],
        inner: Sequence[Any] = (),
    ) -> Any:
        """Concrete layer. ``inner`` holds the handles of a special layer's body, in order."""

    @abstractmethod
    def create_merge(self, reduction: str, children: Sequence[Any]) -> Any:
        """Run every child on the same input and combine the results with ``reduction``."""

    @abstractmethod
    def create_sequence(self, handles: Sequence[Any]) -> Any:
        """Chain ``handles`` into one handle."""

    @abstractmethod
    def add_layer(self, handle: Any) -> None:
        """Append a handle to the top-level network."""

    @abstractmethod
    def reset(self) -> None:
        """Drop the current network."""

    # ==================== RUNNING ====================

    @abstractmethod
    def predict(self, inputs: Any, rows: int = None, cols: int = None) -> Any:
        ...

    @abstractmethod
    def fit(self, inputs: Any, targets: Any, config: Any = None) -> Any:
        ...

    # ==================== CAPABILITIES ====================

    @abstractmethod
    def available_layers(self) -> List[str]:
        ...

    @abstractmethod
    def available_activations(self) -> List[str]:
        ...

    @abstractmethod
    def available_initializers(self) -> List[str]:
        ...

    @abstractmethod
    def available_reductions(self) -> List[str]:
        ...

    @abstractmethod
    def available_losses(self) -> List[str]:
        ...

    @abstractmethod
    def available_optimizers(self) -> List[str]:
        ...

    @abstractmethod
    def available_regularizers(self) -> List[str]:
        ...

    @abstractmethod
    def layer_usage(self, layer_type: str) -> str:
        """Three lines: type tag, ``;``-separated string parameter names, numeric parameter names."""
