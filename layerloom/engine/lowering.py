# layerloom/engine/lowering.py
"""Lowering of a compiled composite tree onto a ``LayerEngine``.

Depth-first: children are materialised before the layer or merge that
owns them. A node-backed composite becomes its concrete layer followed by
its children; a parallel composite becomes a merge whose branches are
already-built handles; a sequence composite is just its children in
order. Handles are memoised per composite, so a composite shared by two
parents is instantiated once.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from ..core.graph.compiler import CompositeLayer, GraphCompiler
from ..core.graph.graph import ConnectionGraph
from .base import EngineError, LayerEngine

logger = logging.getLogger(__name__)


class Lowering:
    """One lowering pass. Not reusable across forests."""

    def __init__(self, engine: LayerEngine):
        self.engine = engine
        self._handles: Dict[int, List[Any]] = {}

    def run(self, forest: Sequence[CompositeLayer]) -> List[Any]:
        handles = self.lower_forest(forest)
        for handle in handles:
            self.engine.add_layer(handle)
        return handles

    def lower_forest(self, forest: Sequence[CompositeLayer]) -> List[Any]:
        handles: List[Any] = []
        for composite in forest:
            handles.extend(self.lower(composite))
        return handles

    def lower(self, composite: CompositeLayer) -> List[Any]:
        """Handles for ``composite`` in sequence order."""
        key = id(composite)
        if key in self._handles:
            return self._handles[key]

        if composite.is_sequence:
            handles = self.lower_forest(composite.children)
        elif composite.is_parallel:
            branches = [self._branch(child) for child in composite.children]
            handles = [self._call(composite, self.engine.create_merge, composite.reduction, branches)]
        else:
            inner = self.lower_forest(composite.body)
            following = self.lower_forest(composite.children)
            layer = self._call(
                composite,
                self.engine.create_layer,
                composite.layer_type,
                composite.numeric_params,
                composite.string_params,
                inner=tuple(inner),
            )
            handles = [layer] + following

        self._handles[key] = handles
        return handles

    def _branch(self, composite: CompositeLayer) -> Any:
        handles = self.lower(composite)
        if len(handles) == 1:
            return handles[0]
        return self._call(composite, self.engine.create_sequence, handles)

    @staticmethod
    def _call(composite: CompositeLayer, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            raise EngineError(
                f"Engine rejected layer '{composite.label}' ({composite.layer_type}): {e}"
            ) from e


def lower(forest: Sequence[CompositeLayer], engine: LayerEngine) -> List[Any]:
    """Instantiate ``forest`` on ``engine`` and append the top-level handles to its network."""
    return Lowering(engine).run(forest)


def build_network(graph: ConnectionGraph, engine: LayerEngine, reset: bool = True) -> List[CompositeLayer]:
    """Compile ``graph`` and lower it onto ``engine``.

    Compilation happens first, so an invalid graph raises ``CompilationError``
    before anything is created on the engine. Returns the compiled forest.
    """
    forest = GraphCompiler().compile(graph)
    if reset:
        engine.reset()
    lower(forest, engine)
    logger.info(f"Built network '{graph.name}': {len(forest)} top-level composite(s)")
    return forest
