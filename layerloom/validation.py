# layerloom/validation.py
"""Capability checks: does the engine provide what the graph and the training settings name?

Structural checks live in ``ConnectionGraph.validate_network``; these
checks compare node parameters and training settings against the
engine's ``available_*`` lists. Everything is reported as diagnostics,
nothing raises.
"""
from __future__ import annotations

import logging
from typing import Optional

from .core.graph.graph import ConnectionGraph, ValidationResult
from .engine.base import LayerEngine
from .training.config import TrainingConfig

logger = logging.getLogger(__name__)


def validate_layers(graph: ConnectionGraph, engine: LayerEngine) -> ValidationResult:
    """Check every node's type and parameters against the engine's capability lists."""
    result = ValidationResult()
    layer_types = set(engine.available_layers())
    activations = set(engine.available_activations())
    initializers = set(engine.available_initializers())
    reductions = set(engine.available_reductions())

    for node in graph.nodes:
        if node.layer_type not in layer_types:
            result.errors.append(f"Layer type '{node.layer_type}' is not available")
            continue

        usage = engine.layer_usage(node.layer_type).split("\n")
        if len(usage) > 1 and usage[1]:
            descriptions = usage[1].split(";")
            for desc, param in zip(descriptions, node.string_params):
                desc = desc.lower()
                if "activation" in desc and param not in activations:
                    result.errors.append(
                        f"Activation '{param}' is not available for layer '{node.name}'"
                    )
                elif "initializer" in desc and param not in initializers:
                    result.errors.append(
                        f"Initializer '{param}' is not available for layer '{node.name}'"
                    )
                elif "reduction" in desc and param.lower() not in reductions:
                    result.errors.append(
                        f"Reduction '{param}' is not available for layer '{node.name}'"
                    )

        expected = [d for d in usage[2].split(";") if d] if len(usage) > 2 else []
        if len(node.numeric_params) != len(expected):
            result.warnings.append(
                f"Layer '{node.name}' has {len(node.numeric_params)} numeric parameters "
                f"but '{node.layer_type}' expects {len(expected)}"
            )
    return result


def validate_training(config: TrainingConfig, engine: LayerEngine) -> ValidationResult:
    result = ValidationResult()
    if config.loss not in engine.available_losses():
        result.errors.append(f"Loss function '{config.loss}' is not available")
    if config.optimizer not in engine.available_optimizers():
        result.errors.append(f"Optimizer '{config.optimizer}' is not available")
    if config.regularizer not in engine.available_regularizers():
        result.errors.append(f"Regularizer '{config.regularizer}' is not available")
    return result


def validate_all(
    graph: ConnectionGraph,
    engine: LayerEngine,
    config: Optional[TrainingConfig] = None,
) -> ValidationResult:
    """Structure, layer capabilities and (if given) training settings in one report."""
    result = graph.validate_network()
    result.extend(validate_layers(graph, engine))
    if config is not None:
        result.extend(validate_training(config, engine))
    if not result.is_valid:
        logger.debug(f"Validation of '{graph.name}' found {len(result.errors)} error(s)")
    return result
