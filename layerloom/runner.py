"""Config-driven execution — validate, compile, draw or train a saved graph.

Usage::

    # From Python
    from layerloom.runner import Runner
    report = Runner.validate("graph.yaml")
    trainer = Runner.train("graph.yaml", "data.yaml")

    # From command line
    python -m layerloom.runner graph.yaml --validate
    python -m layerloom.runner graph.yaml --compile
    python -m layerloom.runner graph.yaml --mermaid
    python -m layerloom.runner graph.yaml --train data.yaml --config training.yaml

A data file holds ``inputs`` and ``targets`` (one row per sample) and may
carry a ``training`` section with ``TrainingConfig`` fields::

    inputs: [[0, 0], [0, 1], [1, 0], [1, 1]]
    targets: [[0], [1], [1], [0]]
    training:
      epochs: 200
      optimizer: Adam
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from omegaconf import OmegaConf

logger = logging.getLogger(__name__)


class Runner:
    """Run the graph tool chain on files."""

    @staticmethod
    def validate(graph_path: str | Path, with_engine: bool = True) -> Dict[str, Any]:
        """Validate a graph file without building it.

        Returns:
            Dict with 'valid' (bool), 'errors', 'warnings' and 'info'.
        """
        from layerloom.core.graph.serialization import GraphLoadError, graph_summary, load_graph

        try:
            graph = load_graph(graph_path)
        except GraphLoadError as e:
            return {"valid": False, "errors": [f"{type(e).__name__}: {e}"], "warnings": [], "info": {}}

        if with_engine:
            from layerloom.engine.torch_engine import TorchEngine
            from layerloom.validation import validate_all
            result = validate_all(graph, TorchEngine(device="cpu"))
        else:
            result = graph.validate_network()
        return {
            "valid": result.is_valid,
            "errors": list(result.errors),
            "warnings": list(result.warnings),
            "info": {
                "name": graph.name,
                "nodes": len(graph),
                "edges": len(graph.edges()),
                "inputs": [n.name for n in graph.input_nodes()],
                "outputs": [n.name for n in graph.output_nodes()],
                "summary": graph_summary(graph),
            },
        }

    @staticmethod
    def compile(graph_path: str | Path) -> List[Dict[str, Any]]:
        """Compiled tree of a graph file as plain dicts."""
        from layerloom.core.graph.compiler import GraphCompiler
        from layerloom.core.graph.serialization import load_graph

        forest = GraphCompiler().compile(load_graph(graph_path))
        return [composite.to_dict() for composite in forest]

    @staticmethod
    def mermaid(graph_path: str | Path, compiled: bool = False) -> str:
        from layerloom.core.graph.compiler import GraphCompiler
        from layerloom.core.graph.serialization import load_graph
        from layerloom.tools.graph_visualizer import forest_to_mermaid, graph_to_mermaid

        graph = load_graph(graph_path)
        if compiled:
            return forest_to_mermaid(GraphCompiler().compile(graph), title=graph.name)
        return graph_to_mermaid(graph)

    @staticmethod
    def load_data(data_path: str | Path) -> Dict[str, Any]:
        path = Path(data_path)
        if path.suffix.lower() == ".json":
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            data = OmegaConf.to_container(OmegaConf.load(path), resolve=True)
        if not isinstance(data, dict) or "inputs" not in data or "targets" not in data:
            raise ValueError(f"Data file {path} must define 'inputs' and 'targets'")
        return data

    @staticmethod
    def train(
        graph_path: str | Path,
        data_path: str | Path,
        config_path: Optional[str | Path] = None,
        device: str = "auto",
        **overrides,
    ):
        """Build the graph on a ``TorchEngine`` and fit it to the data file.

        Returns:
            The ``NetworkTrainer`` with its loss histories.
        """
        from layerloom.core.graph.serialization import load_graph
        from layerloom.engine.base import EngineError
        from layerloom.engine.lowering import build_network
        from layerloom.engine.torch_engine import TorchEngine
        from layerloom.training.config import TrainingConfig
        from layerloom.validation import validate_all

        graph = load_graph(graph_path)
        data = Runner.load_data(data_path)

        settings = dict(data.get("training") or {})
        if config_path is not None:
            settings.update(TrainingConfig.from_yaml(config_path).to_dict())
        settings.update(overrides)
        config = TrainingConfig.from_dict(settings)

        engine = TorchEngine(device=device, seed=config.seed)
        report = validate_all(graph, engine, config)
        for warning in report.warnings:
            logger.warning(warning)
        if not report.is_valid:
            raise EngineError("Cannot train:\n" + "\n".join(f"  - {e}" for e in report.errors))

        build_network(graph, engine)
        logger.info(f"Training '{graph.name}' for {config.epochs} epoch(s)")
        return engine.fit(data["inputs"], data["targets"], config)


# CLI entry point
def main(argv: Optional[List[str]] = None):
    import argparse

    parser = argparse.ArgumentParser(
        description="layerloom graph runner",
        usage="python -m layerloom.runner <graph.yaml> [--validate | --compile | --mermaid | --train data.yaml]",
    )
    parser.add_argument("graph", help="Path to graph file (YAML or JSON)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--validate", action="store_true", help="Only validate, don't build")
    mode.add_argument("--compile", action="store_true", help="Print the compiled layer tree")
    mode.add_argument("--mermaid", action="store_true", help="Print a Mermaid diagram")
    mode.add_argument("--train", metavar="DATA", help="Train on a data file (YAML or JSON)")
    parser.add_argument("--compiled", action="store_true", help="With --mermaid: draw the compiled tree")
    parser.add_argument("--config", "-c", help="Training config YAML")
    parser.add_argument("--epochs", type=int, help="Override number of epochs")
    parser.add_argument("--seed", type=int, help="Override random seed")
    parser.add_argument("--device", default="auto", help="torch device (auto, cpu, cuda)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    if args.compile or args.mermaid:
        from layerloom.core.graph.compiler import CompilationError
        from layerloom.core.graph.serialization import GraphLoadError

        try:
            if args.compile:
                output = OmegaConf.to_yaml(OmegaConf.create({"layers": Runner.compile(args.graph)}))
            else:
                output = Runner.mermaid(args.graph, compiled=args.compiled)
        except CompilationError as e:
            _print_errors(e.result.errors)
            return 1
        except GraphLoadError as e:
            _print_errors([f"{type(e).__name__}: {e}"])
            return 1
        print(output)
        return 0
    if args.train:
        overrides = {}
        if args.epochs is not None:
            overrides["epochs"] = args.epochs
        if args.seed is not None:
            overrides["seed"] = args.seed
        trainer = Runner.train(args.graph, args.train, args.config, device=args.device, **overrides)
        if trainer.train_losses:
            print(f"Done. {trainer.epoch} epoch(s), final loss {trainer.train_losses[-1]:.6f}")
        return 0

    result = Runner.validate(args.graph)
    for msg in result["warnings"]:
        print(f"warning: {msg}")
    if result["valid"]:
        info = result["info"]
        print(f"Graph '{info['name']}' is valid: {info['nodes']} nodes, {info['edges']} edges")
        for line in info["summary"]:
            print(f"  {line}")
        return 0
    _print_errors(result["errors"])
    return 1


def _print_errors(errors: List[str]) -> None:
    print("Graph has errors:")
    for msg in errors:
        print(f"  - {msg}")


if __name__ == "__main__":
    raise SystemExit(main())
