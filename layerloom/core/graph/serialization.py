# layerloom/core/graph/serialization.py
"""Graph persistence: config dict, JSON and YAML.

Every port connection is stored as a ``[node_id, port_index]`` pair, where
port index 0 is the primary input, 1 the primary output and 2+ the
auxiliary ports in the order the layer type declares them. Loading
re-links ports directly so the reconstructed graph is identical to the
saved one, including edges that ``connect`` would no longer accept.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from omegaconf import OmegaConf

from .graph import ConnectionGraph
from .node import LayerNode
from .port import link

logger = logging.getLogger(__name__)

GRAPH_CONFIG_SCHEMA_VERSION = "1.0"
_YAML_SUFFIXES = (".yaml", ".yml")


class GraphLoadError(ValueError):
    """Malformed or incomplete graph data."""


def _node_to_config(node: LayerNode) -> Dict[str, Any]:
    return {
        "id": node.node_id,
        "name": node.name,
        "type": node.layer_type,
        "position": [node.position[0], node.position[1]],
        "string_params": list(node.string_params),
        "numeric_params": list(node.numeric_params),
        "special": node.is_special,
        "ports": [
            [[peer.node.node_id, peer.node.port_index(peer)] for peer in port.connected]
            for port in node.ports
        ],
    }


def graph_to_config(graph: ConnectionGraph) -> Dict[str, Any]:
    """Plain dict description of ``graph`` (nodes, parameters, connections)."""
    return {
        "schema_version": GRAPH_CONFIG_SCHEMA_VERSION,
        "name": graph.name,
        "nodes": [_node_to_config(node) for node in graph.nodes],
    }


def graph_from_config(config: Mapping[str, Any]) -> ConnectionGraph:
    """Rebuild a graph from ``graph_to_config`` output.

    Raises:
        GraphLoadError: on missing fields, unknown node references, bad port
            indices or connections that do not pair an output with an input.
    """
    if OmegaConf.is_config(config):
        config = OmegaConf.to_container(config, resolve=True)
    if not isinstance(config, Mapping):
        raise GraphLoadError(f"Graph config must be a mapping, got {type(config).__name__}")
    version = str(config.get("schema_version", GRAPH_CONFIG_SCHEMA_VERSION))
    if version != GRAPH_CONFIG_SCHEMA_VERSION:
        logger.warning(f"Graph config schema_version {version} differs from {GRAPH_CONFIG_SCHEMA_VERSION}")
    nodes_cfg = config.get("nodes")
    if not isinstance(nodes_cfg, list):
        raise GraphLoadError("Graph config has no 'nodes' list")

    graph = ConnectionGraph(name=str(config.get("name", "network")))
    for i, cfg in enumerate(nodes_cfg):
        try:
            node = graph.add_node(
                cfg["type"],
                string_params=cfg.get("string_params") or (),
                numeric_params=cfg.get("numeric_params") or (),
                position=tuple(cfg.get("position") or (0.0, 0.0)),
                name=cfg.get("name"),
                node_id=int(cfg["id"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GraphLoadError(f"Invalid node entry #{i}: {e}") from e
        if "special" in cfg and bool(cfg["special"]) != node.is_special:
            raise GraphLoadError(
                f"Node '{node.name}' is stored as special={cfg['special']} but "
                f"'{node.layer_type}' is {'special' if node.is_special else 'plain'}"
            )

    for cfg in nodes_cfg:
        node = graph.get_node(int(cfg["id"]))
        ports_cfg = cfg.get("ports") or []
        if len(ports_cfg) > len(node.ports):
            raise GraphLoadError(
                f"Node '{node.name}' lists {len(ports_cfg)} ports but has {len(node.ports)}"
            )
        for port, peers in zip(node.ports, ports_cfg):
            for ref in peers:
                peer = _resolve_port(graph, ref, node)
                if peer.node is node or peer.direction is port.direction:
                    raise GraphLoadError(
                        f"Invalid connection {node.name}.{port.name} <-> {peer.node.name}.{peer.name}"
                    )
                link(port, peer)
    return graph


def _resolve_port(graph: ConnectionGraph, ref: Any, owner: LayerNode):
    try:
        node_id, port_index = int(ref[0]), int(ref[1])
    except (TypeError, ValueError, IndexError) as e:
        raise GraphLoadError(f"Malformed connection {ref!r} on node '{owner.name}'") from e
    try:
        peer_node = graph.get_node(node_id)
    except KeyError as e:
        raise GraphLoadError(f"Node '{owner.name}' references unknown node id {node_id}") from e
    if not 0 <= port_index < len(peer_node.ports):
        raise GraphLoadError(f"Node '{peer_node.name}' has no port #{port_index}")
    return peer_node.ports[port_index]


# ==================== FILES ====================

def save_graph(graph: ConnectionGraph, path: Union[str, Path]) -> Path:
    """Write ``graph`` as YAML (``.yaml``/``.yml``) or JSON (anything else)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = graph_to_config(graph)
    if path.suffix.lower() in _YAML_SUFFIXES:
        OmegaConf.save(OmegaConf.create(data), path)
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    logger.info(f"Saved graph '{graph.name}' ({len(graph)} nodes) to {path}")
    return path


def load_graph(path: Union[str, Path]) -> ConnectionGraph:
    path = Path(path)
    if not path.exists():
        raise GraphLoadError(f"Graph file not found: {path}")
    try:
        if path.suffix.lower() in _YAML_SUFFIXES:
            data = OmegaConf.to_container(OmegaConf.load(path), resolve=True)
        else:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
    except Exception as e:
        raise GraphLoadError(f"Cannot read graph file {path}: {e}") from e
    return graph_from_config(data)


def graph_summary(graph: ConnectionGraph) -> List[str]:
    """One line per node: ``name (type) -> successors``."""
    lines = []
    for node in graph.nodes:
        succ = ", ".join(n.name for n in graph.successors(node)) or "-"
        lines.append(f"{node.name} ({node.layer_type}) -> {succ}")
    return lines
