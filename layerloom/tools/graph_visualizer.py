"""Graph visualizer -- generate Mermaid diagrams of connection graphs and compiled trees.

Usage:
    python -m layerloom.tools.graph_visualizer graph.yaml --compiled -o graph.md
"""
from __future__ import annotations

import argparse
from typing import List, Sequence

from ..core.graph.compiler import CompositeLayer, GraphCompiler
from ..core.graph.graph import ConnectionGraph


def _safe_id(s: str) -> str:
    """Convert string to a valid Mermaid node ID."""
    return s.replace("/", "_").replace("-", "_").replace(" ", "_").replace(".", "_")


def graph_to_mermaid(graph: ConnectionGraph, title: str = None) -> str:
    """Mermaid flowchart of ``graph``.

    Primary edges are solid arrows; edges touching an auxiliary port are
    dotted and labelled with the port name. Special nodes are drawn as
    subroutine boxes.
    """
    title = title or graph.name
    lines = ["graph TB"]
    lines.append(f"    subgraph {_safe_id(title)} [{title}]")
    for node in graph.nodes:
        node_id = f"n{node.node_id}"
        label = f"{node.name}<br/>{node.layer_type}"
        if node.is_special:
            lines.append(f"        {node_id}[[{label}]]")
        else:
            lines.append(f"        {node_id}[{label}]")
    for out_port, in_port in graph.edges():
        src = f"n{out_port.node.node_id}"
        dst = f"n{in_port.node.node_id}"
        if out_port.auxiliary or in_port.auxiliary:
            port = out_port if out_port.auxiliary else in_port
            lines.append(f"        {src} -.->|{port.name}| {dst}")
        else:
            lines.append(f"        {src} --> {dst}")
    lines.append("    end")
    return "\n".join(lines)


def forest_to_mermaid(forest: Sequence[CompositeLayer], title: str = "Compiled") -> str:
    """Mermaid diagram of a compiled composite tree.

    Sequence links are solid, parallel branches are labelled with the
    reduction, special bodies are dotted.
    """
    lines = ["graph TB"]
    lines.append(f"    subgraph {_safe_id(title)} [{title}]")
    ids = {}

    def _node(composite: CompositeLayer) -> str:
        key = id(composite)
        if key in ids:
            return ids[key]
        cid = f"c{len(ids)}"
        ids[key] = cid
        if composite.is_parallel:
            lines.append(f"        {cid}{{{{{composite.label}}}}}")
        else:
            lines.append(f"        {cid}[{composite.label}]")
        for child in composite.body:
            lines.append(f"        {cid} -.->|body| {_node(child)}")
        for i, child in enumerate(composite.children):
            child_id = _node(child)
            if composite.is_parallel:
                lines.append(f"        {cid} -->|branch {i}| {child_id}")
            else:
                lines.append(f"        {cid} --> {child_id}")
        return cid

    previous = None
    for composite in forest:
        cid = _node(composite)
        if previous is not None:
            lines.append(f"        {previous} ==> {cid}")
        previous = cid
    lines.append("    end")
    return "\n".join(lines)


def main(argv: List[str] = None):
    from ..core.graph.serialization import load_graph

    parser = argparse.ArgumentParser(description="layerloom Graph Visualizer")
    parser.add_argument("graph", help="Path to a saved graph (.yaml/.yml/.json)")
    parser.add_argument("--output", "-o", help="Output file path", default="graph.md")
    parser.add_argument("--compiled", action="store_true", help="Draw the compiled tree instead of the graph")

    args = parser.parse_args(argv)
    graph = load_graph(args.graph)
    if args.compiled:
        diagram = forest_to_mermaid(GraphCompiler().compile(graph), title=graph.name)
    else:
        diagram = graph_to_mermaid(graph)

    output = f"```mermaid\n{diagram}\n```"

    with open(args.output, "w") as f:
        f.write(output)

    print(f"Graph saved to {args.output}")
    print(diagram)


if __name__ == "__main__":
    main()
