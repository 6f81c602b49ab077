# layerloom/core/graph/compiler.py
"""Graph Compiler — lowers a ConnectionGraph into a tree of composite layers.

A composite layer is either node-backed (a real layer followed by its
children in sequence), a parallel group (branches combined by a named
reduction) or a plain sequence standing in for one parallel branch.
Branches that fan out are folded at their first convergence point: the
first node reached from two or more branches with no other convergence
point upstream of it. A folded group is itself a branch and may converge
again further down.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from ..layer.spec import DEFAULT_MERGE_REDUCTION
from .graph import ConnectionGraph, ValidationResult
from .node import LayerNode

logger = logging.getLogger(__name__)

PARALLEL_TYPE = "parallel"
IDENTITY_TYPE = "LayerIdentity"
SEQUENCE_TYPE = "sequence"


class CompilationError(ValueError):
    """Raised when a graph with validation errors is compiled."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__(
            "Invalid network structure:\n" + "\n".join(f"  - {e}" for e in result.errors)
        )


@dataclass(eq=False)
class CompositeLayer:
    """Node of the compiled tree.

    Attributes:
        layer_type: Type tag, ``"parallel"`` or ``"sequence"`` for structural
            composites.
        node: Originating graph node, ``None`` for structural composites.
        reduction: Set for parallel groups only.
        children: Node-backed: layers that follow this one in sequence.
            Parallel: one branch per child.
            Sequence: layers applied in order.
        body: Compiled subgraph of a special node.
    """
    layer_type: str
    node: Optional[LayerNode] = None
    reduction: Optional[str] = None
    children: List["CompositeLayer"] = field(default_factory=list)
    body: List["CompositeLayer"] = field(default_factory=list)

    @property
    def is_parallel(self) -> bool:
        return self.reduction is not None

    @property
    def is_sequence(self) -> bool:
        return self.node is None and self.layer_type == SEQUENCE_TYPE

    @property
    def numeric_params(self) -> List[float]:
        return list(self.node.numeric_params) if self.node is not None else []

    @property
    def string_params(self) -> List[str]:
        return list(self.node.string_params) if self.node is not None else []

    @property
    def label(self) -> str:
        if self.node is not None:
            return self.node.name
        if self.is_parallel:
            return f"{self.layer_type}[{self.reduction}]"
        return self.layer_type

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.layer_type}
        if self.node is not None:
            data["node"] = self.node.name
            if self.node.string_params:
                data["string_params"] = list(self.node.string_params)
            if self.node.numeric_params:
                data["numeric_params"] = list(self.node.numeric_params)
        if self.reduction is not None:
            data["reduction"] = self.reduction
        if self.body:
            data["body"] = [c.to_dict() for c in self.body]
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data

    def walk(self):
        """Yield this composite and every descendant (children and body), depth-first."""
        yield self
        for child in self.body:
            yield from child.walk()
        for child in self.children:
            yield from child.walk()


# Partially folded branch: composites built so far, node it continues at.
Branch = Tuple[List[CompositeLayer], Optional[LayerNode]]


class GraphCompiler:
    """Compile a validated ``ConnectionGraph`` into a forest of ``CompositeLayer``.

    The compiler keeps no state between calls; memoisation lives only for
    the duration of one ``compile``.
    """

    def __init__(self):
        self._graph: Optional[ConnectionGraph] = None
        self._memo: Dict[Tuple[int, FrozenSet[int]], CompositeLayer] = {}

    def compile(self, graph: ConnectionGraph) -> List[CompositeLayer]:
        result = graph.validate_network()
        if not result.is_valid:
            raise CompilationError(result)
        for warning in result.warnings:
            logger.warning(warning)

        self._graph = graph
        self._memo = {}
        try:
            forest = self._compile_roots(graph.input_nodes())
        finally:
            self._graph = None
            self._memo = {}
        logger.debug(f"Compiled '{graph.name}' into {len(forest)} top-level layer(s)")
        return forest

    # ==================== ROOTS ====================

    def _compile_roots(self, roots: Sequence[LayerNode]) -> List[CompositeLayer]:
        if not roots:
            return []
        if len(roots) == 1:
            return [self._expand(roots[0], frozenset())]
        if not self._first_convergence(roots, frozenset()):
            parallel = CompositeLayer(PARALLEL_TYPE, reduction=DEFAULT_MERGE_REDUCTION)
            parallel.children = [self._expand(r, frozenset()) for r in roots]
            return [parallel]
        return self._assemble(roots, frozenset())

    # ==================== EXPANSION ====================

    def _expand(self, node: LayerNode, stop: FrozenSet[LayerNode]) -> CompositeLayer:
        key = (node.node_id, frozenset(n.node_id for n in stop))
        if key in self._memo:
            return self._memo[key]

        composite = CompositeLayer(node.layer_type, node=node)
        self._memo[key] = composite
        if node.is_special:
            composite.body = self._compile_roots(self._graph.subgraph_entries(node))

        successors = [s for s in self._graph.successors(node) if s not in stop]
        if len(successors) == 1:
            composite.children.append(self._expand(successors[0], stop))
        elif len(successors) > 1:
            composite.children.extend(self._assemble(successors, stop))
        return composite

    def _assemble(self, starts: Sequence[LayerNode], stop: FrozenSet[LayerNode]) -> List[CompositeLayer]:
        """Fold fanned-out branches at their convergence points, first point first.

        A branch is ``(built, head)``: the composites it has collected so far
        and the node it continues at, ``None`` once it ends. Folding a group
        replaces its branches by one branch, which may converge again further
        down. Side exits of a group start new branches. Branches left at the
        end follow each other in start order.
        """
        branches: List[Branch] = [([], start) for start in starts]
        while True:
            live = [i for i, (_, head) in enumerate(branches) if head is not None]
            groups = self._first_convergence([branches[i][1] for i in live], stop)
            if not groups:
                break
            point, members = groups[0]
            indices = sorted(live[m] for m in members)
            folded, exits = self._group(point, [branches[i] for i in indices], stop)
            branches[indices[0]] = folded
            for i in reversed(indices[1:]):
                del branches[i]
            branches.extend(([], node) for node in exits)

        out: List[CompositeLayer] = []
        for built, head in branches:
            out.extend(built)
            if head is not None:
                out.append(self._expand(head, stop))
        return out

    def _group(
        self,
        point: LayerNode,
        members: List[Branch],
        stop: FrozenSet[LayerNode],
    ) -> Tuple[Branch, List[LayerNode]]:
        """Fold ``members`` at ``point``.

        Each branch keeps only the nodes that lead to ``point``. Successors
        that leave that path are returned as exits, in discovery order.
        """
        feeding = self._ancestors(point, stop)
        children = []
        exits: List[LayerNode] = []
        for built, head in members:
            seq = list(built)
            if head is not point:
                reach = self._reach(head, stop | {point})
                off_path = reach - feeding
                for node in sorted(reach & feeding, key=lambda n: n.node_id):
                    for nxt in self._graph.successors(node):
                        if nxt in off_path and nxt not in exits:
                            exits.append(nxt)
                seq.append(self._expand(head, stop | {point} | off_path))
            children.append(_as_branch(seq))

        if point.is_merge:
            group = CompositeLayer(point.layer_type, node=point, reduction=point.reduction, children=children)
            following = [s for s in self._graph.successors(point) if s not in stop]
            if len(following) == 1:
                return ([group], following[0]), exits
            if following:
                return ([group] + self._assemble(following, stop), None), exits
            return ([group], None), exits

        # plain convergence node: concatenate, then run the node itself
        group = CompositeLayer(PARALLEL_TYPE, reduction=DEFAULT_MERGE_REDUCTION, children=children)
        return ([group], point), exits

    # ==================== CONVERGENCE ====================

    def _reach(self, start: LayerNode, stop: FrozenSet[LayerNode]) -> Set[LayerNode]:
        """Forward reach of ``start`` (inclusive) that does not enter ``stop``."""
        visited = {start}
        frontier = [start]
        while frontier:
            current = frontier.pop()
            for nxt in self._graph.successors(current):
                if nxt not in visited and nxt not in stop:
                    visited.add(nxt)
                    frontier.append(nxt)
        return visited

    def _ancestors(self, point: LayerNode, stop: FrozenSet[LayerNode]) -> Set[LayerNode]:
        """Nodes with a primary path to ``point`` (inclusive) that avoids ``stop``."""
        visited = {point}
        frontier = [point]
        while frontier:
            current = frontier.pop()
            for prev in self._graph.predecessors(current):
                if prev not in visited and prev not in stop:
                    visited.add(prev)
                    frontier.append(prev)
        return visited

    def _first_convergence(
        self,
        heads: Sequence[LayerNode],
        stop: FrozenSet[LayerNode],
    ) -> List[Tuple[LayerNode, List[int]]]:
        """``(point, contributing head indices)`` for each first convergence point.

        A point is first when no other convergence point lies on a path from
        one of its contributors to it. Ordered by the graph's topological
        order so results are deterministic.
        """
        reach = [self._reach(head, stop) for head in heads]
        contributors: Dict[LayerNode, List[int]] = {}
        for i, nodes in enumerate(reach):
            for node in nodes:
                contributors.setdefault(node, []).append(i)
        candidates = [node for node, idx in contributors.items() if len(idx) > 1]

        downstream: Dict[LayerNode, Set[LayerNode]] = {}
        first = []
        for point in candidates:
            earlier = False
            for other in candidates:
                if other is point:
                    continue
                if other not in downstream:
                    downstream[other] = self._reach(other, stop)
                if point in downstream[other] and any(other in reach[i] for i in contributors[point]):
                    earlier = True
                    break
            if not earlier:
                first.append(point)

        order = {node: i for i, node in enumerate(self._graph.topological_order())}
        first.sort(key=lambda n: order[n])
        return [(point, contributors[point]) for point in first]


def _as_branch(seq: List[CompositeLayer]) -> CompositeLayer:
    """One composite per parallel branch: identity, the sole layer, or a sequence."""
    if not seq:
        return CompositeLayer(IDENTITY_TYPE)
    if len(seq) == 1:
        return seq[0]
    return CompositeLayer(SEQUENCE_TYPE, children=seq)


def compile_graph(graph: ConnectionGraph) -> List[CompositeLayer]:
    return GraphCompiler().compile(graph)
