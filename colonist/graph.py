"""
Dependency graph over bound executions.

Nodes live in an arena and are addressed by their index; adjacency is kept as plain lists
of indices in both directions. Cycle detection and the batch partition are computed in
one pass of Kahn's in-degree reduction
"""

import logging
from dataclasses import dataclass
from typing import Iterator

import networkx as nx

from colonist.core import BoundExecution
from colonist.errors import ConfigInvalid, CyclicDependency, DependencyNotFound

logger = logging.getLogger(__name__)

NodeId = int


@dataclass(frozen=True)
class ExecutionGraph:
    nodes: list[BoundExecution]
    dependencies: list[list[NodeId]]  # node -> nodes it runs after
    dependants: list[list[NodeId]]  # node -> nodes running after it
    levels: list[int]  # 0 for no dependencies, else 1 + max level of dependencies

    def __len__(self) -> int:
        return len(self.nodes)

    def batches(self) -> list[list[BoundExecution]]:
        """Partition such that batch i depends only on batches 0..i-1, no edges within a batch"""
        rv: list[list[BoundExecution]] = [[] for _ in range(max(self.levels, default=-1) + 1)]
        for i, node in enumerate(self.nodes):
            rv[self.levels[i]].append(node)
        return rv

    def batch_ids(self) -> Iterator[list[NodeId]]:
        for level in range(max(self.levels, default=-1) + 1):
            yield [i for i, lvl in enumerate(self.levels) if lvl == level]

    def downstream(self, node: NodeId) -> set[NodeId]:
        """All nodes depending on `node`, directly or transitively"""
        rv: set[NodeId] = set()
        todo = list(self.dependants[node])
        while todo:
            head = todo.pop()
            if head not in rv:
                rv.add(head)
                todo.extend(self.dependants[head])
        return rv

    def serialise(self) -> dict:
        """Plain representation for diagnostics"""
        return {
            "nodes": [node.name for node in self.nodes],
            "edges": [
                [self.nodes[d].name, self.nodes[i].name]
                for i, deps in enumerate(self.dependencies)
                for d in deps
            ],
            "batches": [[node.name for node in batch] for batch in self.batches()],
        }

    def to_networkx(self) -> nx.DiGraph:
        """Edges point from a dependency to its dependant"""
        g = nx.DiGraph()
        for i, node in enumerate(self.nodes):
            g.add_node(node.name, execution=node, level=self.levels[i])
        for i, deps in enumerate(self.dependencies):
            g.add_edges_from((self.nodes[d].name, self.nodes[i].name) for d in deps)
        return g

    def to_dot(self) -> str:
        """Graphviz source, one rank per batch"""
        g = self.to_networkx()
        lines = ["digraph colony {", "  rankdir=LR;"]
        for generation in nx.topological_generations(g):
            names = " ".join(f'"{name}";' for name in sorted(generation))
            lines.append(f"  {{ rank=same; {names} }}")
        lines.extend(f'  "{src}" -> "{dst}";' for src, dst in g.edges)
        lines.append("}")
        return "\n".join(lines)


def _find_cycle(residual: set[NodeId], dependencies: list[list[NodeId]]) -> list[NodeId]:
    # every residual node still has a residual dependency, so walking those edges must
    # eventually revisit a node
    head = min(residual)
    path: list[NodeId] = []
    position: dict[NodeId, int] = {}
    while head not in position:
        position[head] = len(path)
        path.append(head)
        head = next(d for d in dependencies[head] if d in residual)
    cycle = path[position[head]:] + [head]
    # reported in "runs after" order, ie, a -> b means a depends on b
    return cycle


def build_graph(executions: list[BoundExecution]) -> ExecutionGraph:
    index: dict[str, NodeId] = {}
    for i, execution in enumerate(executions):
        if execution.name in index:
            raise ConfigInvalid([f"module {execution.name} appears in more than one execution"])
        index[execution.name] = i

    dependencies: list[list[NodeId]] = [[] for _ in executions]
    dependants: list[list[NodeId]] = [[] for _ in executions]
    for i, execution in enumerate(executions):
        for name in execution.module.depends_on:
            if name not in index:
                raise DependencyNotFound(execution.name, name)
            d = index[name]
            if d not in dependencies[i]:
                dependencies[i].append(d)
                dependants[d].append(i)

    remaining = [len(deps) for deps in dependencies]
    levels = [0] * len(executions)
    queue = [i for i, count in enumerate(remaining) if count == 0]
    visited = 0
    while queue:
        head = queue.pop()
        visited += 1
        for child in dependants[head]:
            levels[child] = max(levels[child], levels[head] + 1)
            remaining[child] -= 1
            if remaining[child] == 0:
                queue.append(child)

    if visited != len(executions):
        residual = {i for i, count in enumerate(remaining) if count > 0}
        cycle = _find_cycle(residual, dependencies)
        raise CyclicDependency([executions[i].name for i in cycle])

    graph = ExecutionGraph(
        nodes=list(executions),
        dependencies=dependencies,
        dependants=dependants,
        levels=levels,
    )
    logger.debug(f"built graph with {len(graph)} executions in {max(levels, default=-1) + 1} batches")
    return graph
