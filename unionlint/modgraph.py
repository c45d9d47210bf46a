"""
unionlint.modgraph
==================

Module-dependency graph of one analysis run.

Facts flow from a declaring module to every module that imports it, so
modules are processed dependencies-first.  The graph is decomposed into
strongly connected components (Tarjan); import cycles, legal in some
hosts, collapse into one component whose members are scanned together
before any of them is checked.

Components are then grouped into *levels*: a level only depends on
lower levels (and on itself, for a cycle), so all modules of a level can
be scanned concurrently, then checked concurrently.

Typical usage::

    graph = ModuleGraph.from_program(program)
    for level in graph.levels():
        ...  # phase 1 for every module in level, then phase 2
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Set

from unionlint.model import Program


class ModuleGraph:
    """Directed graph: an edge ``a → b`` means module *a* imports *b*."""

    def __init__(self, edges: Mapping[str, Iterable[str]]) -> None:
        self.nodes: List[str] = sorted(edges)
        known = set(self.nodes)
        # Imports of modules outside the run carry no facts; drop them.
        self.edges: Dict[str, List[str]] = {
            node: sorted({dep for dep in edges[node] if dep in known and dep != node})
            for node in self.nodes
        }

    @classmethod
    def from_program(cls, program: Program) -> ModuleGraph:
        return cls({unit.name: unit.imports for unit in program})

    def dependencies(self, module: str) -> List[str]:
        return list(self.edges.get(module, []))

    def strongly_connected_components(self) -> List[List[str]]:
        """Tarjan's algorithm.

        Components come out dependencies-first: a module's component is
        emitted after the components of everything it imports.
        """
        index_counter = [0]
        stack: List[str] = []
        lowlink: Dict[str, int] = {}
        index: Dict[str, int] = {}
        on_stack: Set[str] = set()
        result: List[List[str]] = []

        def strongconnect(v: str) -> None:
            index[v] = index_counter[0]
            lowlink[v] = index_counter[0]
            index_counter[0] += 1
            stack.append(v)
            on_stack.add(v)

            for w in self.edges[v]:
                if w not in index:
                    strongconnect(w)
                    lowlink[v] = min(lowlink[v], lowlink[w])
                elif w in on_stack:
                    lowlink[v] = min(lowlink[v], index[w])

            if lowlink[v] == index[v]:
                scc: List[str] = []
                while True:
                    w = stack.pop()
                    on_stack.discard(w)
                    scc.append(w)
                    if w == v:
                        break
                result.append(sorted(scc))

        for v in self.nodes:
            if v not in index:
                strongconnect(v)

        return result

    def topological_order(self) -> List[str]:
        """All modules, every module after the modules it imports."""
        return [m for scc in self.strongly_connected_components() for m in scc]

    def levels(self) -> List[List[str]]:
        """Group modules into dependency levels, lowest first."""
        component_of: Dict[str, int] = {}
        level_of: List[int] = []
        for i, scc in enumerate(self.strongly_connected_components()):
            level = 0
            for member in scc:
                component_of[member] = i
            for member in scc:
                for dep in self.edges[member]:
                    j = component_of[dep]
                    if j != i:
                        level = max(level, level_of[j] + 1)
            level_of.append(level)

        grouped: Dict[int, List[str]] = {}
        for module, i in component_of.items():
            grouped.setdefault(level_of[i], []).append(module)
        return [sorted(grouped[lvl]) for lvl in sorted(grouped)]

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        n_edges = sum(len(v) for v in self.edges.values())
        return f"ModuleGraph({len(self.nodes)} modules, {n_edges} edges)"


__all__ = ["ModuleGraph"]
