"""Section dependency graph.

Edges point from a dependency to the section that depends on it, so a valid
section order is a topological order of the graph.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import networkx as nx

if TYPE_CHECKING:
    from collections.abc import Iterable

    from study_editor.models.section import ContentSection


class DependencyGraph:
    """Adjacency view over the sections of one material."""

    def __init__(self, sections: Iterable[ContentSection]) -> None:
        self._graph = nx.DiGraph()
        self._missing: list[tuple[str, str]] = []
        sections = list(sections)
        self._graph.add_nodes_from(s.id for s in sections)
        for section in sections:
            self._set_dependencies(section.id, section.dependencies)

    def _set_dependencies(self, section_id: str, dependencies: Iterable[str]) -> None:
        for dep_id in dependencies:
            if dep_id in self._graph:
                self._graph.add_edge(dep_id, section_id)
            else:
                self._missing.append((section_id, dep_id))

    def with_dependencies(
        self, section_id: str, dependencies: Iterable[str]
    ) -> DependencyGraph:
        """Return a copy where ``section_id`` depends on exactly ``dependencies``."""
        clone = DependencyGraph.__new__(DependencyGraph)
        clone._graph = self._graph.copy()  # noqa: SLF001
        clone._missing = [m for m in self._missing if m[0] != section_id]  # noqa: SLF001
        if section_id in clone._graph:  # noqa: SLF001
            clone._graph.remove_edges_from(  # noqa: SLF001
                list(clone._graph.in_edges(section_id))  # noqa: SLF001
            )
        else:
            clone._graph.add_node(section_id)  # noqa: SLF001
        clone._set_dependencies(section_id, dependencies)  # noqa: SLF001
        return clone

    def __contains__(self, section_id: object) -> bool:
        return section_id in self._graph

    def dependents(self, section_id: str) -> list[str]:
        """Sections that list ``section_id`` as a dependency."""
        if section_id not in self._graph:
            return []
        return sorted(self._graph.successors(section_id))

    def missing_references(self) -> list[tuple[str, str]]:
        """``(section_id, dependency_id)`` pairs whose dependency does not exist."""
        return list(self._missing)

    def find_cycle(self) -> list[str] | None:
        """Return the section ids along one dependency cycle, if any."""
        try:
            edges = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return None
        return [source for source, _target in edges]

    def cycle_breaking_edges(self) -> list[tuple[str, str]]:
        """Edges ``(dependency_id, section_id)`` whose removal leaves the graph acyclic."""
        graph = self._graph.copy()
        removed: list[tuple[str, str]] = []
        while True:
            try:
                edges = nx.find_cycle(graph)
            except nx.NetworkXNoCycle:
                return removed
            source, target = edges[-1][0], edges[-1][1]
            graph.remove_edge(source, target)
            removed.append((source, target))
