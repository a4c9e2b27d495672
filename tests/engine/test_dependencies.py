"""Tests for the section dependency graph."""

from study_editor.engine.dependencies import DependencyGraph
from study_editor.models.section import ContentSection, SectionType


def _section(section_id: str, *deps: str) -> ContentSection:
    return ContentSection(id=section_id, type=SectionType.TEXT, content="x", dependencies=list(deps))


class TestDependencyGraph:
    """Test dependency queries over a material's sections."""

    def test_dependents(self) -> None:
        """List the sections that depend on a section."""
        graph = DependencyGraph([_section("a"), _section("b", "a"), _section("c", "a")])

        assert graph.dependents("a") == ["b", "c"]
        assert graph.dependents("b") == []
        assert graph.dependents("missing") == []

    def test_missing_references(self) -> None:
        """Report dependencies on sections that do not exist."""
        graph = DependencyGraph([_section("a", "ghost")])

        assert graph.missing_references() == [("a", "ghost")]
        assert "ghost" not in graph

    def test_acyclic_graph_has_no_cycle(self) -> None:
        """Return None for a chain."""
        graph = DependencyGraph([_section("a"), _section("b", "a"), _section("c", "b")])

        assert graph.find_cycle() is None

    def test_finds_multi_node_cycle(self) -> None:
        """Detect a cycle spanning three sections."""
        graph = DependencyGraph([_section("a", "c"), _section("b", "a"), _section("c", "b")])

        assert set(graph.find_cycle()) == {"a", "b", "c"}

    def test_with_dependencies_replaces_edges(self) -> None:
        """Swap one section's dependencies without touching the original."""
        graph = DependencyGraph([_section("a"), _section("b", "a")])

        proposed = graph.with_dependencies("a", ["b"])

        assert proposed.find_cycle() is not None
        assert graph.find_cycle() is None

    def test_with_dependencies_adds_new_node(self) -> None:
        """Place a not-yet-existing section in the graph."""
        graph = DependencyGraph([_section("a")])

        proposed = graph.with_dependencies("new", ["a", "ghost"])

        assert proposed.dependents("a") == ["new"]
        assert proposed.missing_references() == [("new", "ghost")]

    def test_cycle_breaking_edges(self) -> None:
        """Remove just enough edges to make the graph acyclic."""
        graph = DependencyGraph([_section("a", "b"), _section("b", "a"), _section("c", "c")])

        removed = graph.cycle_breaking_edges()

        assert ("c", "c") in removed
        assert len(removed) == 2
