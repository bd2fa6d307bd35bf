"""Tests for core/graph_cleanup.py"""

from core.graph_cleanup import (
    break_cycles,
    clean_graph,
    drop_orphan_edges,
    inject_mandatory_edges,
    strip_bidirectional_edges,
    transitive_reduce,
)
from core.knowledge_graph import SkillEdge
from conftest import make_graph


def _keys(edges):
    return [e.key for e in edges]


def test_strip_bidirectional_edges():
    edges = [SkillEdge("a", "b"), SkillEdge("b", "a"), SkillEdge("a", "a"), SkillEdge("a", "b")]
    assert _keys(strip_bidirectional_edges(edges)) == [("a", "b")]


def test_break_cycles_removes_last_listed_edge():
    edges = [SkillEdge("a", "b"), SkillEdge("b", "c"), SkillEdge("c", "a"), SkillEdge("c", "d")]
    assert _keys(break_cycles(edges)) == [("a", "b"), ("b", "c"), ("c", "d")]


def test_transitive_reduce_drops_shortcuts():
    edges = [SkillEdge("a", "b"), SkillEdge("b", "c"), SkillEdge("a", "c")]
    assert _keys(transitive_reduce(edges)) == [("a", "b"), ("b", "c")]
    assert transitive_reduce([]) == []


def test_drop_orphan_edges():
    edges = [SkillEdge("a", "b"), SkillEdge("a", "ghost")]
    assert _keys(drop_orphan_edges(["a", "b"], edges)) == [("a", "b")]


def test_inject_mandatory_edges_only_for_present_skills():
    edges = inject_mandatory_edges(["variable_assignment", "basic_input", "string_slicing"], [])
    assert _keys(edges) == [("variable_assignment", "basic_input")]
    assert edges[0].relationship_type == "requires"


def test_inject_mandatory_edges_skips_existing():
    existing = [SkillEdge("variable_assignment", "basic_input", "already there")]
    edges = inject_mandatory_edges(["variable_assignment", "basic_input"], existing)
    assert len(edges) == 1
    assert edges[0].reason == "already there"


def test_clean_graph_produces_levelled_dag():
    graph = make_graph(
        nodes=[{"id": i, "name": i} for i in "abc"],
        edges=[("a", "b"), ("b", "a"), ("b", "c"), ("c", "a"), ("a", "c"), ("c", "ghost")],
    )

    clean_graph(graph)

    stats = graph.get_stats()
    assert stats["is_dag"] is True
    assert _keys(graph.edges) == [("a", "b"), ("b", "c")]
    assert {n.id: n.level for n in graph.nodes} == {"a": 0, "b": 1, "c": 2}
