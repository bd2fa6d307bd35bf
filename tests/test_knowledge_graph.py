"""Tests for core/knowledge_graph.py"""

from core.knowledge_graph import (
    KnowledgeGraph,
    QuestionPath,
    SkillNode,
    parse_question_path,
    question_path_nodes,
    remap_question_path,
)
from conftest import make_graph


def _chain():
    return make_graph(
        nodes=[{"id": "a", "name": "A", "tier": "foundational"},
               {"id": "b", "name": "B", "tier": "core"},
               {"id": "c", "name": "C", "tier": "core"}],
        edges=[("a", "b"), ("b", "c")],
        question_paths={"q1": ["a", "b"], "q2": {"requiredNodes": ["c"], "executionOrder": ["b", "c"]}},
    )


def test_from_dict_accepts_global_nodes():
    graph = KnowledgeGraph.from_dict({"globalNodes": [{"id": "x", "name": "X"}], "edges": []})
    assert graph.node_ids() == ["x"]


def test_nested_question_references_are_lifted():
    node = SkillNode.from_dict({
        "id": "x",
        "name": "X",
        "knowledgePoint": {"appearsInQuestions": ["q1", "q2"], "description": "d"},
    })
    assert node.appears_in_questions == ["q1", "q2"]
    assert node.extra["knowledgePoint"] == {"description": "d"}


def test_node_extras_survive_round_trip():
    data = {"id": "x", "name": "X", "tier": "core", "level": 2,
            "appearsInQuestions": ["q1"], "description": "loops"}
    assert SkillNode.from_dict(data).to_dict() == data


def test_graph_round_trip_keeps_path_shapes():
    graph = _chain()
    again = KnowledgeGraph.from_dict(graph.to_dict())
    assert again.to_dict() == graph.to_dict()
    assert isinstance(again.question_paths["q2"], QuestionPath)
    assert again.question_paths["q1"] == ["a", "b"]


def test_prerequisite_queries():
    graph = _chain()
    assert graph.get_prerequisites("c") == ["b"]
    assert graph.get_all_prerequisites("c") == {"a", "b"}
    assert graph.get_dependents("a") == ["b"]
    assert graph.get_all_dependents("a") == {"b", "c"}
    assert graph.get_prerequisites("missing") == []
    assert graph.topological_order() == ["a", "b", "c"]


def test_questions_for_node_reads_both_path_shapes():
    graph = _chain()
    assert graph.questions_for_node("b") == ["q1", "q2"]
    assert graph.questions_for_node("a") == ["q1"]


def test_recompute_levels_longest_path():
    graph = make_graph(
        nodes=[{"id": i, "name": i} for i in "abcd"],
        edges=[("a", "b"), ("b", "c"), ("a", "c"), ("d", "c")],
    )
    graph.recompute_levels()
    levels = {n.id: n.level for n in graph.nodes}
    assert levels == {"a": 0, "b": 1, "c": 2, "d": 0}


def test_recompute_levels_on_cycle_uses_components():
    graph = make_graph(
        nodes=[{"id": i, "name": i} for i in "abc"],
        edges=[("a", "b"), ("b", "a"), ("b", "c")],
    )
    graph.recompute_levels()
    levels = {n.id: n.level for n in graph.nodes}
    assert levels == {"a": 0, "b": 0, "c": 1}


def test_get_stats():
    stats = _chain().get_stats()
    assert stats["total_skills"] == 3
    assert stats["total_edges"] == 2
    assert stats["is_dag"] is True
    assert stats["max_depth"] == 2
    assert stats["skills_per_tier"] == {"foundational": 1, "core": 2}


def test_path_helpers():
    structured = parse_question_path({"requiredNodes": ["a", "b"], "executionOrder": ["b", "c"]})
    assert question_path_nodes(structured) == ["a", "b", "c"]

    remapped = remap_question_path(structured, {"b": "a"})
    assert remapped.required_nodes == ["a"]
    assert remapped.execution_order == ["a", "c"]

    assert remap_question_path(["a", "b", "c"], {"c": "a"}) == ["a", "b"]
