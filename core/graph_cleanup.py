"""
Graph cleanup applied to generated skill graphs.

Generated prerequisite edges are noisy: the model returns both directions of
a relation, shortcut edges that are implied by longer chains, cycles, and
edges to skills it never defined. `clean_graph` turns a generated graph into
a DAG with recomputed levels.
"""

import logging
from typing import List, Sequence

import networkx as nx

from .knowledge_graph import KnowledgeGraph, SkillEdge

logger = logging.getLogger(__name__)


# Prerequisites every introductory programming graph must have when both
# skills are present
MANDATORY_EDGES = [
    ("variable_assignment", "basic_input", "input() requires storing the result in a variable"),
    ("variable_assignment", "type_conversion", "type conversion operates on values stored in variables"),
    ("variable_assignment", "string_concatenation", "concatenation operates on values in variables"),
    ("variable_assignment", "string_indexing", "indexing requires a string stored in a variable"),
    ("variable_assignment", "string_repetition", "repetition operates on strings in variables"),
    ("variable_assignment", "sequence_length_retrieval", "len() operates on values stored in variables"),
    ("type_recognition", "type_conversion", "must recognize types before converting between them"),
    ("arithmetic_operations", "comparison_operators", "comparisons often involve computed values"),
    ("comparison_operators", "conditional_branching", "conditions use comparison operators"),
    ("conditional_branching", "nested_conditions", "nesting requires understanding single conditions"),
    ("variable_assignment", "loop_iteration", "loops operate on variables"),
    ("loop_iteration", "accumulator_pattern", "accumulating requires looping"),
    ("loop_iteration", "search_pattern", "searching requires iterating"),
    ("string_indexing", "string_slicing", "slicing builds on indexing concepts"),
    ("conditional_branching", "filter_pattern", "filtering requires if/else logic"),
    ("basic_output", "formatted_output", "formatted output builds on basic print knowledge"),
    ("loop_iteration", "nested_iteration", "nested loops require understanding single loops"),
]


def inject_mandatory_edges(node_ids: Sequence[str], edges: Sequence[SkillEdge]) -> List[SkillEdge]:
    """Add missing MANDATORY_EDGES whose endpoints are both in node_ids."""
    known = set(node_ids)
    result = list(edges)
    existing = {e.key for e in result}
    for from_id, to_id, reason in MANDATORY_EDGES:
        if from_id in known and to_id in known and (from_id, to_id) not in existing:
            result.append(SkillEdge(from_id, to_id, reason, "requires"))
            existing.add((from_id, to_id))
            logger.info("Injected mandatory edge %s -> %s", from_id, to_id)
    return result


def strip_bidirectional_edges(edges: Sequence[SkillEdge]) -> List[SkillEdge]:
    """Drop self-loops, duplicates, and the second edge of any a->b / b->a pair."""
    seen = set()
    result = []
    for edge in edges:
        if edge.from_id == edge.to_id or edge.key in seen or (edge.to_id, edge.from_id) in seen:
            logger.warning("Stripped cycle/duplicate edge %s -> %s", edge.from_id, edge.to_id)
            continue
        seen.add(edge.key)
        result.append(edge)
    return result


def _edge_graph(edges: Sequence[SkillEdge]) -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_edges_from(e.key for e in edges)
    return graph


def break_cycles(edges: Sequence[SkillEdge]) -> List[SkillEdge]:
    """
    Remove edges until no cycle remains.

    From each detected cycle, the edge listed last in `edges` is removed.
    """
    result = list(edges)
    position = {e.key: i for i, e in enumerate(result)}
    graph = _edge_graph(result)

    while True:
        try:
            cycle = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            break
        victim = max(((u, v) for u, v in cycle), key=lambda k: position[k])
        logger.warning("Cycle breaking: removed %s -> %s", *victim)
        graph.remove_edge(*victim)

    kept = set(graph.edges())
    return [e for e in result if e.key in kept]


def transitive_reduce(edges: Sequence[SkillEdge]) -> List[SkillEdge]:
    """Remove a->c whenever c is reachable from a through other edges. Needs a DAG."""
    if not edges:
        return []
    reduced = nx.transitive_reduction(_edge_graph(edges))
    kept = set(reduced.edges())
    result = [e for e in edges if e.key in kept]
    if len(result) < len(edges):
        logger.info("Transitive reduction: %d -> %d edges", len(edges), len(result))
    return result


def drop_orphan_edges(node_ids: Sequence[str], edges: Sequence[SkillEdge]) -> List[SkillEdge]:
    known = set(node_ids)
    result = [e for e in edges if e.from_id in known and e.to_id in known]
    if len(result) < len(edges):
        logger.warning("Orphan cleanup: removed %d dangling edges", len(edges) - len(result))
    return result


def clean_graph(graph: KnowledgeGraph) -> KnowledgeGraph:
    """
    Full cleanup pipeline; mutates and returns `graph`.

    Order: mandatory edges, bidirectional strip, orphan cleanup, cycle
    breaking, transitive reduction, level recomputation.
    """
    node_ids = graph.node_ids()
    edges = inject_mandatory_edges(node_ids, graph.edges)
    edges = strip_bidirectional_edges(edges)
    edges = drop_orphan_edges(node_ids, edges)
    edges = break_cycles(edges)
    graph.edges = transitive_reduce(edges)
    graph.recompute_levels()
    return graph
