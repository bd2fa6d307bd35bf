"""
Graph Merger - Combines skill graphs generated in batches.

Graph generation runs over bounded batches of questions, and each batch can
invent its own spelling of the same skill ("list_operations",
"List Operations", "list-operations"). Merging:

    1. Dedupe nodes by id (first node wins, question references are unioned)
    2. Dedupe edges by (from, to) (first edge wins)
    3. Merge courses (by node id), questionPaths and ipaByQuestion (last wins)
    4. Fold semantically equivalent nodes into one canonical node
    5. Remap edges, question paths and courses onto the canonical ids
"""

import copy
import logging
import re
from typing import Dict, FrozenSet, List, Mapping, Sequence

from .constants import MIN_TOKEN_LENGTH, SEMANTIC_MATCH_THRESHOLD
from .knowledge_graph import KnowledgeGraph, SkillEdge, SkillNode, remap_question_path

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[_\-]+")
_WHITESPACE = re.compile(r"\s+")


# ==================== Name Similarity ====================

def normalize_skill_name(name: str) -> str:
    """Lowercase, turn '_' and '-' into spaces, collapse whitespace."""
    name = _SEPARATORS.sub(" ", (name or "").lower())
    return _WHITESPACE.sub(" ", name).strip()


def skill_tokens(name: str) -> FrozenSet[str]:
    """Meaningful words of a skill name (longer than MIN_TOKEN_LENGTH)."""
    return frozenset(w for w in normalize_skill_name(name).split(" ") if len(w) > MIN_TOKEN_LENGTH)


def word_overlap(a: str, b: str) -> float:
    """
    Shared words divided by the size of the LARGER word set.

    Returns 0.0 when either name has no meaningful words.
    """
    tokens_a, tokens_b = skill_tokens(a), skill_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / max(len(tokens_a), len(tokens_b))


def are_equivalent(a: SkillNode, b: SkillNode, threshold: float = SEMANTIC_MATCH_THRESHOLD) -> bool:
    """
    Decide whether two nodes describe the same skill.

    Exact match of normalized names always counts. Otherwise the tiers must
    match (and be set) before word overlap is considered.
    """
    if normalize_skill_name(a.name) == normalize_skill_name(b.name):
        return True
    if a.tier is None or a.tier != b.tier:
        return False
    return word_overlap(a.name, b.name) >= threshold


# ==================== Merge Steps ====================

def _merge_nodes(graphs: Sequence[KnowledgeGraph]) -> List[SkillNode]:
    by_id: Dict[str, SkillNode] = {}
    for graph in graphs:
        for node in graph.nodes:
            existing = by_id.get(node.id)
            if existing is None:
                by_id[node.id] = copy.deepcopy(node)
            else:
                existing.add_questions(node.appears_in_questions)
    return list(by_id.values())


def _merge_edges(graphs: Sequence[KnowledgeGraph]) -> List[SkillEdge]:
    seen = set()
    edges = []
    for graph in graphs:
        for edge in graph.edges:
            if edge.key not in seen:
                seen.add(edge.key)
                edges.append(copy.deepcopy(edge))
    return edges


def _merge_courses(graphs: Sequence[KnowledgeGraph]) -> Dict[str, dict]:
    courses: Dict[str, dict] = {}
    for graph in graphs:
        for name, course in graph.courses.items():
            target = courses.setdefault(name, {"nodes": []})
            existing_ids = {n["id"] for n in target["nodes"]}
            for entry in course.get("nodes", []):
                if entry["id"] not in existing_ids:
                    target["nodes"].append(dict(entry))
                    existing_ids.add(entry["id"])
    return courses


def deduplicate_nodes(nodes: Sequence[SkillNode],
                      threshold: float = SEMANTIC_MATCH_THRESHOLD):
    """
    Fold semantically equivalent nodes into the first one seen.

    Returns (canonical_nodes, id_mapping). Every input id appears in the
    mapping; canonical ids map to themselves.
    """
    canonical: List[SkillNode] = []
    mapping: Dict[str, str] = {}

    for node in nodes:
        match = next((c for c in canonical if are_equivalent(node, c, threshold)), None)
        if match is None:
            canonical.append(node)
            mapping[node.id] = node.id
        else:
            logger.debug("Folding skill %r (%s) into %r (%s)", node.name, node.id, match.name, match.id)
            match.add_questions(node.appears_in_questions)
            mapping[node.id] = match.id

    return canonical, mapping


def remap_edges(edges: Sequence[SkillEdge], mapping: Mapping[str, str]) -> List[SkillEdge]:
    """Rewrite edge endpoints; drop resulting self-loops and duplicates."""
    seen = set()
    remapped = []
    for edge in edges:
        from_id = mapping.get(edge.from_id, edge.from_id)
        to_id = mapping.get(edge.to_id, edge.to_id)
        if from_id == to_id or (from_id, to_id) in seen:
            continue
        seen.add((from_id, to_id))
        remapped.append(SkillEdge(from_id, to_id, edge.reason, edge.relationship_type))
    return remapped


def _remap_courses(courses: Dict[str, dict], mapping: Mapping[str, str]) -> Dict[str, dict]:
    remapped = {}
    for name, course in courses.items():
        entries = []
        seen = set()
        for entry in course["nodes"]:
            node_id = mapping.get(entry["id"], entry["id"])
            if node_id not in seen:
                seen.add(node_id)
                entries.append({**entry, "id": node_id})
        remapped[name] = {"nodes": entries}
    return remapped


# ==================== Public API ====================

def merge_graphs(graphs: Sequence[KnowledgeGraph],
                 threshold: float = SEMANTIC_MATCH_THRESHOLD) -> KnowledgeGraph:
    """
    Merge graph payloads into one canonical graph.

    Inputs are never modified. The result depends only on the inputs and
    their order.
    """
    nodes = _merge_nodes(graphs)
    edges = _merge_edges(graphs)
    courses = _merge_courses(graphs)

    question_paths = {}
    ipa_by_question = {}
    for graph in graphs:
        question_paths.update(copy.deepcopy(graph.question_paths))
        if graph.ipa_by_question:
            ipa_by_question.update(copy.deepcopy(graph.ipa_by_question))

    canonical, mapping = deduplicate_nodes(nodes, threshold)
    folded = len(nodes) - len(canonical)

    merged = KnowledgeGraph(
        nodes=canonical,
        edges=remap_edges(edges, mapping),
        courses=_remap_courses(courses, mapping),
        question_paths={q: remap_question_path(p, mapping) for q, p in question_paths.items()},
        ipa_by_question=ipa_by_question or None,
    )

    logger.info(
        "Merged %d graphs: %d skills (%d folded as duplicates), %d edges, %d question paths",
        len(graphs), len(merged.nodes), folded, len(merged.edges), len(merged.question_paths),
    )
    return merged
