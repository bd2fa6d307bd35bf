"""
Knowledge Graph - Skill dependency graph built from course questions.

Features:
    - Skill nodes (knowledge points) with tier and prerequisite-depth level
    - Prerequisite relationships as directed edges
    - Question paths (flat id lists or structured execution orders)
    - JSON round-trip using the camelCase wire names
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

import networkx as nx

logger = logging.getLogger(__name__)

# Node keys handled explicitly; anything else is carried through in `extra`
_NODE_FIELDS = ("id", "name", "tier", "level", "appearsInQuestions")


@dataclass
class SkillNode:
    """A knowledge point in the graph."""
    id: str
    name: str
    tier: Optional[str] = None
    level: int = 0
    appears_in_questions: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def add_questions(self, questions: Iterable[str]):
        """Union question references in, keeping first-seen order."""
        seen = set(self.appears_in_questions)
        for question in questions:
            if question not in seen:
                self.appears_in_questions.append(question)
                seen.add(question)

    def to_dict(self) -> dict:
        data = {"id": self.id, "name": self.name}
        if self.tier is not None:
            data["tier"] = self.tier
        data["level"] = self.level
        data["appearsInQuestions"] = list(self.appears_in_questions)
        data.update(copy.deepcopy(self.extra))
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillNode":
        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in _NODE_FIELDS}

        questions = data.get("appearsInQuestions")
        knowledge_point = extra.get("knowledgePoint")
        if isinstance(knowledge_point, dict) and "appearsInQuestions" in knowledge_point:
            # Older payloads nest question references under knowledgePoint
            if questions is None:
                questions = knowledge_point["appearsInQuestions"]
            extra["knowledgePoint"] = {
                k: v for k, v in knowledge_point.items() if k != "appearsInQuestions"
            }

        node = cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            tier=data.get("tier"),
            level=int(data.get("level") or 0),
            extra=extra,
        )
        node.add_questions(questions or [])
        return node


@dataclass
class SkillEdge:
    """Directed prerequisite relation: from_id must be learned before to_id."""
    from_id: str
    to_id: str
    reason: str = ""
    relationship_type: Optional[str] = None

    @property
    def key(self):
        return (self.from_id, self.to_id)

    def to_dict(self) -> dict:
        data = {"from": self.from_id, "to": self.to_id, "reason": self.reason}
        if self.relationship_type is not None:
            data["relationshipType"] = self.relationship_type
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillEdge":
        return cls(
            from_id=str(data["from"]),
            to_id=str(data["to"]),
            reason=data.get("reason") or "",
            relationship_type=data.get("relationshipType"),
        )


@dataclass
class QuestionPath:
    """Structured path of the skills a question exercises."""
    required_nodes: List[str] = field(default_factory=list)
    execution_order: List[str] = field(default_factory=list)
    validation_status: str = "valid"
    validation_errors: Optional[List[str]] = None

    def to_dict(self) -> dict:
        data = {
            "requiredNodes": list(self.required_nodes),
            "executionOrder": list(self.execution_order),
            "validationStatus": self.validation_status,
        }
        if self.validation_errors is not None:
            data["validationErrors"] = list(self.validation_errors)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuestionPath":
        errors = data.get("validationErrors")
        return cls(
            required_nodes=list(data.get("requiredNodes") or []),
            execution_order=list(data.get("executionOrder") or []),
            validation_status=data.get("validationStatus") or "valid",
            validation_errors=list(errors) if errors is not None else None,
        )


# A question path is either a flat ordered list of node ids or a QuestionPath
PathValue = Union[List[str], QuestionPath]


def parse_question_path(value: Any) -> PathValue:
    if isinstance(value, QuestionPath):
        return value
    if isinstance(value, Mapping):
        return QuestionPath.from_dict(value)
    return [str(v) for v in (value or [])]


def question_path_nodes(path: PathValue) -> List[str]:
    """All node ids a path references, in first-seen order."""
    if isinstance(path, QuestionPath):
        ids = path.required_nodes + path.execution_order
    else:
        ids = path
    return list(dict.fromkeys(ids))


def _remap_ids(ids: Iterable[str], mapping: Mapping[str, str]) -> List[str]:
    # Two ids folded into one canonical id collapse to a single entry
    return list(dict.fromkeys(mapping.get(i, i) for i in ids))


def remap_question_path(path: PathValue, mapping: Mapping[str, str]) -> PathValue:
    """Rewrite every node id in a path through `mapping`, keeping its shape."""
    if isinstance(path, QuestionPath):
        return QuestionPath(
            required_nodes=_remap_ids(path.required_nodes, mapping),
            execution_order=_remap_ids(path.execution_order, mapping),
            validation_status=path.validation_status,
            validation_errors=list(path.validation_errors) if path.validation_errors is not None else None,
        )
    return _remap_ids(path, mapping)


def _path_to_json(path: PathValue):
    if isinstance(path, QuestionPath):
        return path.to_dict()
    return list(path)


@dataclass
class KnowledgeGraph:
    """
    Aggregate root for a skill graph.

    Structure:
        nodes          -> SkillNode list (ids unique)
        edges          -> SkillEdge list (prerequisite -> dependent)
        courses        -> course name -> {"nodes": [{"id", "inCourse"}]}
        question_paths -> question text -> flat id list or QuestionPath
    """
    nodes: List[SkillNode] = field(default_factory=list)
    edges: List[SkillEdge] = field(default_factory=list)
    courses: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    question_paths: Dict[str, PathValue] = field(default_factory=dict)
    ipa_by_question: Optional[Dict[str, Any]] = None

    # ==================== Serialization ====================

    def to_dict(self) -> dict:
        data = {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "courses": copy.deepcopy(self.courses),
            "questionPaths": {q: _path_to_json(p) for q, p in self.question_paths.items()},
        }
        if self.ipa_by_question:
            data["ipaByQuestion"] = copy.deepcopy(self.ipa_by_question)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KnowledgeGraph":
        """Build a graph from a JSON payload; accepts `globalNodes` for `nodes`."""
        raw_nodes = data.get("nodes")
        if raw_nodes is None:
            raw_nodes = data.get("globalNodes") or []

        courses = {}
        for name, course in (data.get("courses") or {}).items():
            courses[name] = {"nodes": [dict(n) for n in (course or {}).get("nodes") or []]}

        return cls(
            nodes=[SkillNode.from_dict(n) for n in raw_nodes],
            edges=[SkillEdge.from_dict(e) for e in data.get("edges") or []],
            courses=courses,
            question_paths={
                q: parse_question_path(p) for q, p in (data.get("questionPaths") or {}).items()
            },
            ipa_by_question=copy.deepcopy(data.get("ipaByQuestion")) or None,
        )

    # ==================== Query Methods ====================

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[SkillNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_networkx(self) -> nx.DiGraph:
        """Directed graph of nodes and the edges between known nodes."""
        graph = nx.DiGraph()
        for node in self.nodes:
            graph.add_node(node.id, name=node.name, tier=node.tier)
        for edge in self.edges:
            if edge.from_id in graph and edge.to_id in graph:
                graph.add_edge(edge.from_id, edge.to_id, reason=edge.reason)
        return graph

    def get_prerequisites(self, node_id: str) -> List[str]:
        """Get immediate prerequisites (one level up)."""
        graph = self.to_networkx()
        if node_id not in graph:
            return []
        return list(graph.predecessors(node_id))

    def get_all_prerequisites(self, node_id: str) -> Set[str]:
        """Get ALL prerequisites recursively."""
        graph = self.to_networkx()
        if node_id not in graph:
            return set()
        return nx.ancestors(graph, node_id)

    def get_dependents(self, node_id: str) -> List[str]:
        """Get skills that depend on this one (one level down)."""
        graph = self.to_networkx()
        if node_id not in graph:
            return []
        return list(graph.successors(node_id))

    def get_all_dependents(self, node_id: str) -> Set[str]:
        graph = self.to_networkx()
        if node_id not in graph:
            return set()
        return nx.descendants(graph, node_id)

    def topological_order(self) -> List[str]:
        """Node ids with prerequisites first. Raises if the graph has a cycle."""
        return list(nx.topological_sort(self.to_networkx()))

    def questions_for_node(self, node_id: str) -> List[str]:
        """Question texts whose path references the node."""
        return [q for q, p in self.question_paths.items() if node_id in question_path_nodes(p)]

    # ==================== Levels ====================

    def recompute_levels(self):
        """
        Recompute every node's level from the edge structure.

        level = 0 with no prerequisites, else 1 + max(level of prerequisites).
        Nodes on a cycle share the level of their strongly connected component.
        """
        graph = self.to_networkx()
        if nx.is_directed_acyclic_graph(graph):
            levels = _longest_path_levels(graph)
        else:
            logger.warning("Levelling cyclic skill graph on its condensation")
            condensed = nx.condensation(graph)
            component_levels = _longest_path_levels(condensed)
            mapping = condensed.graph["mapping"]
            levels = {node_id: component_levels[mapping[node_id]] for node_id in graph}

        for node in self.nodes:
            node.level = levels.get(node.id, 0)

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get graph statistics."""
        graph = self.to_networkx()
        is_dag = nx.is_directed_acyclic_graph(graph)
        tiers: Dict[str, int] = {}
        for node in self.nodes:
            tier = node.tier or "unassigned"
            tiers[tier] = tiers.get(tier, 0) + 1
        return {
            "total_skills": len(self.nodes),
            "total_edges": len(self.edges),
            "edge_density": round(len(self.edges) / len(self.nodes), 2) if self.nodes else 0,
            "question_paths": len(self.question_paths),
            "skills_per_tier": tiers,
            "is_dag": is_dag,
            "max_depth": nx.dag_longest_path_length(graph) if is_dag and self.nodes else 0,
        }


def _longest_path_levels(graph: nx.DiGraph) -> Dict[Any, int]:
    levels: Dict[Any, int] = {}
    for node_id in nx.topological_sort(graph):
        preds = list(graph.predecessors(node_id))
        levels[node_id] = 1 + max(levels[p] for p in preds) if preds else 0
    return levels
