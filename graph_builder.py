"""
Graph Builder - Generates a skill graph from questions in batches.

Flow:
    questions -> batches of GRAPH_BATCH_SIZE
              -> generator(batch, known skills) per batch   (black box, e.g. an LLM call)
              -> payload validation
              -> merge batch graphs, then merge onto the existing graph
              -> cleanup (DAG, transitive reduction, levels)

The generator sees the id/name/tier/description of every skill found so far,
so later batches can reuse ids instead of inventing new ones. Whatever it
still duplicates is folded by the merger's semantic pass.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from dotenv import load_dotenv

from core.graph_cleanup import clean_graph
from core.graph_merger import merge_graphs
from core.knowledge_graph import KnowledgeGraph

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

# (questions, known_skills) -> raw graph payload
GraphGenerator = Callable[[List[str], List[Dict[str, Any]]], Dict[str, Any]]


class GraphGenerationError(RuntimeError):
    """The generator returned something that is not a graph payload."""


# ==================== Payload Models ====================

class GeneratedNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    tier: Optional[str] = None
    level: Optional[int] = None


class GeneratedEdge(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    reason: Optional[str] = ""


class GeneratedGraphPayload(BaseModel):
    """Shape check for one generator response; extra keys are ignored."""
    model_config = ConfigDict(extra="ignore")

    nodes: List[GeneratedNode] = Field(
        default_factory=list, validation_alias=AliasChoices("nodes", "globalNodes")
    )
    edges: List[GeneratedEdge] = Field(default_factory=list)
    courses: Dict[str, Any] = Field(default_factory=dict)
    questionPaths: Dict[str, Any] = Field(default_factory=dict)
    ipaByQuestion: Optional[Dict[str, Any]] = None


def parse_generated_graph(payload: Any) -> KnowledgeGraph:
    """
    Validate a generator payload and convert it to a KnowledgeGraph.

    Raises:
        GraphGenerationError: payload does not have the graph shape
    """
    if isinstance(payload, dict) and payload.get("error"):
        raise GraphGenerationError(str(payload["error"]))
    try:
        validated = GeneratedGraphPayload.model_validate(payload or {})
    except ValidationError as e:
        logger.warning("Generator returned an invalid graph payload: %s", e)
        raise GraphGenerationError("Generator returned an invalid graph payload") from e

    data = {
        "nodes": [n.model_dump(exclude_none=True) for n in validated.nodes],
        "edges": [e.model_dump(by_alias=True) for e in validated.edges],
        "courses": validated.courses,
        "questionPaths": validated.questionPaths,
        "ipaByQuestion": validated.ipaByQuestion,
    }
    return KnowledgeGraph.from_dict(data)


# ==================== Builder ====================

@dataclass
class BatchProgress:
    current_batch: int
    total_batches: int
    skills_discovered: int
    is_processing: bool = True


class GraphBuilder:
    """
    Batch graph generation over a black-box generator.

    Usage:
        builder = GraphBuilder(generate_fn)
        graph = builder.build(questions, existing_graph=stored_graph)
    """

    def __init__(self, generate: GraphGenerator, batch_size: Optional[int] = None,
                 on_progress: Optional[Callable[[BatchProgress], None]] = None):
        self.generate = generate
        if batch_size is None:
            batch_size = int(os.getenv("GRAPH_BATCH_SIZE", DEFAULT_BATCH_SIZE))
        self.batch_size = batch_size
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.on_progress = on_progress

    def _batches(self, questions: Sequence[str]) -> List[List[str]]:
        return [list(questions[i:i + self.batch_size]) for i in range(0, len(questions), self.batch_size)]

    def _report(self, progress: BatchProgress):
        if self.on_progress is not None:
            self.on_progress(progress)

    def build(self, questions: Sequence[str],
              existing_graph: Optional[KnowledgeGraph] = None) -> KnowledgeGraph:
        """Generate, merge and clean. The existing graph is not modified."""
        questions = [q for q in dict.fromkeys(questions) if q and q.strip()]
        batches = self._batches(questions)
        existing_count = len(existing_graph.nodes) if existing_graph else 0

        known: List[Dict[str, Any]] = []
        known_ids = set()
        if existing_graph:
            for node in existing_graph.nodes:
                known.append(_skill_summary(node))
                known_ids.add(node.id)

        deltas: List[KnowledgeGraph] = []
        for index, batch in enumerate(batches):
            self._report(BatchProgress(index + 1, len(batches), len(known) - existing_count))
            logger.info("Generating batch %d/%d (%d questions, %d known skills)",
                        index + 1, len(batches), len(batch), len(known))

            delta = parse_generated_graph(self.generate(batch, list(known)))
            deltas.append(delta)
            for node in delta.nodes:
                if node.id not in known_ids:
                    known.append(_skill_summary(node))
                    known_ids.add(node.id)

        self._report(BatchProgress(len(batches), len(batches), len(known) - existing_count, False))

        if not deltas:
            return clean_graph(merge_graphs([existing_graph])) if existing_graph else KnowledgeGraph()

        combined = deltas[0] if len(deltas) == 1 else merge_graphs(deltas)
        graph = merge_graphs([existing_graph, combined]) if existing_graph else merge_graphs([combined])
        graph = clean_graph(graph)

        stats = graph.get_stats()
        logger.info("Built graph: %d skills, %d edges, %d question paths, depth %d",
                    stats["total_skills"], stats["total_edges"], stats["question_paths"], stats["max_depth"])
        return graph


def _skill_summary(node) -> Dict[str, Any]:
    summary = {"id": node.id, "name": node.name}
    if node.tier:
        summary["tier"] = node.tier
    description = node.extra.get("description")
    if description:
        summary["description"] = description
    return summary
