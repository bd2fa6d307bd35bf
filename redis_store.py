"""
Redis Store - Persistence for graphs, attempts and skill mastery.

Key Structure (prefix defaults to "skillgraph"):
    {prefix}:graph:{graph_id}:knowledge_graph             -> String (graph JSON)
    {prefix}:graph:{graph_id}:questions                   -> Hash (question_id -> row JSON)
    {prefix}:graph:{graph_id}:skills                      -> Hash (skill_id -> row JSON)
    {prefix}:graph:{graph_id}:subtopics                   -> Hash (subtopic_id -> row JSON)
    {prefix}:graph:{graph_id}:topics                      -> Hash (topic_id -> row JSON)
    {prefix}:graph:{graph_id}:topic_score_ranges          -> Hash (topic_id -> row JSON)
    {prefix}:graph:{graph_id}:student:{student_id}:attempts -> List (attempt row JSON)
    {prefix}:graph:{graph_id}:student:{student_id}:mastery  -> Hash (skill_id -> row JSON)
    {prefix}:class:{class_id}:students                     -> Hash (student_id -> row JSON)

Mastery rows live in one hash field per skill, so writing the same record
twice is an upsert keyed by (graph_id, student_id, skill_id).
"""

import os
import json
import logging
from typing import Dict, Iterable, List, Optional

import redis
from dotenv import load_dotenv

from core.aggregation import SkillRecord, SkillSubtopic, SkillTopic, TopicScoreRange
from core.knowledge_graph import KnowledgeGraph
from core.mastery_models import ClassStudent, KPMastery, QuestionWithWeights, StudentAttempt

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)


class RedisStore:
    def __init__(self, client: Optional[redis.Redis] = None, prefix: Optional[str] = None):
        """
        Connect to Redis using environment variables.

        Args:
            client: Existing client to use instead of building one from
                REDIS_HOST / REDIS_PORT / REDIS_PASSWORD / REDIS_DB
            prefix: Key prefix (default: REDIS_KEY_PREFIX or "skillgraph")
        """
        self.client = client or redis.Redis(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", 6379)),
            password=os.getenv("REDIS_PASSWORD", None),
            db=int(os.getenv("REDIS_DB", 0)),
            decode_responses=True  # Return strings instead of bytes
        )
        self.prefix = prefix or os.getenv("REDIS_KEY_PREFIX", "skillgraph")

    # ==================== Key Builders ====================

    def _graph_key(self, graph_id: str, name: str) -> str:
        return f"{self.prefix}:graph:{graph_id}:{name}"

    def _student_key(self, graph_id: str, student_id: str, name: str) -> str:
        return f"{self.prefix}:graph:{graph_id}:student:{student_id}:{name}"

    def _mastery_key(self, graph_id: str, student_id: str) -> str:
        return self._student_key(graph_id, student_id, "mastery")

    def _attempts_key(self, graph_id: str, student_id: str) -> str:
        return self._student_key(graph_id, student_id, "attempts")

    # ==================== Row Helpers ====================

    def _write_rows(self, key: str, rows: Dict[str, dict]):
        if rows:
            self.client.hset(key, mapping={k: json.dumps(v) for k, v in rows.items()})

    def _read_rows(self, key: str) -> List[dict]:
        rows = []
        for field_name, raw in sorted(self.client.hgetall(key).items()):
            try:
                rows.append(json.loads(raw))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt row %s in %s", field_name, key)
        return rows

    # ==================== Knowledge Graph ====================

    def save_graph(self, graph_id: str, graph: KnowledgeGraph):
        self.client.set(self._graph_key(graph_id, "knowledge_graph"), json.dumps(graph.to_dict()))

    def load_graph(self, graph_id: str) -> Optional[KnowledgeGraph]:
        raw = self.client.get(self._graph_key(graph_id, "knowledge_graph"))
        if raw is None:
            return None
        return KnowledgeGraph.from_dict(json.loads(raw))

    # ==================== Questions & Grouping ====================

    def save_questions(self, graph_id: str, questions: Iterable[QuestionWithWeights]):
        self._write_rows(self._graph_key(graph_id, "questions"), {q.id: q.to_row() for q in questions})

    def load_questions(self, graph_id: str) -> List[QuestionWithWeights]:
        return [QuestionWithWeights.from_dict(r) for r in self._read_rows(self._graph_key(graph_id, "questions"))]

    def save_skills(self, graph_id: str, skills: Iterable[SkillRecord]):
        self._write_rows(self._graph_key(graph_id, "skills"), {s.skill_id: s.to_row() for s in skills})

    def load_skills(self, graph_id: str) -> List[SkillRecord]:
        return [SkillRecord.from_dict(r) for r in self._read_rows(self._graph_key(graph_id, "skills"))]

    def save_subtopics(self, graph_id: str, subtopics: Iterable[SkillSubtopic]):
        self._write_rows(self._graph_key(graph_id, "subtopics"), {s.id: s.to_row() for s in subtopics})

    def load_subtopics(self, graph_id: str) -> List[SkillSubtopic]:
        rows = self._read_rows(self._graph_key(graph_id, "subtopics"))
        return sorted((SkillSubtopic.from_dict(r) for r in rows), key=lambda s: s.display_order)

    def save_topics(self, graph_id: str, topics: Iterable[SkillTopic]):
        self._write_rows(self._graph_key(graph_id, "topics"), {t.id: t.to_row() for t in topics})

    def load_topics(self, graph_id: str) -> List[SkillTopic]:
        rows = self._read_rows(self._graph_key(graph_id, "topics"))
        return sorted((SkillTopic.from_dict(r) for r in rows), key=lambda t: t.display_order)

    # ==================== Attempts ====================

    def record_attempt(self, attempt: StudentAttempt):
        """Append an attempt to the student's log."""
        self.client.rpush(
            self._attempts_key(attempt.graph_id, attempt.student_id),
            json.dumps(attempt.to_row()),
        )

    def load_attempts(self, graph_id: str, student_id: str) -> List[StudentAttempt]:
        """All recorded attempts for a student, in insertion order."""
        raw_rows = self.client.lrange(self._attempts_key(graph_id, student_id), 0, -1)
        attempts = []
        for raw in raw_rows:
            try:
                attempts.append(StudentAttempt.from_dict(json.loads(raw)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping corrupt attempt row for %s/%s", graph_id, student_id)
        return attempts

    # ==================== Mastery ====================

    def load_mastery(self, graph_id: str, student_id: str) -> List[KPMastery]:
        rows = self._read_rows(self._mastery_key(graph_id, student_id))
        return [KPMastery.from_dict(r) for r in rows]

    def upsert_mastery(self, record: KPMastery):
        """Insert or overwrite the row for (graph_id, student_id, skill_id)."""
        self.client.hset(
            self._mastery_key(record.graph_id, record.student_id),
            record.skill_id,
            json.dumps(record.to_row()),
        )

    def delete_mastery(self, graph_id: str, student_id: str):
        """Delete all mastery and attempt data for a student (for testing/cleanup)."""
        self.client.delete(
            self._mastery_key(graph_id, student_id),
            self._attempts_key(graph_id, student_id),
        )

    # ==================== Topic Score Ranges ====================

    def upsert_topic_score_ranges(self, ranges: Iterable[TopicScoreRange]):
        by_graph: Dict[str, Dict[str, dict]] = {}
        for score_range in ranges:
            by_graph.setdefault(score_range.graph_id, {})[score_range.topic_id] = score_range.to_row()
        for graph_id, rows in by_graph.items():
            self._write_rows(self._graph_key(graph_id, "topic_score_ranges"), rows)

    def load_topic_score_ranges(self, graph_id: str) -> List[TopicScoreRange]:
        rows = self._read_rows(self._graph_key(graph_id, "topic_score_ranges"))
        return [TopicScoreRange.from_dict(r) for r in rows]

    # ==================== Classes ====================

    def save_class_students(self, class_id: str, students: Iterable[ClassStudent]):
        self._write_rows(f"{self.prefix}:class:{class_id}:students",
                         {s.student_id: s.to_row() for s in students})

    def load_class_students(self, class_id: str) -> List[ClassStudent]:
        rows = self._read_rows(f"{self.prefix}:class:{class_id}:students")
        return [ClassStudent.from_dict(r) for r in rows]
