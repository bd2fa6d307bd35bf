"""
Mastery Service - Loads rows, runs the mastery engine, persists results.

Flows:
    record_attempt              -> log attempt, incremental update, coverage correction, upsert
    recalculate_student_mastery -> full-history recompute with coverage correction
    load_student_mastery        -> stored mastery with retention decay applied
    get_group_mastery           -> subtopic / topic / ungrouped rollup
    get_student_topic_grades    -> letter-graded topics for one student
    refresh_topic_score_ranges  -> per-topic max scores for a graph
    get_class_analytics         -> cohort stats for a class roster
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from core.aggregation import (
    GroupMastery,
    TopicGrade,
    TopicScoreRange,
    build_skill_to_subtopic,
    calculate_all_group_mastery,
    calculate_student_topic_grades,
    calculate_topic_score_ranges,
)
from core.mastery_engine import (
    MasteryEngine,
    calculate_class_analytics,
    compute_effective_mastery,
    summarize_mastery,
)
from core.mastery_models import ClassAnalytics, KPMastery, StudentAttempt, StudentMasterySummary
from core.retention import utcnow
from redis_store import RedisStore

logger = logging.getLogger(__name__)


class MasteryService:
    """Glue between RedisStore and the pure mastery engine."""

    def __init__(self, store: RedisStore, engine: Optional[MasteryEngine] = None):
        self.store = store
        self.engine = engine or MasteryEngine()

    def _questions_map(self, graph_id: str):
        return {q.id: q for q in self.store.load_questions(graph_id)}

    # ==================== Attempts ====================

    def record_attempt(self, attempt: StudentAttempt,
                       now: Optional[datetime] = None) -> Dict[str, KPMastery]:
        """
        Store an attempt and fold it into the student's stored mastery.

        Returns the full mastery map with retention applied. An attempt on an
        unknown question is still logged but changes no mastery.

        Stored rows are coverage-corrected, so after folding the attempt in
        max_points is reset to the graph's coverage again. For attempts that
        arrive in time order this gives the same rows as
        recalculate_student_mastery; backfilled older attempts need a recalculation.
        """
        self.store.record_attempt(attempt)

        questions = self._questions_map(attempt.graph_id)
        question = questions.get(attempt.question_id)
        current = {m.skill_id: m for m in self.store.load_mastery(attempt.graph_id, attempt.student_id)}
        if question is None:
            logger.warning("Attempt %s references unknown question %s", attempt.id, attempt.question_id)
            updated = current
        else:
            updated = self.engine.process_attempt(attempt, question, current)
            updated = self.engine.apply_question_coverage(
                updated, questions.values(), attempt.graph_id, attempt.student_id
            )
            for record in updated.values():
                self.store.upsert_mastery(record)

        return {m.skill_id: m for m in compute_effective_mastery(updated.values(), now)}

    # ==================== Mastery ====================

    def recalculate_student_mastery(self, graph_id: str, student_id: str,
                                    now: Optional[datetime] = None) -> Dict[str, KPMastery]:
        """
        Rebuild a student's mastery from their whole attempt history.

        Overwrites the stored rows, so running it twice gives the same rows.
        """
        attempts = self.store.load_attempts(graph_id, student_id)
        questions = self._questions_map(graph_id)
        mastery = self.engine.recompute_from_history(graph_id, student_id, attempts, questions)

        for record in mastery.values():
            self.store.upsert_mastery(record)

        logger.info(
            "Recalculated mastery for %s/%s: %d attempts, %d skills",
            graph_id, student_id, len(attempts), len(mastery),
        )
        return {m.skill_id: m for m in compute_effective_mastery(mastery.values(), now)}

    def load_student_mastery(self, graph_id: str, student_id: str,
                             now: Optional[datetime] = None) -> Dict[str, KPMastery]:
        records = self.store.load_mastery(graph_id, student_id)
        return {m.skill_id: m for m in compute_effective_mastery(records, now)}

    def get_summary(self, graph_id: str, student_id: str,
                    now: Optional[datetime] = None) -> StudentMasterySummary:
        return summarize_mastery(student_id, self.load_student_mastery(graph_id, student_id, now).values())

    # ==================== Rollups ====================

    def get_group_mastery(self, graph_id: str, student_id: str,
                          now: Optional[datetime] = None) -> GroupMastery:
        skill_mastery = self.load_student_mastery(graph_id, student_id, now)
        skill_to_subtopic = build_skill_to_subtopic(self.store.load_skills(graph_id))
        return calculate_all_group_mastery(
            self.store.load_topics(graph_id),
            self.store.load_subtopics(graph_id),
            skill_mastery,
            skill_to_subtopic,
        )

    def get_student_topic_grades(self, graph_id: str, student_id: str) -> List[TopicGrade]:
        return calculate_student_topic_grades(
            self.store.load_attempts(graph_id, student_id),
            self.store.load_questions(graph_id),
            self.store.load_skills(graph_id),
            self.store.load_subtopics(graph_id),
            self.store.load_topics(graph_id),
        )

    def get_class_analytics(self, graph_id: str, class_id: str, class_name: str = "") -> ClassAnalytics:
        """Cohort stats for every student on the class roster, over raw mastery."""
        roster = self.store.load_class_students(class_id)
        mastery_by_student = {s.student_id: self.store.load_mastery(graph_id, s.student_id) for s in roster}
        return calculate_class_analytics(
            class_id,
            mastery_by_student,
            class_name=class_name,
            student_names={s.student_id: s.student_name for s in roster},
        )

    def refresh_topic_score_ranges(self, graph_id: str) -> List[TopicScoreRange]:
        ranges = calculate_topic_score_ranges(
            graph_id,
            self.store.load_topics(graph_id),
            self.store.load_subtopics(graph_id),
            self.store.load_skills(graph_id),
            self.store.load_questions(graph_id),
            now=utcnow(),
        )
        self.store.upsert_topic_score_ranges(ranges)
        return ranges
