"""
Mastery Engine - Folds student attempts into per-skill mastery.

Features:
    - Per-skill earned/max points and raw mastery (earned / max)
    - Pluggable scoring policies (binary by default)
    - Memory stability growth on successful retrievals
    - Full-history recompute with question-coverage correction
    - Retention-decayed effective mastery and review summaries
    - Class analytics: per-skill cohort stats, weak spots, at-risk students

Mastery maps are treated as values: every operation returns a new map and
leaves the input records untouched.
"""

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from .constants import AT_RISK_THRESHOLD, MASTERED_THRESHOLD, WEAK_SPOT_THRESHOLD
from .mastery_models import (
    ClassAnalytics,
    KPMastery,
    QuestionWithWeights,
    SkillCohortStats,
    StudentAttempt,
    StudentMasterySummary,
    create_empty_mastery,
)
from .retention import as_utc, calculate_effective_mastery, update_stability
from .scoring import BinaryScoring, ScoringPolicy

logger = logging.getLogger(__name__)

MasteryMap = Dict[str, KPMastery]


class MasteryEngine:
    """
    Attempt x question -> mastery delta, under one scoring policy.

    Per skill the question maps to:
        max_points    += max delta
        earned_points += earned delta (never below 0)
        on correct:      stability grows, retrieval_count += 1,
                         last_reviewed_at = attempted_at
        raw_mastery    = earned / max (0 when max is 0)
    """

    def __init__(self, scoring: Optional[ScoringPolicy] = None, track_stability: bool = True):
        self.scoring = scoring or BinaryScoring()
        self.track_stability = track_stability

    # ==================== Attempt Folding ====================

    def process_attempt(self, attempt: StudentAttempt, question: QuestionWithWeights,
                        mastery: Mapping[str, KPMastery]) -> MasteryMap:
        """
        Apply one attempt; returns a new map.

        A skill listed twice on the same question is credited once.
        """
        updated = dict(mastery)
        for skill_id in dict.fromkeys(question.skills):
            current = updated.get(skill_id)
            record = current.copy() if current is not None else create_empty_mastery(
                attempt.graph_id, attempt.student_id, skill_id
            )

            earned, available = self.scoring.credit(attempt, question, skill_id)
            record.max_points += available
            record.earned_points = max(0.0, record.earned_points + earned)

            if attempt.is_correct:
                if self.track_stability:
                    record.stability = update_stability(
                        record.stability, record.last_reviewed_at, attempt.attempted_at
                    )
                record.retrieval_count += 1
                record.last_reviewed_at = attempt.attempted_at

            record.recompute_raw()
            updated[skill_id] = record
        return updated

    def process_attempts_batch(self, attempts: Iterable[StudentAttempt],
                               questions: Mapping[str, QuestionWithWeights],
                               initial_mastery: Optional[Mapping[str, KPMastery]] = None) -> MasteryMap:
        """
        Fold attempts oldest first.

        Attempts for unknown questions are skipped. Ties on timestamp keep
        their input order.
        """
        mastery = dict(initial_mastery or {})
        skipped = 0
        for attempt in sorted(attempts, key=lambda a: as_utc(a.attempted_at)):
            question = questions.get(attempt.question_id)
            if question is None:
                logger.warning(
                    "Skipping attempt on unknown question %s (student %s)",
                    attempt.question_id, attempt.student_id,
                )
                skipped += 1
                continue
            mastery = self.process_attempt(attempt, question, mastery)

        logger.debug("Folded attempts into %d skills (%d skipped)", len(mastery), skipped)
        return mastery

    # ==================== Full-History Recompute ====================

    def apply_question_coverage(self, mastery: Mapping[str, KPMastery],
                                questions: Iterable[QuestionWithWeights],
                                graph_id: str, student_id: str) -> MasteryMap:
        """
        Score unattempted questions as wrong.

        max_points becomes the credit available from EVERY question in the
        graph mapping to the skill (the question count under binary scoring).
        Skills with questions but no attempts get a zero record.
        """
        available: Dict[str, float] = defaultdict(float)
        for question in questions:
            for skill_id in dict.fromkeys(question.skills):
                available[skill_id] += self.scoring.max_credit(question, skill_id)

        corrected = {skill_id: record.copy() for skill_id, record in mastery.items()}
        for skill_id, max_points in available.items():
            record = corrected.get(skill_id)
            if record is None:
                record = create_empty_mastery(graph_id, student_id, skill_id)
                corrected[skill_id] = record
            record.max_points = max_points
            record.recompute_raw()
            # Re-attempts can earn more than the distinct questions offer
            record.raw_mastery = min(1.0, record.raw_mastery)
        return corrected

    def recompute_from_history(self, graph_id: str, student_id: str,
                               attempts: Iterable[StudentAttempt],
                               questions: Mapping[str, QuestionWithWeights]) -> MasteryMap:
        """Rebuild mastery from the full attempt log. Same history, same result."""
        mastery = self.process_attempts_batch(attempts, questions)
        return self.apply_question_coverage(mastery, questions.values(), graph_id, student_id)


# ==================== Module-Level Defaults ====================

_default_engine = MasteryEngine()


def process_attempt(attempt: StudentAttempt, question: QuestionWithWeights,
                    mastery: Mapping[str, KPMastery]) -> MasteryMap:
    """process_attempt with binary scoring."""
    return _default_engine.process_attempt(attempt, question, mastery)


def process_attempts_batch(attempts: Iterable[StudentAttempt],
                           questions: Mapping[str, QuestionWithWeights],
                           initial_mastery: Optional[Mapping[str, KPMastery]] = None) -> MasteryMap:
    """process_attempts_batch with binary scoring."""
    return _default_engine.process_attempts_batch(attempts, questions, initial_mastery)


def build_questions_map(rows: Iterable[Mapping]) -> Dict[str, QuestionWithWeights]:
    """Question rows (camelCase or snake_case) keyed by question id."""
    questions = {}
    for row in rows:
        question = QuestionWithWeights.from_dict(row)
        questions[question.id] = question
    return questions


# ==================== Retention & Summaries ====================

def compute_effective_mastery(records: Iterable[KPMastery],
                              now: Optional[datetime] = None) -> List[KPMastery]:
    """Copies of the records with retention fields filled in."""
    result = []
    for record in records:
        snapshot = calculate_effective_mastery(
            record.raw_mastery, record.last_reviewed_at, record.stability, now
        )
        decayed = record.copy()
        decayed.retention_factor = snapshot.retention_factor
        decayed.effective_mastery = snapshot.effective_mastery
        decayed.retention_status = snapshot.retention_status
        result.append(decayed)
    return result


def calculate_overall_mastery(records: Iterable[KPMastery]) -> float:
    """Mean mastery across skills (effective where computed)."""
    values = [r.current_mastery for r in records]
    return sum(values) / len(values) if values else 0.0


def get_kps_needing_review(records: Iterable[KPMastery]) -> List[KPMastery]:
    return [r for r in records if r.retention_status in ("aging", "expired")]


def summarize_mastery(student_id: str, records: Iterable[KPMastery],
                      student_name: str = "") -> StudentMasterySummary:
    records = list(records)
    return StudentMasterySummary(
        student_id=student_id,
        overall_mastery=calculate_overall_mastery(records),
        mastered_kps=sum(1 for r in records if r.current_mastery >= MASTERED_THRESHOLD),
        aging_kps=sum(1 for r in records if r.retention_status == "aging"),
        expired_kps=sum(1 for r in records if r.retention_status == "expired"),
        total_kps=len(records),
        student_name=student_name,
    )


# ==================== Class Analytics ====================

def calculate_class_analytics(class_id: str, mastery_by_student: Mapping[str, Iterable[KPMastery]],
                              class_name: str = "",
                              student_names: Optional[Mapping[str, str]] = None) -> ClassAnalytics:
    """
    Cohort view of one class over raw mastery (no retention decay).

    Every student in `mastery_by_student` counts towards the class, including
    those with no records yet. Per-skill stats only cover students holding a
    record for that skill. Weak spots (average below WEAK_SPOT_THRESHOLD) are
    listed weakest first; at-risk students have overall mastery below
    AT_RISK_THRESHOLD.
    """
    student_names = student_names or {}
    summaries = []
    skill_values: Dict[str, List[float]] = defaultdict(list)

    for student_id, records in mastery_by_student.items():
        # Drop any decay fields so the summary reads raw mastery
        raw_records = [replace(r, retention_factor=None, effective_mastery=None, retention_status=None)
                       for r in records]
        summaries.append(summarize_mastery(student_id, raw_records, student_names.get(student_id, "")))
        for record in raw_records:
            skill_values[record.skill_id].append(record.raw_mastery)

    skills = {}
    for skill_id, values in skill_values.items():
        skills[skill_id] = SkillCohortStats(
            skill_id=skill_id,
            average_mastery=sum(values) / len(values),
            students_above_80=sum(1 for v in values if v >= MASTERED_THRESHOLD),
            students_below_50=sum(1 for v in values if v < AT_RISK_THRESHOLD),
            student_count=len(values),
        )

    weak_spots = sorted(
        (s for s in skills.values() if s.average_mastery < WEAK_SPOT_THRESHOLD),
        key=lambda s: s.average_mastery,
    )
    at_risk = [s for s in summaries if s.overall_mastery < AT_RISK_THRESHOLD]

    logger.debug("Class %s: %d students, %d skills, %d weak spots, %d at risk",
                 class_id, len(summaries), len(skills), len(weak_spots), len(at_risk))
    return ClassAnalytics(
        class_id=class_id,
        class_name=class_name,
        total_students=len(summaries),
        skills=skills,
        student_summaries=summaries,
        weak_spots=weak_spots,
        at_risk_students=at_risk,
    )
