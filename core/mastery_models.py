"""
Mastery records - attempts, weighted questions and per-skill mastery state.

Each type serializes two ways:
    to_dict() -> camelCase JSON (wire format)
    to_row()  -> snake_case row (persistence format)
from_dict() accepts either.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from .constants import INITIAL_STABILITY
from .retention import as_utc


def _pick(data: Mapping[str, Any], camel: str, snake: str, default=None):
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string or datetime -> timezone-aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None


@dataclass(frozen=True)
class StudentAttempt:
    """One submission. Immutable; the event log mastery is derived from."""
    graph_id: str
    student_id: str
    question_id: str
    is_correct: bool
    attempted_at: datetime
    independence_level: str = "independent"
    id: Optional[str] = None
    class_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "graphId": self.graph_id,
            "classId": self.class_id,
            "studentId": self.student_id,
            "questionId": self.question_id,
            "isCorrect": self.is_correct,
            "independenceLevel": self.independence_level,
            "attemptedAt": format_timestamp(self.attempted_at),
        }

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "graph_id": self.graph_id,
            "class_id": self.class_id,
            "student_id": self.student_id,
            "question_id": self.question_id,
            "is_correct": self.is_correct,
            "independence_level": self.independence_level,
            "attempted_at": format_timestamp(self.attempted_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StudentAttempt":
        return cls(
            graph_id=str(_pick(data, "graphId", "graph_id")),
            student_id=str(_pick(data, "studentId", "student_id")),
            question_id=str(_pick(data, "questionId", "question_id")),
            is_correct=bool(_pick(data, "isCorrect", "is_correct", False)),
            attempted_at=parse_timestamp(_pick(data, "attemptedAt", "attempted_at")),
            independence_level=_pick(data, "independenceLevel", "independence_level") or "independent",
            id=data.get("id"),
            class_id=_pick(data, "classId", "class_id"),
        )


@dataclass
class QuestionWithWeights:
    """A question and the skills it exercises."""
    id: str
    skills: List[str] = field(default_factory=list)
    weightage_multiplier: float = 1.0
    graph_id: Optional[str] = None
    question_text: str = ""
    primary_skills: List[str] = field(default_factory=list)
    skill_weights: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "graphId": self.graph_id,
            "questionText": self.question_text,
            "skills": list(self.skills),
            "primarySkills": list(self.primary_skills),
            "skillWeights": dict(self.skill_weights),
            "weightageMultiplier": self.weightage_multiplier,
        }

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "graph_id": self.graph_id,
            "question_text": self.question_text,
            "skills": list(self.skills),
            "primary_skills": list(self.primary_skills),
            "skill_weights": dict(self.skill_weights),
            "weightage_multiplier": self.weightage_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuestionWithWeights":
        multiplier = _pick(data, "weightageMultiplier", "weightage_multiplier")
        return cls(
            id=str(data["id"]),
            skills=list(data.get("skills") or []),
            weightage_multiplier=float(multiplier) if multiplier is not None else 1.0,
            graph_id=_pick(data, "graphId", "graph_id"),
            question_text=_pick(data, "questionText", "question_text") or "",
            primary_skills=list(_pick(data, "primarySkills", "primary_skills") or []),
            skill_weights=dict(_pick(data, "skillWeights", "skill_weights") or {}),
        )


@dataclass
class KPMastery:
    """
    Mastery of one knowledge point for one student in one graph.

    retention_factor, effective_mastery and retention_status are derived
    and never persisted.
    """
    graph_id: str
    student_id: str
    skill_id: str
    earned_points: float = 0.0
    max_points: float = 0.0
    raw_mastery: float = 0.0
    last_reviewed_at: Optional[datetime] = None
    stability: float = INITIAL_STABILITY
    retrieval_count: int = 0
    retention_factor: Optional[float] = None
    effective_mastery: Optional[float] = None
    retention_status: Optional[str] = None
    id: Optional[str] = None

    def recompute_raw(self):
        self.raw_mastery = self.earned_points / self.max_points if self.max_points > 0 else 0.0

    def copy(self) -> "KPMastery":
        return replace(self)

    @property
    def current_mastery(self) -> float:
        """Effective mastery when computed, else raw mastery."""
        return self.effective_mastery if self.effective_mastery is not None else self.raw_mastery

    def to_dict(self) -> dict:
        data = {
            "graphId": self.graph_id,
            "studentId": self.student_id,
            "skillId": self.skill_id,
            "earnedPoints": self.earned_points,
            "maxPoints": self.max_points,
            "rawMastery": self.raw_mastery,
            "lastReviewedAt": format_timestamp(self.last_reviewed_at),
            "stability": self.stability,
            "retrievalCount": self.retrieval_count,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.retention_factor is not None:
            data["retentionFactor"] = self.retention_factor
            data["effectiveMastery"] = self.effective_mastery
            data["retentionStatus"] = self.retention_status
        return data

    def to_row(self) -> dict:
        """Persisted columns only; unique on (graph_id, student_id, skill_id)."""
        return {
            "graph_id": self.graph_id,
            "student_id": self.student_id,
            "skill_id": self.skill_id,
            "earned_points": self.earned_points,
            "max_points": self.max_points,
            "raw_mastery": self.raw_mastery,
            "last_reviewed_at": format_timestamp(self.last_reviewed_at),
            "stability": self.stability,
            "retrieval_count": self.retrieval_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KPMastery":
        stability = data.get("stability")
        return cls(
            graph_id=str(_pick(data, "graphId", "graph_id")),
            student_id=str(_pick(data, "studentId", "student_id")),
            skill_id=str(_pick(data, "skillId", "skill_id")),
            earned_points=float(_pick(data, "earnedPoints", "earned_points", 0) or 0),
            max_points=float(_pick(data, "maxPoints", "max_points", 0) or 0),
            raw_mastery=float(_pick(data, "rawMastery", "raw_mastery", 0) or 0),
            last_reviewed_at=parse_timestamp(_pick(data, "lastReviewedAt", "last_reviewed_at")),
            stability=float(stability) if stability is not None else INITIAL_STABILITY,
            retrieval_count=int(_pick(data, "retrievalCount", "retrieval_count", 0) or 0),
            id=data.get("id"),
        )


def create_empty_mastery(graph_id: str, student_id: str, skill_id: str) -> KPMastery:
    """Zeroed record for a skill that has not been touched yet."""
    return KPMastery(graph_id=graph_id, student_id=student_id, skill_id=skill_id)


@dataclass(frozen=True)
class StudentMasterySummary:
    student_id: str
    overall_mastery: float
    mastered_kps: int
    aging_kps: int
    expired_kps: int
    total_kps: int
    student_name: str = ""

    def to_dict(self) -> dict:
        data = {
            "studentId": self.student_id,
            "overallMastery": self.overall_mastery,
            "masteredKPs": self.mastered_kps,
            "agingKPs": self.aging_kps,
            "expiredKPs": self.expired_kps,
            "totalKPs": self.total_kps,
        }
        if self.student_name:
            data["studentName"] = self.student_name
        return data


# ==================== Classes ====================

@dataclass(frozen=True)
class ClassStudent:
    class_id: str
    student_id: str
    student_name: str = ""

    def to_row(self) -> dict:
        return {"class_id": self.class_id, "student_id": self.student_id,
                "student_name": self.student_name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassStudent":
        student_id = str(_pick(data, "studentId", "student_id"))
        return cls(
            class_id=str(_pick(data, "classId", "class_id")),
            student_id=student_id,
            student_name=_pick(data, "studentName", "student_name") or "",
        )


@dataclass(frozen=True)
class SkillCohortStats:
    """How one skill stands across a class."""
    skill_id: str
    average_mastery: float
    students_above_80: int
    students_below_50: int
    student_count: int

    def to_dict(self) -> dict:
        return {
            "skillId": self.skill_id,
            "averageMastery": self.average_mastery,
            "studentsAbove80": self.students_above_80,
            "studentsBelow50": self.students_below_50,
            "studentCount": self.student_count,
        }


@dataclass
class ClassAnalytics:
    class_id: str
    class_name: str
    total_students: int
    skills: Dict[str, SkillCohortStats] = field(default_factory=dict)
    student_summaries: List[StudentMasterySummary] = field(default_factory=list)
    weak_spots: List[SkillCohortStats] = field(default_factory=list)
    at_risk_students: List[StudentMasterySummary] = field(default_factory=list)

    def average_mastery_by_skill(self) -> Dict[str, float]:
        return {skill_id: stats.average_mastery for skill_id, stats in self.skills.items()}

    def to_dict(self) -> dict:
        return {
            "classId": self.class_id,
            "className": self.class_name,
            "totalStudents": self.total_students,
            "averageMasteryBySkill": self.average_mastery_by_skill(),
            "skills": {k: v.to_dict() for k, v in self.skills.items()},
            "studentSummaries": [s.to_dict() for s in self.student_summaries],
            "weakSpots": [w.to_dict() for w in self.weak_spots],
            "atRiskStudents": [s.to_dict() for s in self.at_risk_students],
        }
