"""
Aggregation - Rolls skill mastery up into subtopics and topics.

Hierarchy:
    Topic
    └── Subtopic
        └── Skill (knowledge point)

Each child is weighted by the square root of its max points:

    mastery = sum(m_i * sqrt(max_i)) / sum(sqrt(max_i))     (0 when no weight)

so a skill backed by many questions counts for more than one backed by a
single question, without drowning out the rest of its subtopic.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .constants import MASTERED_THRESHOLD
from .grade_scale import get_grade_for_percent
from .mastery_models import KPMastery, QuestionWithWeights, StudentAttempt

logger = logging.getLogger(__name__)


# ==================== Grouping Records ====================

@dataclass(frozen=True)
class SkillTopic:
    id: str
    name: str
    graph_id: Optional[str] = None
    color: str = ""
    display_order: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillTopic":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            graph_id=data.get("graph_id", data.get("graphId")),
            color=data.get("color") or "",
            display_order=int(data.get("display_order", data.get("displayOrder")) or 0),
        )

    def to_row(self) -> dict:
        return {"id": self.id, "graph_id": self.graph_id, "name": self.name,
                "color": self.color, "display_order": self.display_order}


@dataclass(frozen=True)
class SkillSubtopic:
    id: str
    name: str
    topic_id: Optional[str] = None
    graph_id: Optional[str] = None
    color: str = ""
    display_order: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillSubtopic":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            topic_id=data.get("topic_id", data.get("topicId")),
            graph_id=data.get("graph_id", data.get("graphId")),
            color=data.get("color") or "",
            display_order=int(data.get("display_order", data.get("displayOrder")) or 0),
        )

    def to_row(self) -> dict:
        return {"id": self.id, "graph_id": self.graph_id, "topic_id": self.topic_id,
                "name": self.name, "color": self.color, "display_order": self.display_order}


@dataclass(frozen=True)
class SkillRecord:
    """A graph skill and the subtopic it is grouped under, if any."""
    skill_id: str
    name: str = ""
    subtopic_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillRecord":
        skill_id = str(data.get("skill_id", data.get("skillId")))
        return cls(
            skill_id=skill_id,
            name=data.get("name") or skill_id,
            subtopic_id=data.get("subtopic_id", data.get("subtopicId")),
        )

    def to_row(self) -> dict:
        return {"skill_id": self.skill_id, "name": self.name, "subtopic_id": self.subtopic_id}


def build_skill_to_subtopic(skills: Iterable[SkillRecord]) -> Dict[str, str]:
    return {s.skill_id: s.subtopic_id for s in skills if s.subtopic_id}


@dataclass
class AggregatedMastery:
    mastery: float = 0.0
    skill_count: int = 0
    mastered_count: int = 0
    total_max_points: float = 0.0
    total_earned_points: float = 0.0

    def to_dict(self) -> dict:
        return {
            "mastery": self.mastery,
            "skillCount": self.skill_count,
            "masteredCount": self.mastered_count,
            "totalMaxPoints": self.total_max_points,
            "totalEarnedPoints": self.total_earned_points,
        }


@dataclass
class GroupMastery:
    subtopic_mastery: Dict[str, AggregatedMastery] = field(default_factory=dict)
    topic_mastery: Dict[str, AggregatedMastery] = field(default_factory=dict)
    ungrouped_mastery: AggregatedMastery = field(default_factory=AggregatedMastery)

    def to_dict(self) -> dict:
        return {
            "subtopicMastery": {k: v.to_dict() for k, v in self.subtopic_mastery.items()},
            "topicMastery": {k: v.to_dict() for k, v in self.topic_mastery.items()},
            "ungroupedMastery": self.ungrouped_mastery.to_dict(),
        }


# ==================== Weighted Rollup ====================

def sqrt_weighted_mean(children: Iterable[Tuple[float, float]]) -> float:
    """Mean of (mastery, max_points) pairs weighted by sqrt(max_points)."""
    weight_sum = 0.0
    weighted = 0.0
    for mastery, max_points in children:
        if max_points > 0:
            weight = math.sqrt(max_points)
            weight_sum += weight
            weighted += mastery * weight
    return weighted / weight_sum if weight_sum > 0 else 0.0


def _aggregate_skills(skill_ids: Sequence[str], skill_mastery: Mapping[str, KPMastery],
                      use_effective: bool) -> AggregatedMastery:
    records = [skill_mastery[s] for s in skill_ids if s in skill_mastery]
    return AggregatedMastery(
        mastery=sqrt_weighted_mean(
            (r.current_mastery if use_effective else r.raw_mastery, r.max_points) for r in records
        ),
        skill_count=len(skill_ids),
        mastered_count=sum(1 for r in records if r.raw_mastery >= MASTERED_THRESHOLD),
        total_max_points=sum(r.max_points for r in records),
        total_earned_points=sum(r.earned_points for r in records),
    )


def calculate_subtopic_mastery(subtopic_id: str, skill_mastery: Mapping[str, KPMastery],
                               skill_to_subtopic: Mapping[str, str],
                               use_effective: bool = False) -> AggregatedMastery:
    """
    Roll the skills assigned to a subtopic up into one figure.

    skill_count counts every assigned skill, with or without a mastery record.
    """
    skill_ids = [s for s, st in skill_to_subtopic.items() if st == subtopic_id]
    return _aggregate_skills(skill_ids, skill_mastery, use_effective)


def calculate_topic_mastery(topic_id: str, subtopics: Iterable[SkillSubtopic],
                            subtopic_mastery: Mapping[str, AggregatedMastery]) -> AggregatedMastery:
    """Roll subtopic aggregates up, weighting each by sqrt(its total max points)."""
    children = [
        subtopic_mastery[st.id] for st in subtopics
        if st.topic_id == topic_id and st.id in subtopic_mastery
    ]
    return AggregatedMastery(
        mastery=sqrt_weighted_mean((c.mastery, c.total_max_points) for c in children),
        skill_count=sum(c.skill_count for c in children),
        mastered_count=sum(c.mastered_count for c in children),
        total_max_points=sum(c.total_max_points for c in children),
        total_earned_points=sum(c.total_earned_points for c in children),
    )


def calculate_ungrouped_mastery(skill_mastery: Mapping[str, KPMastery],
                                skill_to_subtopic: Mapping[str, str],
                                use_effective: bool = False) -> AggregatedMastery:
    """Skills without a subtopic, aggregated as their own bucket."""
    skill_ids = [s for s in skill_mastery if s not in skill_to_subtopic]
    return _aggregate_skills(skill_ids, skill_mastery, use_effective)


def calculate_all_group_mastery(topics: Iterable[SkillTopic], subtopics: Iterable[SkillSubtopic],
                                skill_mastery: Mapping[str, KPMastery],
                                skill_to_subtopic: Mapping[str, str],
                                use_effective: bool = False) -> GroupMastery:
    """Subtopic, topic and ungrouped mastery in one pass."""
    subtopics = list(subtopics)
    result = GroupMastery()
    for subtopic in subtopics:
        result.subtopic_mastery[subtopic.id] = calculate_subtopic_mastery(
            subtopic.id, skill_mastery, skill_to_subtopic, use_effective
        )
    for topic in topics:
        result.topic_mastery[topic.id] = calculate_topic_mastery(
            topic.id, subtopics, result.subtopic_mastery
        )
    result.ungrouped_mastery = calculate_ungrouped_mastery(skill_mastery, skill_to_subtopic, use_effective)
    return result


# ==================== Student Topic Grades ====================

@dataclass
class KPGrade:
    skill_id: str
    skill_name: str
    correct: int
    total: int
    mastery: float

    def to_dict(self) -> dict:
        return {"skillId": self.skill_id, "skillName": self.skill_name,
                "correct": self.correct, "total": self.total, "mastery": self.mastery}


@dataclass
class SubtopicGrade:
    subtopic_id: str
    subtopic_name: str
    mastery_percent: float
    kps: List[KPGrade] = field(default_factory=list)

    @property
    def total_questions(self) -> int:
        return sum(kp.total for kp in self.kps)

    def to_dict(self) -> dict:
        return {"subtopicId": self.subtopic_id, "subtopicName": self.subtopic_name,
                "masteryPercent": self.mastery_percent, "kps": [kp.to_dict() for kp in self.kps]}


@dataclass
class TopicGrade:
    topic_id: str
    topic_name: str
    mastery_percent: float
    grade: str
    grade_color: str
    subtopics: List[SubtopicGrade] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"topicId": self.topic_id, "topicName": self.topic_name,
                "masteryPercent": self.mastery_percent, "grade": self.grade,
                "gradeColor": self.grade_color,
                "subtopics": [s.to_dict() for s in self.subtopics]}


def calculate_student_topic_grades(attempts: Iterable[StudentAttempt],
                                   questions: Iterable[QuestionWithWeights],
                                   skills: Iterable[SkillRecord],
                                   subtopics: Iterable[SkillSubtopic],
                                   topics: Iterable[SkillTopic]) -> List[TopicGrade]:
    """
    Per-student topic grades from raw rows.

    KP mastery      = distinct questions answered correctly / questions mapped
    Subtopic mastery = sqrt-weighted mean of KP mastery (weight: questions mapped)
    Topic mastery    = sqrt-weighted mean of subtopic mastery (weight: questions
                       mapped across the subtopic's KPs)
    """
    question_skills = {q.id: list(dict.fromkeys(q.skills)) for q in questions}
    skills = list(skills)
    skill_names = {s.skill_id: s.name for s in skills}
    skill_subtopic = build_skill_to_subtopic(skills)

    subtopics = list(subtopics)
    subtopic_names = {st.id: st.name for st in subtopics}
    subtopic_topic = {st.id: st.topic_id for st in subtopics if st.topic_id}

    correct_questions: Dict[str, Set[str]] = defaultdict(set)
    for attempt in attempts:
        if attempt.is_correct and attempt.question_id in question_skills:
            for skill_id in question_skills[attempt.question_id]:
                correct_questions[skill_id].add(attempt.question_id)

    mapped_totals: Dict[str, int] = defaultdict(int)
    for skill_list in question_skills.values():
        for skill_id in skill_list:
            mapped_totals[skill_id] += 1

    subtopic_kps: Dict[str, List[KPGrade]] = defaultdict(list)
    for skill_id, total in mapped_totals.items():
        subtopic_id = skill_subtopic.get(skill_id)
        if not subtopic_id:
            continue
        correct = len(correct_questions.get(skill_id, ()))
        subtopic_kps[subtopic_id].append(KPGrade(
            skill_id=skill_id,
            skill_name=skill_names.get(skill_id, skill_id),
            correct=correct,
            total=total,
            mastery=correct / total if total > 0 else 0.0,
        ))

    topic_subtopics: Dict[str, List[SubtopicGrade]] = defaultdict(list)
    for subtopic_id, kps in subtopic_kps.items():
        grade = SubtopicGrade(
            subtopic_id=subtopic_id,
            subtopic_name=subtopic_names.get(subtopic_id, subtopic_id),
            mastery_percent=sqrt_weighted_mean((kp.mastery, kp.total) for kp in kps),
            kps=kps,
        )
        topic_id = subtopic_topic.get(subtopic_id)
        if topic_id:
            topic_subtopics[topic_id].append(grade)

    result = []
    for topic in sorted(topics, key=lambda t: t.display_order):
        subs = topic_subtopics.get(topic.id, [])
        mastery = sqrt_weighted_mean((s.mastery_percent, s.total_questions) for s in subs)
        grade = get_grade_for_percent(mastery)
        result.append(TopicGrade(
            topic_id=topic.id,
            topic_name=topic.name,
            mastery_percent=mastery,
            grade=grade.grade,
            grade_color=grade.color,
            subtopics=subs,
        ))
    return result


# ==================== Topic Score Ranges ====================

@dataclass
class TopicScoreRange:
    graph_id: str
    topic_id: str
    topic_name: str
    min_score: int
    max_score: int
    unique_questions: int
    updated_at: Optional[datetime] = None

    def to_row(self) -> dict:
        return {
            "graph_id": self.graph_id,
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "min_score": self.min_score,
            "max_score": self.max_score,
            "unique_questions": self.unique_questions,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopicScoreRange":
        updated_at = data.get("updated_at")
        return cls(
            graph_id=data["graph_id"],
            topic_id=data["topic_id"],
            topic_name=data.get("topic_name") or "",
            min_score=int(data.get("min_score") or 0),
            max_score=int(data.get("max_score") or 0),
            unique_questions=int(data.get("unique_questions") or 0),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


def calculate_topic_score_ranges(graph_id: str, topics: Iterable[SkillTopic],
                                 subtopics: Iterable[SkillSubtopic],
                                 skills: Iterable[SkillRecord],
                                 questions: Iterable[QuestionWithWeights],
                                 now: Optional[datetime] = None) -> List[TopicScoreRange]:
    """
    Score range per topic under binary scoring.

    max_score is the number of distinct questions that touch any skill in
    the topic; min_score is always 0.
    """
    subtopic_topic = {st.id: st.topic_id for st in subtopics if st.topic_id}
    skill_topic = {}
    for skill in skills:
        topic_id = subtopic_topic.get(skill.subtopic_id) if skill.subtopic_id else None
        if topic_id:
            skill_topic[skill.skill_id] = topic_id

    topics = list(topics)
    topic_questions: Dict[str, Set[str]] = {t.id: set() for t in topics}
    for question in questions:
        for skill_id in question.skills:
            topic_id = skill_topic.get(skill_id)
            if topic_id in topic_questions:
                topic_questions[topic_id].add(question.id)

    ranges = []
    for topic in topics:
        count = len(topic_questions[topic.id])
        ranges.append(TopicScoreRange(
            graph_id=graph_id,
            topic_id=topic.id,
            topic_name=topic.name,
            min_score=0,
            max_score=count,
            unique_questions=count,
            updated_at=now,
        ))
    return ranges
