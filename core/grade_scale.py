"""Letter grades from mastery percentages."""

import math
from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class GradeDefinition:
    grade: str
    min_pct: float
    color: str

    def to_dict(self) -> dict:
        return {"grade": self.grade, "minPct": self.min_pct, "color": self.color}


@dataclass(frozen=True)
class GradeBoundary:
    grade: str
    min_score: int
    color: str

    def to_dict(self) -> dict:
        return {"grade": self.grade, "minScore": self.min_score, "color": self.color}


# Highest first; lower bounds are inclusive
GRADE_SCALE = (
    GradeDefinition("A+", 0.90, "#22c55e"),
    GradeDefinition("A", 0.75, "#4ade80"),
    GradeDefinition("B", 0.60, "#3b82f6"),
    GradeDefinition("C", 0.45, "#eab308"),
    GradeDefinition("D", 0.30, "#f97316"),
    GradeDefinition("F", 0.00, "#ef4444"),
)


def get_grade_for_percent(pct: float, scale: Sequence[GradeDefinition] = GRADE_SCALE) -> GradeDefinition:
    """Highest grade whose min_pct <= pct; the lowest grade if none qualifies."""
    ordered = sorted(scale, key=lambda g: g.min_pct, reverse=True)
    for grade in ordered:
        if pct >= grade.min_pct:
            return grade
    return ordered[-1]


def get_grade_for_score(score: float, max_score: float,
                        scale: Sequence[GradeDefinition] = GRADE_SCALE) -> GradeDefinition:
    if max_score <= 0:
        return min(scale, key=lambda g: g.min_pct)
    return get_grade_for_percent(score / max_score, scale)


def get_grade_boundaries(max_score: float,
                         scale: Sequence[GradeDefinition] = GRADE_SCALE) -> List[GradeBoundary]:
    """Minimum whole score needed for each grade out of max_score."""
    # round first: 0.3 * 10 is 3.0000000000000004 in floating point
    return [GradeBoundary(g.grade, math.ceil(round(g.min_pct * max_score, 9)), g.color) for g in scale]
