"""
Scoring policies - how one attempt turns into per-skill points.

    BinaryScoring        1 max point per skill, 1 earned if correct (default)
    WeightedScoring      primary/secondary skill weights x weightage multiplier,
                         wrong answers cost a fraction of the weight
    IndependenceScoring  WeightedScoring with earned credit scaled by how
                         independently the student answered
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .constants import (
    INDEPENDENCE_MULTIPLIERS,
    PRIMARY_SKILL_WEIGHT,
    REMAINING_WEIGHT,
    WRONG_ANSWER_PENALTY,
)
from .mastery_models import QuestionWithWeights, StudentAttempt


# ==================== Skill Weights ====================

def calculate_skill_weights(skills: Sequence[str],
                            primary_skills: Sequence[str] = ()) -> Dict[str, float]:
    """
    Weights summing to 1.0 for the skills of one question.

    Primaries share PRIMARY_SKILL_WEIGHT and the rest share REMAINING_WEIGHT.
    Without primaries (or when every skill is primary) the split is equal.
    """
    skills = list(dict.fromkeys(skills))
    if not skills:
        return {}
    primaries = [s for s in skills if s in set(primary_skills)]
    secondaries = [s for s in skills if s not in set(primaries)]
    if not primaries or not secondaries:
        return {s: 1.0 / len(skills) for s in skills}

    weights = {s: PRIMARY_SKILL_WEIGHT / len(primaries) for s in primaries}
    weights.update({s: REMAINING_WEIGHT / len(secondaries) for s in secondaries})
    return weights


def normalize_weights(weights: Mapping[str, float]) -> Dict[str, float]:
    """Scale weights to sum to 1.0; all-zero weights are returned unchanged."""
    total = sum(weights.values())
    if total == 0:
        return dict(weights)
    return {skill: weight / total for skill, weight in weights.items()}


def merge_weights(skills: Sequence[str], ai_weights: Optional[Mapping[str, float]] = None,
                  primary_skills: Sequence[str] = ()) -> Dict[str, float]:
    """Use model-supplied weights when they cover every skill, else the default split."""
    if not ai_weights or not all(s in ai_weights for s in skills):
        return calculate_skill_weights(skills, primary_skills)
    return normalize_weights({s: ai_weights[s] for s in skills})


# ==================== Policies ====================

class ScoringPolicy(ABC):
    """Maps (attempt, question, skill) to an (earned_delta, max_delta) pair."""

    name = "base"

    @abstractmethod
    def max_credit(self, question: QuestionWithWeights, skill_id: str) -> float:
        """Points available for the skill from one question."""

    @abstractmethod
    def credit(self, attempt: StudentAttempt, question: QuestionWithWeights,
               skill_id: str) -> Tuple[float, float]:
        """(earned points delta, max points delta) for one attempt."""


class BinaryScoring(ScoringPolicy):
    """Every mapped skill counts whole questions: +1 max, +1 earned if correct."""

    name = "binary"

    def max_credit(self, question, skill_id):
        return 1.0

    def credit(self, attempt, question, skill_id):
        return (1.0 if attempt.is_correct else 0.0), 1.0


class WeightedScoring(ScoringPolicy):
    """
    contribution = weight x weightage_multiplier

    Correct answers earn the contribution. Wrong answers subtract
    `penalty` x contribution (the engine keeps earned points >= 0).
    """

    name = "weighted"

    def __init__(self, penalty: float = WRONG_ANSWER_PENALTY):
        self.penalty = penalty

    def weights_for(self, question: QuestionWithWeights) -> Dict[str, float]:
        return merge_weights(question.skills, question.skill_weights, question.primary_skills)

    def max_credit(self, question, skill_id):
        return self.weights_for(question).get(skill_id, 0.0) * question.weightage_multiplier

    def credit(self, attempt, question, skill_id):
        available = self.max_credit(question, skill_id)
        if attempt.is_correct:
            return available, available
        return -self.penalty * available, available


class IndependenceScoring(WeightedScoring):
    """WeightedScoring with correct-answer credit scaled by independence level."""

    name = "independence"

    def __init__(self, penalty: float = WRONG_ANSWER_PENALTY,
                 multipliers: Optional[Mapping[str, float]] = None):
        super().__init__(penalty)
        self.multipliers = dict(multipliers or INDEPENDENCE_MULTIPLIERS)

    def credit(self, attempt, question, skill_id):
        earned, available = super().credit(attempt, question, skill_id)
        if earned > 0:
            earned *= self.multipliers.get(attempt.independence_level, 1.0)
        return earned, available


SCORING_POLICIES = {
    policy.name: policy
    for policy in (BinaryScoring, WeightedScoring, IndependenceScoring)
}


def get_scoring_policy(name: str) -> ScoringPolicy:
    """Instantiate a policy by name ('binary', 'weighted', 'independence')."""
    try:
        return SCORING_POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown scoring policy: {name!r}") from None


def list_scoring_policies() -> List[str]:
    return list(SCORING_POLICIES)
