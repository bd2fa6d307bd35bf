"""Tests for core/scoring.py"""

import pytest

from core.scoring import (
    BinaryScoring,
    IndependenceScoring,
    WeightedScoring,
    calculate_skill_weights,
    get_scoring_policy,
    list_scoring_policies,
    merge_weights,
)
from conftest import make_attempt, make_question


def test_primary_skills_share_sixty_percent():
    weights = calculate_skill_weights(["a", "b", "c"], primary_skills=["a"])
    assert weights == pytest.approx({"a": 0.6, "b": 0.2, "c": 0.2})


def test_equal_split_without_primaries():
    assert calculate_skill_weights(["a", "b"]) == pytest.approx({"a": 0.5, "b": 0.5})
    assert calculate_skill_weights(["a", "b"], ["a", "b"]) == pytest.approx({"a": 0.5, "b": 0.5})
    assert calculate_skill_weights([]) == {}


def test_model_weights_used_only_when_complete():
    assert merge_weights(["a", "b"], {"a": 3, "b": 1}) == pytest.approx({"a": 0.75, "b": 0.25})
    assert merge_weights(["a", "b"], {"a": 3}) == pytest.approx({"a": 0.5, "b": 0.5})


def test_binary_scoring():
    question = make_question("q1", "a", "b")
    policy = BinaryScoring()
    assert policy.credit(make_attempt("q1", True), question, "a") == (1.0, 1.0)
    assert policy.credit(make_attempt("q1", False), question, "b") == (0.0, 1.0)
    assert policy.max_credit(question, "a") == 1.0


def test_weighted_scoring_penalizes_wrong_answers():
    question = make_question("q1", "a", "b", primary_skills=["a"], weightage_multiplier=2.0)
    policy = WeightedScoring()

    earned, available = policy.credit(make_attempt("q1", True), question, "a")
    assert (earned, available) == pytest.approx((1.2, 1.2))

    earned, available = policy.credit(make_attempt("q1", False), question, "b")
    assert available == pytest.approx(0.8)
    assert earned == pytest.approx(-0.16)


def test_independence_scoring_scales_correct_credit():
    question = make_question("q1", "a")
    policy = IndependenceScoring()

    earned, _ = policy.credit(make_attempt("q1", True, independence_level="lightly_scaffolded"),
                              question, "a")
    assert earned == pytest.approx(0.7)

    earned, _ = policy.credit(make_attempt("q1", True, independence_level="heavily_assisted"),
                              question, "a")
    assert earned == pytest.approx(0.4)

    earned, _ = policy.credit(make_attempt("q1", False, independence_level="heavily_assisted"),
                              question, "a")
    assert earned == pytest.approx(-0.2)


def test_policy_registry():
    assert list_scoring_policies() == ["binary", "weighted", "independence"]
    assert isinstance(get_scoring_policy("weighted"), WeightedScoring)
    with pytest.raises(ValueError):
        get_scoring_policy("curved")
