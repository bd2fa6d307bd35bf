"""Tests for core/mastery_engine.py"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from core.mastery_engine import (
    MasteryEngine,
    build_questions_map,
    calculate_class_analytics,
    compute_effective_mastery,
    get_kps_needing_review,
    process_attempt,
    process_attempts_batch,
    summarize_mastery,
)
from core.mastery_models import KPMastery, StudentAttempt
from core.scoring import WeightedScoring
from conftest import NOW, make_attempt, make_question


def _questions(*questions):
    return {q.id: q for q in questions}


def test_three_of_four_correct_is_075():
    questions = _questions(*(make_question(f"q{i}", "loops") for i in range(4)))
    attempts = [
        make_attempt("q0", True, 0),
        make_attempt("q1", True, 1),
        make_attempt("q2", False, 2),
        make_attempt("q3", True, 3),
    ]

    mastery = process_attempts_batch(attempts, questions)

    record = mastery["loops"]
    assert record.earned_points == 3
    assert record.max_points == 4
    assert record.raw_mastery == 0.75
    assert record.retrieval_count == 3


def test_process_attempt_returns_new_map():
    question = make_question("q1", "a", "b")
    start = {"a": KPMastery("g1", "s1", "a", earned_points=1, max_points=2, raw_mastery=0.5)}

    updated = process_attempt(make_attempt("q1", True), question, start)

    assert start["a"].max_points == 2
    assert updated["a"].max_points == 3
    assert updated["a"].earned_points == 2
    assert updated["b"].raw_mastery == 1.0
    assert updated is not start


def test_correct_attempt_updates_review_state():
    question = make_question("q1", "a")
    attempt = make_attempt("q1", True, 5)

    record = process_attempt(attempt, question, {})["a"]

    assert record.last_reviewed_at == attempt.attempted_at
    assert record.retrieval_count == 1
    assert record.stability == pytest.approx(1.2 * math.exp(1.5) + 0.1)


def test_wrong_attempt_leaves_review_state():
    question = make_question("q1", "a")
    record = process_attempt(make_attempt("q1", False), question, {})["a"]
    assert record.last_reviewed_at is None
    assert record.retrieval_count == 0
    assert record.stability == 1.0
    assert record.raw_mastery == 0.0


def test_max_points_never_decrease():
    question = make_question("q1", "a")
    mastery = {}
    previous = 0.0
    for i, correct in enumerate([True, False, False, True]):
        mastery = process_attempt(make_attempt("q1", correct, i), question, mastery)
        assert mastery["a"].max_points >= previous
        assert 0.0 <= mastery["a"].raw_mastery <= 1.0
        previous = mastery["a"].max_points


PRIOR_STATES = [(0.0, 0.0), (0.0, 3.0), (2.0, 4.0), (4.0, 4.0), (1.0, 5.0)]


@pytest.mark.parametrize("engine", [MasteryEngine(), MasteryEngine(scoring=WeightedScoring())],
                         ids=["binary", "weighted"])
@pytest.mark.parametrize("earned,max_points", PRIOR_STATES)
def test_correct_attempt_never_lowers_raw_mastery(engine, earned, max_points):
    prior = KPMastery("g1", "s1", "a", earned_points=earned, max_points=max_points)
    prior.recompute_raw()
    question = make_question("q1", "a", "b")

    updated = engine.process_attempt(make_attempt("q1", True), question, {"a": prior})

    assert updated["a"].raw_mastery >= prior.raw_mastery


@pytest.mark.parametrize("engine", [MasteryEngine(), MasteryEngine(scoring=WeightedScoring())],
                         ids=["binary", "weighted"])
@pytest.mark.parametrize("earned,max_points", PRIOR_STATES)
def test_incorrect_attempt_never_raises_raw_mastery(engine, earned, max_points):
    prior = KPMastery("g1", "s1", "a", earned_points=earned, max_points=max_points)
    prior.recompute_raw()
    question = make_question("q1", "a", "b")

    updated = engine.process_attempt(make_attempt("q1", False), question, {"a": prior})

    assert updated["a"].raw_mastery <= prior.raw_mastery


def test_repeated_skill_on_a_question_is_credited_once():
    record = process_attempt(make_attempt("q1", True), make_question("q1", "a", "a"), {})["a"]
    assert record.max_points == 1
    assert record.earned_points == 1
    assert record.retrieval_count == 1


def test_batch_is_processed_in_time_order():
    questions = _questions(make_question("q1", "a"))
    late = make_attempt("q1", True, 30)
    early = make_attempt("q1", True, 10)

    record = process_attempts_batch([late, early], questions)["a"]

    assert record.last_reviewed_at == late.attempted_at
    assert record.retrieval_count == 2


def test_unknown_question_is_skipped(caplog):
    questions = _questions(make_question("q1", "a"))
    attempts = [make_attempt("q1", True), make_attempt("ghost", True, 1)]

    with caplog.at_level("WARNING"):
        mastery = process_attempts_batch(attempts, questions)

    assert list(mastery) == ["a"]
    assert mastery["a"].max_points == 1
    assert "ghost" in caplog.text


def test_weighted_engine_keeps_earned_non_negative():
    engine = MasteryEngine(scoring=WeightedScoring())
    record = engine.process_attempt(make_attempt("q1", False), make_question("q1", "a"), {})["a"]
    assert record.earned_points == 0.0
    assert record.max_points == 1.0


def test_coverage_counts_unattempted_questions():
    questions = _questions(
        make_question("q1", "a"),
        make_question("q2", "a"),
        make_question("q3", "b"),
    )
    engine = MasteryEngine()

    mastery = engine.recompute_from_history("g1", "s1", [make_attempt("q1", True)], questions)

    assert mastery["a"].max_points == 2
    assert mastery["a"].raw_mastery == 0.5
    assert mastery["b"].max_points == 1
    assert mastery["b"].raw_mastery == 0.0
    assert mastery["b"].earned_points == 0.0


def test_coverage_caps_repeated_success():
    questions = _questions(make_question("q1", "a"))
    attempts = [make_attempt("q1", True, 0), make_attempt("q1", True, 1)]

    mastery = MasteryEngine().recompute_from_history("g1", "s1", attempts, questions)

    assert mastery["a"].earned_points == 2
    assert mastery["a"].max_points == 1
    assert mastery["a"].raw_mastery == 1.0


def test_recompute_is_deterministic():
    questions = _questions(make_question("q1", "a", "b"), make_question("q2", "b"))
    attempts = [make_attempt("q2", False, 2), make_attempt("q1", True, 1)]
    engine = MasteryEngine()

    first = engine.recompute_from_history("g1", "s1", attempts, questions)
    second = engine.recompute_from_history("g1", "s1", attempts, questions)

    assert {k: v.to_row() for k, v in first.items()} == {k: v.to_row() for k, v in second.items()}


def test_build_questions_map_accepts_both_casings():
    questions = build_questions_map([
        {"id": "q1", "skills": ["a"], "weightageMultiplier": 2},
        {"id": "q2", "skills": ["b"], "weightage_multiplier": 0.5},
    ])
    assert questions["q1"].weightage_multiplier == 2.0
    assert questions["q2"].weightage_multiplier == 0.5


def test_compute_effective_mastery_returns_copies():
    record = KPMastery("g1", "s1", "a", earned_points=1, max_points=1, raw_mastery=1.0,
                       last_reviewed_at=NOW - timedelta(days=1), stability=1.0)

    (decayed,) = compute_effective_mastery([record], NOW)

    assert record.effective_mastery is None
    assert decayed.effective_mastery == pytest.approx(math.exp(-1))
    assert decayed.retention_status == "expired"


def test_summary_and_review_list():
    fresh = KPMastery("g1", "s1", "a", max_points=1, earned_points=1, raw_mastery=1.0,
                      last_reviewed_at=NOW, stability=5.0)
    stale = KPMastery("g1", "s1", "b", max_points=2, earned_points=1, raw_mastery=0.5,
                      last_reviewed_at=NOW - timedelta(days=30), stability=1.0)
    records = compute_effective_mastery([fresh, stale], NOW)

    summary = summarize_mastery("s1", records)

    assert summary.total_kps == 2
    assert summary.mastered_kps == 1
    assert summary.expired_kps == 1
    assert summary.overall_mastery == pytest.approx(0.5)
    assert [r.skill_id for r in get_kps_needing_review(records)] == ["b"]


def test_batch_mixes_naive_and_aware_timestamps():
    questions = _questions(make_question("q1", "a"))
    naive = StudentAttempt("g1", "s1", "q1", True, datetime(2026, 1, 2, 9, 0))
    aware = StudentAttempt("g1", "s1", "q1", False, datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc))

    record = process_attempts_batch([naive, aware], questions)["a"]

    assert record.max_points == 2
    assert record.earned_points == 1
    # the naive attempt is read as UTC, so it is the later one
    assert record.last_reviewed_at == naive.attempted_at


def test_class_analytics():
    mastery_by_student = {
        "s1": [KPMastery("g1", "s1", "a", raw_mastery=0.9), KPMastery("g1", "s1", "b", raw_mastery=0.7)],
        "s2": [KPMastery("g1", "s2", "a", raw_mastery=0.4)],
        "s3": [],
    }

    analytics = calculate_class_analytics("c1", mastery_by_student, "Period 1", {"s2": "Ben"})

    assert analytics.total_students == 3
    assert analytics.skills["a"].average_mastery == pytest.approx(0.65)
    assert analytics.skills["a"].students_above_80 == 1
    assert analytics.skills["a"].students_below_50 == 1
    assert analytics.skills["b"].student_count == 1
    assert analytics.weak_spots == []
    assert [s.student_id for s in analytics.at_risk_students] == ["s2", "s3"]
    assert analytics.at_risk_students[0].student_name == "Ben"
    assert analytics.student_summaries[0].overall_mastery == pytest.approx(0.8)
    assert analytics.student_summaries[0].mastered_kps == 1


def test_class_analytics_ignores_retention_decay():
    decayed = KPMastery("g1", "s1", "a", raw_mastery=0.4, effective_mastery=0.1,
                        retention_factor=0.25, retention_status="expired")

    analytics = calculate_class_analytics("c1", {"s1": [decayed]})

    (summary,) = analytics.student_summaries
    assert summary.overall_mastery == 0.4
    assert summary.expired_kps == 0
    assert [w.skill_id for w in analytics.weak_spots] == ["a"]
    assert analytics.to_dict()["averageMasteryBySkill"] == {"a": 0.4}
