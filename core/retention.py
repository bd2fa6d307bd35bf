"""
Retention Model - Ebbinghaus forgetting curve with growing memory stability.

Forgetting curve:
    retention = exp(-days_since_review / stability)

Stability update on each successful retrieval:
    S' = S * (A * S^-B * exp(C * R) + D)

where R is the retention at the moment of the review. Growth is sublinear in
S (diminishing returns) and larger when the review happens before the skill
has been forgotten.

All functions are pure and total: bad stabilities are clamped to
INITIAL_STABILITY and a missing review date means full retention.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .constants import (
    INITIAL_STABILITY,
    RETENTION_THRESHOLDS,
    SECONDS_PER_DAY,
    STABILITY_A,
    STABILITY_B,
    STABILITY_C,
    STABILITY_D,
)


@dataclass(frozen=True)
class RetentionSnapshot:
    """Derived retention fields for one skill at one moment."""
    effective_mastery: float
    retention_factor: float
    retention_status: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def effective_stability(stability: Optional[float]) -> float:
    if stability is None or not stability > 0:
        return INITIAL_STABILITY
    return max(stability, INITIAL_STABILITY)


def days_since(last_reviewed_at: datetime, now: Optional[datetime] = None) -> float:
    """Days elapsed since the review; never negative."""
    now = as_utc(now or utcnow())
    elapsed = (now - as_utc(last_reviewed_at)).total_seconds() / SECONDS_PER_DAY
    return max(0.0, elapsed)


def calculate_retention(last_reviewed_at: Optional[datetime], stability: float,
                        now: Optional[datetime] = None) -> float:
    """
    Retention factor in [0, 1].

    Args:
        last_reviewed_at: Time of the last successful attempt, or None
        stability: Memory strength in days
        now: Evaluation time (defaults to the current UTC time)

    Returns:
        1.0 if never reviewed, else exp(-days / stability)
    """
    if last_reviewed_at is None:
        return 1.0
    return math.exp(-days_since(last_reviewed_at, now) / effective_stability(stability))


def get_retention_status(retention: float) -> str:
    """'current' (>= 0.8), 'aging' (>= 0.5) or 'expired'."""
    if retention >= RETENTION_THRESHOLDS["current"]:
        return "current"
    if retention >= RETENTION_THRESHOLDS["aging"]:
        return "aging"
    return "expired"


def calculate_effective_mastery(raw_mastery: float, last_reviewed_at: Optional[datetime],
                                stability: float, now: Optional[datetime] = None) -> RetentionSnapshot:
    """Apply retention decay to raw mastery."""
    retention = calculate_retention(last_reviewed_at, stability, now)
    return RetentionSnapshot(
        effective_mastery=raw_mastery * retention,
        retention_factor=retention,
        retention_status=get_retention_status(retention),
    )


def update_stability(current_stability: float, last_reviewed_at: Optional[datetime],
                     now: Optional[datetime] = None) -> float:
    """
    New stability after a successful retrieval at `now`.

    Retention at review time is measured against the PREVIOUS review date and
    stability, so call this before moving last_reviewed_at forward.
    """
    stability = effective_stability(current_stability)
    retention = calculate_retention(last_reviewed_at, stability, now)
    growth = STABILITY_A * stability ** (-STABILITY_B) * math.exp(STABILITY_C * retention) + STABILITY_D
    return stability * growth


def days_until_expiry(stability: float, current_retention: float) -> Optional[float]:
    """
    Days for retention to fall to the aging threshold, counted from a review.

    Solves threshold = exp(-t / S) for t. Returns None if retention is
    already below the threshold.
    """
    threshold = RETENTION_THRESHOLDS["aging"]
    if current_retention < threshold:
        return None
    return max(0.0, -effective_stability(stability) * math.log(threshold))
