"""
Constants for graph deduplication, mastery scoring, retention and rollup.

These are fixed values. Grade displays downstream depend on the exact numbers,
so they are not read from the environment.
"""

# ==================== Skill Graph ====================

SKILL_TIERS = ("foundational", "core", "applied", "advanced")

# Word-overlap ratio at which two same-tier skill names are the same skill
SEMANTIC_MATCH_THRESHOLD = 0.6

# Tokens of this length or shorter are ignored when comparing names
MIN_TOKEN_LENGTH = 2

# ==================== Scoring ====================

# Independence multipliers - how much credit for each scaffolding level
INDEPENDENCE_MULTIPLIERS = {
    "independent": 1.0,
    "lightly_scaffolded": 0.7,
    "heavily_assisted": 0.4,
}

# Weight distribution for skills in a question
PRIMARY_SKILL_WEIGHT = 0.6
REMAINING_WEIGHT = 0.4

# Wrong answer penalty factor (20% of weight)
WRONG_ANSWER_PENALTY = 0.2

# ==================== Retention (Ebbinghaus) ====================

RETENTION_THRESHOLDS = {
    "current": 0.8,  # >= 80% retention
    "aging": 0.5,    # 50-79%
    # Below 50% = expired
}

# Initial memory strength, in days
INITIAL_STABILITY = 1.0

# Stability update: S' = S * (A * S^-B * e^(C*R) + D)
STABILITY_A = 1.2
STABILITY_B = 0.25
STABILITY_C = 1.5
STABILITY_D = 0.1

SECONDS_PER_DAY = 86400

# ==================== Mastery ====================

# A skill counts as mastered at or above this mastery
MASTERED_THRESHOLD = 0.8

MASTERY_THRESHOLDS = {
    "mastered": 0.9,
    "proficient": 0.7,
    "developing": 0.4,
    # Below 40% = needs work
}

# ==================== Class Analytics ====================

# Skills whose class average falls below this are weak spots
WEAK_SPOT_THRESHOLD = 0.6

# Students whose overall mastery falls below this are at risk
AT_RISK_THRESHOLD = 0.5
