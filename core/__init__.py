"""
Core module - Skill graph construction and the mastery engine.

Components:
    - knowledge_graph: Skill nodes, prerequisite edges, question paths
    - graph_merger: Batch graph merging with semantic node deduplication
    - graph_cleanup: DAG enforcement and level recomputation
    - retention: Ebbinghaus forgetting curve and stability growth
    - scoring: Pluggable attempt scoring policies
    - mastery_engine: Attempt folding into per-skill mastery, class analytics
    - aggregation: Square-root-weighted subtopic/topic rollup
    - grade_scale: Letter grades from percentages
"""

from .knowledge_graph import KnowledgeGraph, SkillNode, SkillEdge, QuestionPath
from .graph_merger import merge_graphs, deduplicate_nodes, are_equivalent, normalize_skill_name
from .graph_cleanup import clean_graph
from .retention import (
    RetentionSnapshot,
    calculate_retention,
    calculate_effective_mastery,
    update_stability,
    days_until_expiry,
    get_retention_status,
)
from .mastery_models import (
    KPMastery,
    StudentAttempt,
    QuestionWithWeights,
    StudentMasterySummary,
    ClassStudent,
    ClassAnalytics,
    SkillCohortStats,
)
from .scoring import ScoringPolicy, BinaryScoring, WeightedScoring, IndependenceScoring, get_scoring_policy
from .mastery_engine import (
    MasteryEngine,
    process_attempt,
    process_attempts_batch,
    compute_effective_mastery,
    summarize_mastery,
    calculate_class_analytics,
)
from .aggregation import (
    AggregatedMastery,
    SkillTopic,
    SkillSubtopic,
    SkillRecord,
    calculate_subtopic_mastery,
    calculate_topic_mastery,
    calculate_ungrouped_mastery,
    calculate_all_group_mastery,
    calculate_student_topic_grades,
    calculate_topic_score_ranges,
)
from .grade_scale import GRADE_SCALE, get_grade_for_percent, get_grade_for_score, get_grade_boundaries

__all__ = [
    "KnowledgeGraph",
    "SkillNode",
    "SkillEdge",
    "QuestionPath",
    "merge_graphs",
    "deduplicate_nodes",
    "are_equivalent",
    "normalize_skill_name",
    "clean_graph",
    "RetentionSnapshot",
    "calculate_retention",
    "calculate_effective_mastery",
    "update_stability",
    "days_until_expiry",
    "get_retention_status",
    "KPMastery",
    "StudentAttempt",
    "QuestionWithWeights",
    "StudentMasterySummary",
    "ClassStudent",
    "ClassAnalytics",
    "SkillCohortStats",
    "ScoringPolicy",
    "BinaryScoring",
    "WeightedScoring",
    "IndependenceScoring",
    "get_scoring_policy",
    "MasteryEngine",
    "process_attempt",
    "process_attempts_batch",
    "compute_effective_mastery",
    "summarize_mastery",
    "calculate_class_analytics",
    "AggregatedMastery",
    "SkillTopic",
    "SkillSubtopic",
    "SkillRecord",
    "calculate_subtopic_mastery",
    "calculate_topic_mastery",
    "calculate_ungrouped_mastery",
    "calculate_all_group_mastery",
    "calculate_student_topic_grades",
    "calculate_topic_score_ranges",
    "GRADE_SCALE",
    "get_grade_for_percent",
    "get_grade_for_score",
    "get_grade_boundaries",
]
