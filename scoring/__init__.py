"""Score computation helpers shared by the client and the API handlers."""

from .calculation import (
    AUTO_SCORED_TEST_TYPES,
    TEST_TYPES,
    ScoreSummary,
    calculate_average_score,
    calculate_grade,
    calculate_percentage,
    calculate_test_score,
    check_answer,
    format_score,
    score_class,
    score_message,
    validate_score,
)

__all__ = [
    "AUTO_SCORED_TEST_TYPES",
    "TEST_TYPES",
    "ScoreSummary",
    "calculate_average_score",
    "calculate_grade",
    "calculate_percentage",
    "calculate_test_score",
    "check_answer",
    "format_score",
    "score_class",
    "score_message",
    "validate_score",
]
