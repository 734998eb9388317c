"""Domain models used by API handlers."""

from .results import (
    AssignmentTarget,
    TestDraft,
    TestSubmission,
    VisibilityEvent,
    parse_manual_score,
    parse_positive_id,
    parse_test_id,
    parse_test_type,
    parse_visibility_events,
)
from .users import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    ROLE_TEACHER,
    ModelValidationError,
    Principal,
    StudentProfile,
    TeacherProfile,
    convert_class,
)

__all__ = [
    "AssignmentTarget",
    "ModelValidationError",
    "Principal",
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "ROLE_TEACHER",
    "StudentProfile",
    "TeacherProfile",
    "TestDraft",
    "TestSubmission",
    "VisibilityEvent",
    "convert_class",
    "parse_manual_score",
    "parse_positive_id",
    "parse_test_id",
    "parse_test_type",
    "parse_visibility_events",
]
