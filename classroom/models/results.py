"""Test submission and visibility event payload models."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from scoring import TEST_TYPES, calculate_percentage, validate_score

from .users import ModelValidationError, Principal, convert_class

_TEST_ID_PATTERN = re.compile(r"^\d+$")


def parse_test_type(value: Any) -> str:
    if not isinstance(value, str) or value.strip() not in TEST_TYPES:
        raise ModelValidationError(f"testType: unsupported value '{value}'")
    return value.strip()


def parse_positive_id(value: Any, field_name: str) -> int:
    text = str(value if value is not None else "").strip()
    if not _TEST_ID_PATTERN.match(text) or int(text) <= 0:
        raise ModelValidationError(f"{field_name}: expected a positive integer")
    return int(text)


def parse_test_id(value: Any) -> int:
    return parse_positive_id(value, "testId")


def _is_whole_number(value: Any) -> bool:
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


def _is_present(payload: Mapping[str, Any], field_name: str) -> bool:
    value = payload.get(field_name)
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _optional_number(payload: Mapping[str, Any], field_name: str) -> int | None:
    value = payload.get(field_name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ModelValidationError(f"{field_name}: expected non-negative number")
    return int(value)


def _optional_string(payload: Mapping[str, Any], field_name: str) -> str | None:
    value = payload.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ModelValidationError(f"{field_name}: expected string")
    return value.strip() or None


@dataclass(frozen=True)
class TestSubmission:
    """Validated body of a test submission."""

    __test__ = False

    test_type: str
    test_id: int
    test_name: str
    teacher_id: str
    subject_id: str
    score: int
    max_score: int
    answers: Any
    answers_by_id: Mapping[str, Any] | None = None
    question_order: list[Any] = field(default_factory=list)
    time_taken: int | None = None
    started_at: str | None = None
    submitted_at: str | None = None
    is_completed: bool = False
    caught_cheating: bool = False
    visibility_change_times: int = 0
    academic_period_id: int | None = None

    REQUIRED_FIELDS = ("test_name", "teacher_id", "subject_id", "score", "maxScore", "answers")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, test_type: str, test_id: int) -> "TestSubmission":
        missing = [name for name in cls.REQUIRED_FIELDS if not _is_present(payload, name)]
        if missing:
            raise ModelValidationError(f"Missing required fields: {', '.join(missing)}")

        score = payload["score"]
        max_score = payload["maxScore"]
        score_error = validate_score(score, max_score)
        if score_error is not None:
            raise ModelValidationError(score_error)
        if not (_is_whole_number(score) and _is_whole_number(max_score)):
            raise ModelValidationError("score and max_score must be whole numbers")

        answers_by_id = payload.get("answers_by_id")
        if answers_by_id is not None and not isinstance(answers_by_id, dict):
            raise ModelValidationError("answers_by_id: expected object")

        question_order = payload.get("question_order") or []
        if not isinstance(question_order, list):
            raise ModelValidationError("question_order: expected list")

        visibility_change_times = _optional_number(payload, "visibility_change_times") or 0

        return cls(
            test_type=test_type,
            test_id=test_id,
            test_name=str(payload["test_name"]).strip(),
            teacher_id=str(payload["teacher_id"]).strip(),
            subject_id=str(payload["subject_id"]).strip(),
            score=int(score),
            max_score=int(max_score),
            answers=payload["answers"],
            answers_by_id=answers_by_id,
            question_order=question_order,
            time_taken=_optional_number(payload, "time_taken"),
            started_at=_optional_string(payload, "started_at"),
            submitted_at=_optional_string(payload, "submitted_at"),
            is_completed=payload.get("is_completed") is True,
            caught_cheating=payload.get("caught_cheating") is True,
            visibility_change_times=visibility_change_times,
            academic_period_id=_optional_number(payload, "academic_period_id"),
        )

    @property
    def completed(self) -> bool:
        """A submission is final once submitted_at is set or the client marks it completed."""
        return bool(self.submitted_at) or self.is_completed

    @property
    def percentage(self) -> int:
        return calculate_percentage(self.score, self.max_score)

    def stored_answers(self) -> Any:
        """Prefer order-agnostic answers keyed by question id when provided."""
        if self.answers_by_id:
            return {"answers_by_id": dict(self.answers_by_id), "question_order": list(self.question_order)}
        return self.answers

    def to_row(self, principal: Principal, *, created_at: str) -> dict[str, Any]:
        """Bind parameters for the results insert."""
        return {
            "test_type": self.test_type,
            "test_id": self.test_id,
            "test_name": self.test_name,
            "teacher_id": self.teacher_id,
            "subject_id": self.subject_id,
            "student_id": principal.user_id,
            "grade": principal.grade,
            "class": principal.class_name,
            "number": principal.number,
            "name": principal.name,
            "surname": principal.surname,
            "nickname": principal.nickname,
            "score": self.score,
            "max_score": self.max_score,
            "answers": json.dumps(self.stored_answers()),
            "time_taken": self.time_taken,
            "started_at": self.started_at,
            "submitted_at": self.submitted_at,
            "caught_cheating": self.caught_cheating,
            "visibility_change_times": self.visibility_change_times,
            "is_completed": self.completed,
            "academic_period_id": self.academic_period_id,
            "created_at": created_at,
        }


@dataclass(frozen=True)
class AssignmentTarget:
    """One grade/class a new test is assigned to."""

    grade: int
    class_name: int
    due_date: str | None = None

    @classmethod
    def from_api_dict(cls, payload: Mapping[str, Any]) -> "AssignmentTarget":
        grade = payload.get("grade")
        if isinstance(grade, bool) or not isinstance(grade, int) or grade <= 0:
            raise ModelValidationError("assignments.grade: expected a positive integer")
        class_name = convert_class(payload.get("class"))
        if class_name is None or class_name <= 0:
            raise ModelValidationError("assignments.class: expected a class number or 'grade/class' label")
        return cls(grade=grade, class_name=class_name, due_date=_optional_string(payload, "due_date"))


@dataclass(frozen=True)
class TestDraft:
    """A teacher's new test with its questions and class assignments."""

    __test__ = False

    test_type: str
    test_name: str
    subject_id: str
    questions: list[dict[str, Any]]
    assignments: list[AssignmentTarget]
    is_shuffled: bool = False

    REQUIRED_FIELDS = ("test_type", "test_name", "subject_id", "questions", "assignments")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TestDraft":
        missing = [name for name in cls.REQUIRED_FIELDS if not _is_present(payload, name)]
        if missing:
            raise ModelValidationError(f"Missing required fields: {', '.join(missing)}")

        questions = payload["questions"]
        if not isinstance(questions, list) or not questions:
            raise ModelValidationError("Questions array is required and cannot be empty")
        if not all(isinstance(question, dict) for question in questions):
            raise ModelValidationError("questions: expected a list of objects")

        raw_assignments = payload["assignments"]
        if not isinstance(raw_assignments, list) or not raw_assignments:
            raise ModelValidationError("Assignments array is required and cannot be empty")
        assignments = []
        for raw in raw_assignments:
            if not isinstance(raw, dict):
                raise ModelValidationError("assignments: expected a list of objects")
            assignments.append(AssignmentTarget.from_api_dict(raw))
        if len({(target.grade, target.class_name) for target in assignments}) != len(assignments):
            raise ModelValidationError("assignments: each grade/class may appear only once")

        return cls(
            test_type=parse_test_type(payload["test_type"]),
            test_name=str(payload["test_name"]).strip(),
            subject_id=str(payload["subject_id"]).strip(),
            questions=[dict(question) for question in questions],
            assignments=assignments,
            is_shuffled=payload.get("is_shuffled") is True,
        )


def parse_manual_score(payload: Mapping[str, Any], *, max_score: int) -> int:
    """Validate a teacher-entered score against the stored maximum."""
    score = payload.get("score")
    if score is None:
        raise ModelValidationError("score is required")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not _is_whole_number(score):
        raise ModelValidationError("score: expected a whole number")
    if score < 0:
        raise ModelValidationError("Score cannot be negative")
    if score > max_score:
        raise ModelValidationError(f"Score cannot exceed max score of {max_score}")
    return int(score)


@dataclass(frozen=True)
class VisibilityEvent:
    """A client-reported visibility transition with its client clock in ms."""

    hidden: bool
    at_ms: float

    @classmethod
    def from_api_dict(cls, payload: Mapping[str, Any]) -> "VisibilityEvent":
        state = payload.get("state")
        if state not in {"hidden", "visible"}:
            raise ModelValidationError("state: expected 'hidden' or 'visible'")
        at = payload.get("at")
        if isinstance(at, bool) or not isinstance(at, (int, float)) or at < 0:
            raise ModelValidationError("at: expected non-negative millisecond timestamp")
        return cls(hidden=state == "hidden", at_ms=float(at))


def parse_visibility_events(payload: Mapping[str, Any]) -> list[VisibilityEvent]:
    """Parse an ordered batch of visibility events."""
    raw_events = payload.get("events")
    if not isinstance(raw_events, list):
        raise ModelValidationError("events: expected list")

    events: list[VisibilityEvent] = []
    for index, raw in enumerate(raw_events):
        if not isinstance(raw, dict):
            raise ModelValidationError(f"events[{index}]: expected object")
        event = VisibilityEvent.from_api_dict(raw)
        if events and event.at_ms < events[-1].at_ms:
            raise ModelValidationError("events: timestamps must be non-decreasing")
        events.append(event)
    return events
