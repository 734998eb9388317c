"""Pure, deterministic answer checking and score helpers for test submissions."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE = "multiple_choice"
TRUE_FALSE = "true_false"
INPUT = "input"
MATCHING_TYPE = "matching_type"
WORD_MATCHING = "word_matching"
FILL_BLANKS = "fill_blanks"
DRAWING = "drawing"
SPEAKING = "speaking"

AUTO_SCORED_TEST_TYPES = frozenset(
    (MULTIPLE_CHOICE, TRUE_FALSE, INPUT, MATCHING_TYPE, WORD_MATCHING, FILL_BLANKS)
)
TEST_TYPES = AUTO_SCORED_TEST_TYPES | {DRAWING, SPEAKING}

_INPUT_NOISE = re.compile(r"[.,/*';:!@#$%^&()_+=\[\]{}|\\\"<>?\s-]+")
_LETTER = re.compile(r"^[a-z]$", re.IGNORECASE)
_DIGITS = re.compile(r"^\d+$")

_GRADE_BOUNDARIES = (
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (63, "D"),
    (60, "D-"),
)
_SCORE_MESSAGES = (
    (95, "Impeccable"),
    (90, "Super-duper Awesome"),
    (85, "Brilliant"),
    (80, "Spectacular"),
    (75, "Wonderful"),
    (70, "Amazing"),
    (65, "Good one"),
    (60, "Nice"),
    (55, "Cool"),
    (50, "Could be better"),
)


@dataclass(frozen=True)
class ScoreSummary:
    """Auto-scored result for one attempt."""

    score: int
    total: int
    percentage: int

    def to_payload(self) -> dict[str, int]:
        return {"score": self.score, "total": self.total, "percentage": self.percentage}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values, matching the web client."""
    return int(math.floor(value + 0.5))


def _is_blank(answer: Any) -> bool:
    if answer is None:
        return True
    return isinstance(answer, str) and not answer.strip()


def _answer_letter(answer: Any) -> str:
    """Map 'b', 'B', '1' or 1 to 'B'; anything else maps to ''."""
    if isinstance(answer, bool):
        return ""
    if isinstance(answer, int):
        return chr(65 + answer) if 0 <= answer < 26 else ""
    if isinstance(answer, str):
        trimmed = answer.strip()
        if _LETTER.match(trimmed):
            return trimmed.upper()
        if _DIGITS.match(trimmed):
            index = int(trimmed)
            return chr(65 + index) if index < 26 else ""
    return ""


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
    return None


def _strip_input_noise(value: str) -> str:
    return _INPUT_NOISE.sub("", value).lower().strip()


def _matches_with_extras(student: str, correct: str) -> bool:
    if student == correct:
        return True
    if not correct or correct not in student:
        return False
    if len(correct) == 1:
        return student.startswith(correct) or student.endswith(correct)
    return True


def _check_input(question: Mapping[str, Any], answer: Any) -> bool:
    student = str(answer)
    correct_answers = question.get("correct_answers")
    if isinstance(correct_answers, list):
        cleaned = _strip_input_noise(student)
        return any(
            _matches_with_extras(cleaned, _strip_input_noise(str(correct)))
            for correct in correct_answers
            if correct is not None
        )

    correct = question.get("correct_answer")
    if not isinstance(correct, str):
        return False
    return _matches_with_extras(student.lower().strip(), correct.lower().strip())


def _decode_structure(answer: Any) -> Any:
    if isinstance(answer, str):
        try:
            return json.loads(answer or "{}")
        except json.JSONDecodeError:
            return None
    return answer


def _fill_blank_correct_letter(question: Mapping[str, Any]) -> Any:
    correct_answers = question.get("correct_answers")
    if isinstance(correct_answers, list) and correct_answers:
        return correct_answers[0]
    return question.get("correct_answer")


def check_answer(question: Mapping[str, Any], answer: Any, test_type: str) -> bool:
    """Return whether a single answer is correct for the given test type."""
    if _is_blank(answer):
        return False

    if test_type == TRUE_FALSE:
        expected = _as_bool(question.get("correct_answer"))
        given = _as_bool(answer)
        return expected is not None and given is expected

    if test_type == MULTIPLE_CHOICE:
        letter = _answer_letter(answer)
        return letter != "" and letter == str(question.get("correct_answer") or "").strip().upper()

    if test_type == FILL_BLANKS:
        correct = _fill_blank_correct_letter(question)
        if not correct:
            return False
        letter = _answer_letter(answer)
        return letter != "" and letter == str(correct).strip().upper()

    if test_type == INPUT:
        return _check_input(question, answer)

    if test_type in {MATCHING_TYPE, WORD_MATCHING}:
        expected = question.get("correct_answer")
        if not isinstance(expected, (dict, list)):
            return False
        return _decode_structure(answer) == expected

    if test_type in {DRAWING, SPEAKING}:
        logger.warning("%s answers are scored by teachers, not automatically", test_type)
        return False

    logger.warning("Unknown test type for answer checking: %s", test_type)
    return False


def _answer_for(question: Mapping[str, Any], index: int, answers: Sequence[Any] | Mapping[str, Any]) -> Any:
    if isinstance(answers, Mapping):
        question_key = question.get("question_id", question.get("id", index))
        return answers.get(str(question_key))
    if index < len(answers):
        return answers[index]
    return None


def calculate_test_score(
    questions: Sequence[Mapping[str, Any]],
    answers: Sequence[Any] | Mapping[str, Any],
    test_type: str,
) -> ScoreSummary:
    """Score answers given by position or keyed by question id."""
    if not questions:
        return ScoreSummary(score=0, total=0, percentage=0)

    correct = 0
    for index, question in enumerate(questions):
        answer = _answer_for(question, index, answers)
        if answer is not None and check_answer(question, answer, test_type):
            correct += 1

    return ScoreSummary(
        score=correct,
        total=len(questions),
        percentage=calculate_percentage(correct, len(questions)),
    )


def calculate_percentage(score: float, total: float) -> int:
    if not total:
        return 0
    return round_half_up((score / total) * 100)


def calculate_average_score(results: Sequence[Mapping[str, Any]]) -> int | None:
    """Average of per-result rounded percentages; rows without a usable max score count as 0."""
    if not results:
        return None

    total = 0
    for row in results:
        score = row.get("score")
        max_score = row.get("max_score")
        if _is_number(score) and _is_number(max_score) and max_score > 0:
            total += round_half_up((score / max_score) * 100)
    return round_half_up(total / len(results))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_score(score: Any, max_score: Any) -> str | None:
    """Return a validation error message, or None when the pair is valid."""
    if not _is_number(score) or not _is_number(max_score):
        return "score and max_score must be numbers"
    if score < 0 or max_score < 0:
        return "score and max_score must be non-negative"
    if score > max_score:
        return "score cannot exceed max_score"
    return None


def calculate_grade(percentage: float | None) -> str:
    if percentage is None or percentage < 0 or percentage > 100:
        return "F"
    for boundary, grade in _GRADE_BOUNDARIES:
        if percentage >= boundary:
            return grade
    return "F"


def score_class(score: float | None, max_score: float | None) -> str:
    if score is None or not max_score:
        return ""
    percentage = calculate_percentage(score, max_score)
    if percentage >= 80:
        return "success"
    if percentage >= 60:
        return "warning"
    return "danger"


def score_message(percentage: float | None) -> str:
    if percentage is None:
        return "Godspeed!"
    for boundary, message in _SCORE_MESSAGES:
        if percentage >= boundary:
            return message
    return "Try harder"


def format_score(score: int | None, total: int | None, *, show_percentage: bool = True) -> str:
    if score is None or total is None:
        return "N/A"
    formatted = f"{score}/{total}"
    if show_percentage:
        return f"{formatted} ({calculate_percentage(score, total)}%)"
    return formatted
