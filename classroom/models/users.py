"""Student, teacher and authenticated principal models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"
ROLES = frozenset((ROLE_STUDENT, ROLE_TEACHER, ROLE_ADMIN))


class ModelValidationError(ValueError):
    """Raised when model payloads or records fail validation."""


def _validate_non_empty_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ModelValidationError(f"{field_name}: expected string")
    if not value.strip():
        raise ModelValidationError(f"{field_name}: must not be empty")
    return value.strip()


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def convert_class(value: Any) -> int | None:
    """Convert a '1/15' grade/class label to its class number (15)."""
    text = str(value or "").strip()
    if "/" in text:
        text = text.split("/", 1)[1].strip()
    return _optional_int(text) if text else None


@dataclass(frozen=True)
class StudentProfile:
    """Student row as exposed to the client and embedded in access tokens."""

    student_id: str
    name: str
    surname: str
    nickname: str | None = None
    grade: int | None = None
    class_name: int | None = None
    number: int | None = None

    def __post_init__(self) -> None:
        _validate_non_empty_string(self.student_id, "student_id")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StudentProfile":
        return cls(
            student_id=str(row.get("student_id") or ""),
            name=str(row.get("name") or ""),
            surname=str(row.get("surname") or ""),
            nickname=_optional_text(row.get("nickname")),
            grade=_optional_int(row.get("grade")),
            class_name=_optional_int(row.get("class")),
            number=_optional_int(row.get("number")),
        )

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "name": self.name,
            "surname": self.surname,
            "nickname": self.nickname,
            "grade": self.grade,
            "class": self.class_name,
            "number": self.number,
        }

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": self.student_id,
            "role": ROLE_STUDENT,
            "name": self.name,
            "surname": self.surname,
            "nickname": self.nickname,
            "grade": self.grade,
            "class": self.class_name,
            "number": self.number,
        }


@dataclass(frozen=True)
class TeacherProfile:
    """Teacher row as exposed to the client and embedded in access tokens."""

    teacher_id: str
    username: str
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        _validate_non_empty_string(self.teacher_id, "teacher_id")
        _validate_non_empty_string(self.username, "username")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TeacherProfile":
        is_active = row.get("is_active")
        return cls(
            teacher_id=str(row.get("teacher_id") or ""),
            username=str(row.get("username") or ""),
            first_name=_optional_text(row.get("first_name")),
            last_name=_optional_text(row.get("last_name")),
            is_active=True if is_active is None else bool(is_active),
        )

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "teacher_id": self.teacher_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": self.teacher_id,
            "role": ROLE_TEACHER,
            "username": self.username,
            "name": self.first_name,
            "surname": self.last_name,
        }


@dataclass(frozen=True)
class Principal:
    """Caller identity decoded from a verified access token."""

    user_id: str
    role: str
    name: str | None = None
    surname: str | None = None
    nickname: str | None = None
    grade: int | None = None
    class_name: int | None = None
    number: int | None = None
    username: str | None = None

    def __post_init__(self) -> None:
        _validate_non_empty_string(self.user_id, "sub")
        if self.role not in ROLES:
            raise ModelValidationError(f"role: unsupported value '{self.role}'")

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        user_id = claims.get("sub")
        if claims.get("role") == ROLE_ADMIN and claims.get("admin_id") is not None:
            user_id = claims.get("admin_id")
        return cls(
            user_id=str(user_id or ""),
            role=str(claims.get("role") or ""),
            name=_optional_text(claims.get("name")),
            surname=_optional_text(claims.get("surname")),
            nickname=_optional_text(claims.get("nickname")),
            grade=_optional_int(claims.get("grade")),
            class_name=convert_class(claims.get("class")),
            number=_optional_int(claims.get("number")),
            username=_optional_text(claims.get("username")),
        )

    def to_user_info(self) -> dict[str, Any]:
        """User info in the validate-token shape, without unset fields."""
        info: dict[str, Any] = {
            "role": self.role,
            "name": self.name,
            "surname": self.surname,
            "nickname": self.nickname,
            "grade": self.grade,
            "class": self.class_name,
            "number": self.number,
            "username": self.username,
            f"{self.role}_id": self.user_id,
        }
        return {key: value for key, value in info.items() if value is not None}
