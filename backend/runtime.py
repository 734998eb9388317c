"""API Gateway Lambda runtime handler for the testing platform routes."""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from backend import db, visibility_events
from backend.auth import (
    AuthConfig,
    AuthError,
    decode_refresh_token,
    issue_token_pair,
    require_principal,
    verify_password,
)
from classroom.models import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    ROLE_TEACHER,
    ModelValidationError,
    Principal,
    StudentProfile,
    TeacherProfile,
    TestDraft,
    TestSubmission,
    parse_manual_score,
    parse_positive_id,
    parse_test_id,
    parse_test_type,
    parse_visibility_events,
)
from scoring import calculate_average_score, calculate_grade, calculate_percentage, score_class
from testroom.anti_cheating import KeyValueStore

logger = logging.getLogger(__name__)

_TEST_ROUTE = re.compile(r"/tests/([^/]+)/([^/]+)/(questions|submit)")
_TEACHER_RESULTS_ROUTE = re.compile(r"/teacher/tests/([^/]+)/([^/]+)/results")
_RESULT_SCORE_ROUTE = re.compile(r"/teacher/tests/([^/]+)/([^/]+)/results/([^/]+)/score")
_ANTI_CHEATING_ROUTE = re.compile(r"/anti-cheating/([^/]+)/([^/]+)(/events)?")
_REFRESH_COOKIE = "refreshToken"
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
_DEFAULT_DUE_PERIOD = timedelta(days=7)
_DEFAULT_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"

_STUDENT_COLUMNS = 'student_id, name, surname, nickname, grade, "class", number, password'
_TEACHER_COLUMNS = "teacher_id, username, password, first_name, last_name, is_active"
_TEST_COLUMNS = "test_id, test_type, test_name, teacher_id, subject_id, num_questions, is_shuffled, created_at"
_RESULT_FIELDS = (
    "test_type",
    "test_id",
    "test_name",
    "teacher_id",
    "subject_id",
    "student_id",
    "grade",
    "class",
    "number",
    "name",
    "surname",
    "nickname",
    "score",
    "max_score",
    "answers",
    "time_taken",
    "started_at",
    "submitted_at",
    "caught_cheating",
    "visibility_change_times",
    "is_completed",
    "academic_period_id",
    "created_at",
)
_INSERT_RESULT_SQL = "INSERT INTO test_results ({columns}) VALUES ({values}) RETURNING id".format(
    columns=", ".join('"%s"' % name for name in _RESULT_FIELDS),
    values=", ".join(":" + name for name in _RESULT_FIELDS),
)


def _json_response(
    status_code: int,
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str] | None = None,
) -> Dict[str, Any]:
    """Build API Gateway Lambda proxy response."""
    origin = os.getenv("CORS_ALLOW_ORIGIN", "*").strip() or "*"
    methods = os.getenv("CORS_ALLOW_METHODS", "GET,POST,DELETE,OPTIONS").strip() or "GET,POST,DELETE,OPTIONS"
    allow_headers = os.getenv("CORS_ALLOW_HEADERS", _DEFAULT_ALLOW_HEADERS).strip() or _DEFAULT_ALLOW_HEADERS
    response_headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": allow_headers,
    }
    if origin != "*":
        response_headers["Access-Control-Allow-Credentials"] = "true"
    if headers:
        response_headers.update(headers)
    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(payload),
    }


def _error_response(status_code: int, message: str) -> Dict[str, Any]:
    return _json_response(status_code, {"success": False, "message": message})


def _request_method(event: Mapping[str, Any]) -> str:
    if isinstance(event.get("requestContext"), dict):
        context = event["requestContext"]
        if isinstance(context.get("http"), dict):
            method = context["http"].get("method")
            if isinstance(method, str) and method:
                return method.upper()

    method = event.get("httpMethod", "")
    if isinstance(method, str):
        return method.upper()
    return ""


def _request_path(event: Mapping[str, Any]) -> str:
    raw_path = event.get("rawPath")
    if isinstance(raw_path, str) and raw_path:
        return raw_path

    path = event.get("path")
    if isinstance(path, str) and path:
        return path

    return "/"


def _normalized_path(event: Mapping[str, Any], path: str) -> str:
    """Strip API Gateway stage prefixes (for example '/dev') from request paths."""
    context = event.get("requestContext")
    if not isinstance(context, dict):
        return path

    stage = context.get("stage")
    if not isinstance(stage, str) or not stage.strip():
        return path

    stage_prefix = f"/{stage.strip()}"
    if path == stage_prefix:
        return "/"
    if path.startswith(f"{stage_prefix}/"):
        return path[len(stage_prefix) :]
    return path


def _headers(event: Mapping[str, Any]) -> dict[str, str]:
    raw = event.get("headers")
    if not isinstance(raw, dict):
        return {}

    normalized: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(key, str) and isinstance(value, str):
            normalized[key.lower()] = value
    return normalized


def _cookies(headers: Mapping[str, str]) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for part in headers.get("cookie", "").split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name] = value
    return cookies


def _parse_json_body(event: Mapping[str, Any]) -> tuple[dict[str, Any] | None, str | None]:
    body = event.get("body")

    if isinstance(body, dict):
        return body, None

    if not isinstance(body, str):
        return None, "request body must be a JSON object"

    try:
        decoded = json.loads(body)
    except json.JSONDecodeError:
        return None, "request body must be valid JSON"

    if not isinstance(decoded, dict):
        return None, "request body must be a JSON object"

    return decoded, None


def _require_non_empty_string(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ModelValidationError(f"{field} is required")
    return value.strip()


def _utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _refresh_cookie(value: str, config: AuthConfig, *, max_age: int) -> str:
    parts = [f"{_REFRESH_COOKIE}={value}", "Path=/", f"Max-Age={max_age}", "HttpOnly", "Secure", "SameSite=Strict"]
    if config.cookie_domain:
        parts.append(f"Domain={config.cookie_domain}")
    return "; ".join(parts)


def _anti_cheating_store() -> KeyValueStore:
    return visibility_events.create_default_store()


def _fetch_student(student_id: str) -> dict[str, Any] | None:
    return db.fetch_one(
        f"SELECT {_STUDENT_COLUMNS} FROM users WHERE student_id = :student_id",
        {"student_id": student_id},
    )


def _fetch_teacher_by_username(username: str) -> dict[str, Any] | None:
    return db.fetch_one(
        f"SELECT {_TEACHER_COLUMNS} FROM teachers WHERE username = :username",
        {"username": username},
    )


def _fetch_teacher(teacher_id: str) -> dict[str, Any] | None:
    return db.fetch_one(
        f"SELECT {_TEACHER_COLUMNS} FROM teachers WHERE teacher_id = :teacher_id",
        {"teacher_id": teacher_id},
    )


def _fetch_test(test_type: str, test_id: int) -> dict[str, Any] | None:
    return db.fetch_one(
        f"SELECT {_TEST_COLUMNS} FROM tests WHERE test_id = :test_id AND test_type = :test_type",
        {"test_id": test_id, "test_type": test_type},
    )


def _test_summary(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "test_id": row["test_id"],
        "test_type": row["test_type"],
        "test_name": row["test_name"],
        "teacher_id": row["teacher_id"],
        "subject_id": row["subject_id"],
        "num_questions": row.get("num_questions"),
        "is_shuffled": bool(row.get("is_shuffled")),
    }


def _login_response(claims: Mapping[str, Any], profile_key: str, profile: Mapping[str, Any]) -> Dict[str, Any]:
    config = AuthConfig.from_env()
    tokens = issue_token_pair(claims, config)
    max_age = int(config.refresh_ttl.total_seconds())
    return _json_response(
        200,
        {"success": True, **tokens, profile_key: profile},
        headers={"Set-Cookie": _refresh_cookie(tokens["refreshToken"], config, max_age=max_age)},
    )


def _handle_student_login(event: Mapping[str, Any]) -> Dict[str, Any]:
    payload, error = _parse_json_body(event)
    if error is not None:
        return _error_response(400, error)

    student_id = _require_non_empty_string(payload, "studentId")
    password = _require_non_empty_string(payload, "password")

    row = _fetch_student(student_id)
    if row is None:
        raise AuthError(401, "User not found", "USERNAME_NOT_FOUND")
    if not verify_password(password, row.get("password")):
        raise AuthError(401, "Incorrect password", "PASSWORD_INCORRECT")

    profile = StudentProfile.from_row(row)
    logger.info("Student %s logged in", profile.student_id)
    return _login_response(profile.to_claims(), "student", profile.to_api_dict())


def _handle_teacher_login(event: Mapping[str, Any]) -> Dict[str, Any]:
    payload, error = _parse_json_body(event)
    if error is not None:
        return _error_response(400, error)

    username = _require_non_empty_string(payload, "username")
    password = _require_non_empty_string(payload, "password")

    row = _fetch_teacher_by_username(username)
    if row is None:
        raise AuthError(401, "User not found", "USERNAME_NOT_FOUND")
    if not verify_password(password, row.get("password")):
        raise AuthError(401, "Incorrect password", "PASSWORD_INCORRECT")

    profile = TeacherProfile.from_row(row)
    if not profile.is_active:
        raise AuthError(403, "Teacher account is inactive", "ACCOUNT_INACTIVE")

    logger.info("Teacher %s logged in", profile.teacher_id)
    return _login_response(profile.to_claims(), "teacher", profile.to_api_dict())


def _handle_refresh_token(event: Mapping[str, Any]) -> Dict[str, Any]:
    payload, _ = _parse_json_body(event)
    token = (payload or {}).get("refreshToken")
    if not isinstance(token, str) or not token.strip():
        token = _cookies(_headers(event)).get(_REFRESH_COOKIE, "")
    if not token.strip():
        raise AuthError(401, "Refresh token missing")

    config = AuthConfig.from_env()
    claims = decode_refresh_token(token.strip(), config)
    user_id = str(claims.get("sub") or "")
    role = claims.get("role")

    if role == ROLE_STUDENT:
        row = _fetch_student(user_id)
        if row is None:
            raise AuthError(401, "Invalid token", "INVALID_TOKEN")
        profile = StudentProfile.from_row(row)
        return _login_response(profile.to_claims(), "student", profile.to_api_dict())

    if role == ROLE_TEACHER:
        row = _fetch_teacher(user_id)
        if row is None:
            raise AuthError(401, "Invalid token", "INVALID_TOKEN")
        teacher = TeacherProfile.from_row(row)
        if not teacher.is_active:
            raise AuthError(403, "Teacher account is inactive", "ACCOUNT_INACTIVE")
        return _login_response(teacher.to_claims(), "teacher", teacher.to_api_dict())

    raise AuthError(401, "Invalid token", "INVALID_TOKEN")


def _handle_validate_token(event: Mapping[str, Any]) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env())
    return _json_response(200, {"success": True, "valid": True, "user": principal.to_user_info()})


def _handle_logout() -> Dict[str, Any]:
    config = AuthConfig.from_env()
    return _json_response(
        200,
        {"success": True, "message": "Logged out successfully"},
        headers={"Set-Cookie": _refresh_cookie("", config, max_age=0)},
    )


def _handle_active_tests(event: Mapping[str, Any]) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_STUDENT)
    if principal.grade is None or principal.class_name is None:
        return _error_response(400, "Student grade and class are required")

    rows = db.fetch_all(
        """
        SELECT a.assignment_id, a.test_id, t.test_type, t.test_name, t.teacher_id, t.subject_id,
               t.num_questions, t.is_shuffled, a.assigned_at, a.due_date
        FROM test_assignments a
        JOIN tests t ON t.test_id = a.test_id
        WHERE a.grade = :grade AND a."class" = :class_name AND a.is_active = :active
          AND NOT EXISTS (
            SELECT 1 FROM test_results r
            WHERE r.test_id = a.test_id AND r.test_type = t.test_type
              AND r.student_id = :student_id AND r.is_completed = :completed
          )
        ORDER BY a.assigned_at DESC, a.assignment_id DESC
        """,
        {
            "grade": principal.grade,
            "class_name": principal.class_name,
            "active": True,
            "completed": True,
            "student_id": principal.user_id,
        },
    )

    tests = []
    for row in rows:
        summary = _test_summary(row)
        summary.update(
            {
                "assignment_id": row["assignment_id"],
                "assigned_at": row.get("assigned_at"),
                "due_date": row.get("due_date"),
            }
        )
        tests.append(summary)
    return _json_response(200, {"success": True, "tests": tests})


def _handle_test_questions(event: Mapping[str, Any], test_type: str, test_id: int) -> Dict[str, Any]:
    require_principal(_headers(event), AuthConfig.from_env(), ROLE_STUDENT, ROLE_TEACHER, ROLE_ADMIN)

    test = _fetch_test(test_type, test_id)
    if test is None:
        return _error_response(404, "Test not found")

    rows = db.fetch_all(
        "SELECT question_id, position, payload FROM test_questions WHERE test_id = :test_id "
        "ORDER BY position, question_id",
        {"test_id": test_id},
    )
    questions = []
    for row in rows:
        try:
            decoded = json.loads(row["payload"])
        except (TypeError, json.JSONDecodeError):
            logger.warning("Skipping unreadable question %s on test %s", row.get("question_id"), test_id)
            continue
        question = decoded if isinstance(decoded, dict) else {"question": decoded}
        question["question_id"] = row["question_id"]
        questions.append(question)

    return _json_response(200, {"success": True, "test": _test_summary(test), "questions": questions})


def _handle_submit(event: Mapping[str, Any], test_type: str, test_id: int) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_STUDENT)
    payload, error = _parse_json_body(event)
    if error is not None:
        return _error_response(400, error)

    submission = TestSubmission.from_payload(payload, test_type=test_type, test_id=test_id)
    if _fetch_test(test_type, test_id) is None:
        return _error_response(404, "Test not found")

    existing = db.fetch_one(
        "SELECT id FROM test_results WHERE test_type = :test_type AND test_id = :test_id "
        "AND student_id = :student_id AND is_completed = :completed",
        {"test_type": test_type, "test_id": test_id, "student_id": principal.user_id, "completed": True},
    )
    if existing is not None:
        return _error_response(409, "Test already completed")

    row = submission.to_row(principal, created_at=_utc_now_rfc3339())
    result_id = db.insert_returning_id(_INSERT_RESULT_SQL, row)
    logger.info(
        "Stored result %s for student %s on %s/%s (cheating=%s)",
        result_id,
        principal.user_id,
        test_type,
        test_id,
        submission.caught_cheating,
    )
    return _json_response(
        200,
        {
            "success": True,
            "message": "Test submitted successfully",
            "result_id": result_id,
            "score": submission.score,
            "max_score": submission.max_score,
            "percentage_score": submission.percentage,
        },
    )


def _result_payload(row: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(row)
    percentage = calculate_percentage(row["score"], row["max_score"])
    result.update(
        {
            "caught_cheating": bool(row.get("caught_cheating")),
            "percentage": percentage,
            "grade_letter": calculate_grade(percentage),
            "score_class": score_class(row["score"], row["max_score"]),
        }
    )
    return result


def _handle_student_results(event: Mapping[str, Any]) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_STUDENT)
    rows = db.fetch_all(
        """
        SELECT id AS result_id, test_type, test_id, test_name, subject_id, score, max_score,
               caught_cheating, visibility_change_times, submitted_at, created_at
        FROM test_results
        WHERE student_id = :student_id AND is_completed = :completed
        ORDER BY created_at DESC, id DESC
        """,
        {"student_id": principal.user_id, "completed": True},
    )
    return _json_response(200, {"success": True, "results": [_result_payload(row) for row in rows]})


def _fetch_owned_test(principal: Principal, test_type: str, test_id: int) -> dict[str, Any] | None:
    test = _fetch_test(test_type, test_id)
    if test is not None and principal.role == ROLE_TEACHER and str(test["teacher_id"]) != principal.user_id:
        raise AuthError(403, "Access denied. Test belongs to another teacher.", "FORBIDDEN")
    return test


def _handle_create_test(event: Mapping[str, Any]) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_TEACHER)
    payload, error = _parse_json_body(event)
    if error is not None:
        return _error_response(400, error)

    draft = TestDraft.from_payload(payload)
    now = datetime.now(timezone.utc)
    created_at = now.strftime(_TIMESTAMP_FORMAT)
    default_due_date = (now + _DEFAULT_DUE_PERIOD).strftime(_TIMESTAMP_FORMAT)

    with db.transaction() as conn:
        test_id = conn.execute(
            text(
                "INSERT INTO tests (test_type, test_name, teacher_id, subject_id, num_questions, is_shuffled, "
                "created_at) VALUES (:test_type, :test_name, :teacher_id, :subject_id, :num_questions, "
                ":is_shuffled, :created_at) RETURNING test_id"
            ),
            {
                "test_type": draft.test_type,
                "test_name": draft.test_name,
                "teacher_id": principal.user_id,
                "subject_id": draft.subject_id,
                "num_questions": len(draft.questions),
                "is_shuffled": draft.is_shuffled,
                "created_at": created_at,
            },
        ).scalar_one()
        conn.execute(
            text("INSERT INTO test_questions (test_id, position, payload) VALUES (:test_id, :position, :payload)"),
            [
                {"test_id": test_id, "position": position, "payload": json.dumps(question)}
                for position, question in enumerate(draft.questions, start=1)
            ],
        )
        conn.execute(
            text(
                'INSERT INTO test_assignments (test_id, grade, "class", is_active, assigned_at, due_date) '
                "VALUES (:test_id, :grade, :class_name, :is_active, :assigned_at, :due_date)"
            ),
            [
                {
                    "test_id": test_id,
                    "grade": target.grade,
                    "class_name": target.class_name,
                    "is_active": True,
                    "assigned_at": created_at,
                    "due_date": target.due_date or default_due_date,
                }
                for target in draft.assignments
            ],
        )

    logger.info(
        "Teacher %s created %s test %s with %s assignment(s)",
        principal.user_id,
        draft.test_type,
        test_id,
        len(draft.assignments),
    )
    return _json_response(
        200,
        {
            "success": True,
            "message": f'Test "{draft.test_name}" created and assigned to {len(draft.assignments)} class(es) successfully',
            "test_id": test_id,
            "assignments_count": len(draft.assignments),
        },
    )


def _handle_result_score(event: Mapping[str, Any], test_type: str, test_id: int, result_id: int) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_TEACHER, ROLE_ADMIN)
    payload, error = _parse_json_body(event)
    if error is not None:
        return _error_response(400, error)

    if _fetch_owned_test(principal, test_type, test_id) is None:
        return _error_response(404, "Test not found")

    row = db.fetch_one(
        "SELECT id, max_score FROM test_results WHERE id = :result_id AND test_type = :test_type "
        "AND test_id = :test_id",
        {"result_id": result_id, "test_type": test_type, "test_id": test_id},
    )
    if row is None:
        return _error_response(404, "Result not found")

    max_score = int(row["max_score"])
    score = parse_manual_score(payload, max_score=max_score)
    db.execute("UPDATE test_results SET score = :score WHERE id = :result_id", {"score": score, "result_id": result_id})
    logger.info("Teacher %s set score %s/%s on result %s", principal.user_id, score, max_score, result_id)
    return _json_response(
        200,
        {
            "success": True,
            "result_id": result_id,
            "score": score,
            "max_score": max_score,
            "percentage": calculate_percentage(score, max_score),
        },
    )


def _handle_teacher_results(event: Mapping[str, Any], test_type: str, test_id: int) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_TEACHER, ROLE_ADMIN)

    test = _fetch_owned_test(principal, test_type, test_id)
    if test is None:
        return _error_response(404, "Test not found")

    rows = db.fetch_all(
        """
        SELECT id AS result_id, student_id, name, surname, nickname, grade, "class", number,
               score, max_score, caught_cheating, visibility_change_times, time_taken, submitted_at
        FROM test_results
        WHERE test_type = :test_type AND test_id = :test_id AND is_completed = :completed
        ORDER BY "class", number, id
        """,
        {"test_type": test_type, "test_id": test_id, "completed": True},
    )
    results = [_result_payload(row) for row in rows]
    return _json_response(
        200,
        {
            "success": True,
            "test": _test_summary(test),
            "results": results,
            "average_score": calculate_average_score(rows),
            "cheating_count": sum(1 for row in results if row["caught_cheating"]),
        },
    )


def _handle_anti_cheating(event: Mapping[str, Any], method: str, test_type: str, test_id: int) -> Dict[str, Any]:
    principal = require_principal(_headers(event), AuthConfig.from_env(), ROLE_STUDENT)
    store = visibility_events.student_store(_anti_cheating_store(), principal)

    if method == "GET":
        record = visibility_events.read_record(test_type=test_type, test_id=test_id, store=store)
        return _json_response(200, {"success": True, **record.to_item()})

    if method == "DELETE":
        visibility_events.clear_record(test_type=test_type, test_id=test_id, store=store)
        return _json_response(200, {"success": True})

    payload, error = _parse_json_body(event)
    if error is not None:
        return _error_response(400, error)
    events = parse_visibility_events(payload)
    snapshot = visibility_events.replay_events(events, test_type=test_type, test_id=test_id, store=store)
    return _json_response(200, {"success": True, **snapshot.to_payload()})


def _route(event: Mapping[str, Any], method: str, path: str) -> Dict[str, Any]:
    if method == "GET" and path == "/health":
        return _json_response(200, {"success": True, "status": "ok"})

    if method == "POST" and path == "/student-login":
        return _handle_student_login(event)

    if method == "POST" and path == "/teacher-login":
        return _handle_teacher_login(event)

    if method == "POST" and path == "/refresh-token":
        return _handle_refresh_token(event)

    if method == "POST" and path == "/validate-token":
        return _handle_validate_token(event)

    if method == "POST" and path == "/logout":
        return _handle_logout()

    if method == "GET" and path == "/student/active-tests":
        return _handle_active_tests(event)

    if method == "GET" and path == "/student/results":
        return _handle_student_results(event)

    match = _TEST_ROUTE.fullmatch(path)
    if match:
        test_type, test_id = parse_test_type(match.group(1)), parse_test_id(match.group(2))
        if method == "GET" and match.group(3) == "questions":
            return _handle_test_questions(event, test_type, test_id)
        if method == "POST" and match.group(3) == "submit":
            return _handle_submit(event, test_type, test_id)

    if method == "POST" and path == "/teacher/tests":
        return _handle_create_test(event)

    match = _RESULT_SCORE_ROUTE.fullmatch(path)
    if match and method == "POST":
        test_type, test_id = parse_test_type(match.group(1)), parse_test_id(match.group(2))
        return _handle_result_score(event, test_type, test_id, parse_positive_id(match.group(3), "resultId"))

    match = _TEACHER_RESULTS_ROUTE.fullmatch(path)
    if match and method == "GET":
        return _handle_teacher_results(event, parse_test_type(match.group(1)), parse_test_id(match.group(2)))

    match = _ANTI_CHEATING_ROUTE.fullmatch(path)
    if match:
        is_events = match.group(3) is not None
        if (method == "POST" and is_events) or (method in {"GET", "DELETE"} and not is_events):
            test_type, test_id = parse_test_type(match.group(1)), parse_test_id(match.group(2))
            return _handle_anti_cheating(event, method, test_type, test_id)

    return _error_response(404, "route not found")


def lambda_handler(event: Mapping[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway Lambda entrypoint for the testing platform routes."""
    method = _request_method(event)
    path = _normalized_path(event, _request_path(event))

    if method == "OPTIONS":
        return _json_response(200, {"success": True})

    try:
        return _route(event, method, path)
    except AuthError as exc:
        return _json_response(exc.status_code, exc.to_payload())
    except ModelValidationError as exc:
        return _error_response(400, str(exc))
    except SQLAlchemyError:
        logger.exception("Database error on %s %s", method, path)
        return _error_response(500, "Database error")
    except RuntimeError as exc:
        logger.exception("Runtime failure on %s %s", method, path)
        return _error_response(500, str(exc))
    except Exception as exc:  # pragma: no cover - defensive runtime guard
        logger.exception("Unhandled error on %s %s", method, path)
        return _error_response(500, f"internal error: {exc}")
