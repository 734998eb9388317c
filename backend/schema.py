"""Relational tables read and written by the API handlers."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("student_id", String(64), primary_key=True),
    Column("name", String(128), nullable=False),
    Column("surname", String(128), nullable=False),
    Column("nickname", String(128)),
    Column("grade", Integer),
    Column("class", Integer),
    Column("number", Integer),
    Column("password", String(128), nullable=False),
)

teachers = Table(
    "teachers",
    metadata,
    Column("teacher_id", String(64), primary_key=True),
    Column("username", String(128), nullable=False, unique=True),
    Column("password", String(128), nullable=False),
    Column("first_name", String(128)),
    Column("last_name", String(128)),
    Column("is_active", Boolean, nullable=False, default=True),
)

tests = Table(
    "tests",
    metadata,
    Column("test_id", Integer, primary_key=True, autoincrement=True),
    Column("test_type", String(32), nullable=False),
    Column("test_name", String(256), nullable=False),
    Column("teacher_id", String(64), ForeignKey("teachers.teacher_id"), nullable=False),
    Column("subject_id", String(64), nullable=False),
    Column("num_questions", Integer, nullable=False, default=0),
    Column("is_shuffled", Boolean, nullable=False, default=False),
    Column("created_at", String(32), nullable=False),
)

test_questions = Table(
    "test_questions",
    metadata,
    Column("question_id", Integer, primary_key=True, autoincrement=True),
    Column("test_id", Integer, ForeignKey("tests.test_id"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("payload", Text, nullable=False),
)

test_assignments = Table(
    "test_assignments",
    metadata,
    Column("assignment_id", Integer, primary_key=True, autoincrement=True),
    Column("test_id", Integer, ForeignKey("tests.test_id"), nullable=False),
    Column("grade", Integer, nullable=False),
    Column("class", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("assigned_at", String(32), nullable=False),
    Column("due_date", String(32)),
    UniqueConstraint("test_id", "grade", "class", name="uq_test_assignments_class"),
)

test_results = Table(
    "test_results",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("test_type", String(32), nullable=False),
    Column("test_id", Integer, ForeignKey("tests.test_id"), nullable=False),
    Column("test_name", String(256), nullable=False),
    Column("teacher_id", String(64), nullable=False),
    Column("subject_id", String(64), nullable=False),
    Column("student_id", String(64), ForeignKey("users.student_id"), nullable=False),
    Column("grade", Integer),
    Column("class", Integer),
    Column("number", Integer),
    Column("name", String(128)),
    Column("surname", String(128)),
    Column("nickname", String(128)),
    Column("score", Integer, nullable=False),
    Column("max_score", Integer, nullable=False),
    Column("answers", Text, nullable=False),
    Column("time_taken", Integer),
    Column("started_at", String(32)),
    Column("submitted_at", String(32)),
    Column("caught_cheating", Boolean, nullable=False, default=False),
    Column("visibility_change_times", Integer, nullable=False, default=0),
    Column("is_completed", Boolean, nullable=False, default=False),
    Column("academic_period_id", Integer),
    Column("created_at", String(32), nullable=False),
)
