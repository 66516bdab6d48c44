"""Data access layer for LevelQuiz without external ORM dependencies."""

from __future__ import annotations

import datetime
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional
from urllib.parse import urlparse

import psycopg
from flask_login import UserMixin
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from config.settings import get_settings

_connection: Optional[object] = None
_backend: Optional[str] = None  # "sqlite" or "postgres"

USER_ROLES = {"admin", "student"}


class User(UserMixin):
    """Flask-Login compatible user wrapper."""

    def __init__(
        self,
        *,
        id: int,
        name: str,
        email: str,
        password_hash: str,
        role: str,
        created_at: datetime.datetime,
    ) -> None:
        self.id = id
        self.name = name
        self.email = email
        self.password_hash = password_hash
        self.role = role
        self.created_at = created_at

    def to_public_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User id={self.id} role={self.role} email={self.email!r}>"


def _resolve_default_sqlite_path() -> str:
    root_dir = os.path.dirname(os.path.dirname(__file__))
    return os.path.join(root_dir, "levelquiz_dev.sqlite")


def _normalize_sqlite_path(database_url: str) -> str:
    parsed = urlparse(database_url)
    path = parsed.path or ""
    if path.startswith("/"):
        path = path[1:]
    if path in {"", ":memory:"}:
        return ":memory:"
    if parsed.netloc:
        path = os.path.join(parsed.netloc, path)
    return path or _resolve_default_sqlite_path()


def _unicode_lower(value):
    if isinstance(value, str):
        return value.lower()
    return value


def get_connection():
    """Return a singleton database connection."""
    global _connection, _backend
    if _connection is not None:
        return _connection

    settings = get_settings()
    database_url = settings.DATABASE_URL or f"sqlite:///{_resolve_default_sqlite_path()}"

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("sqlite"):
        db_path = _normalize_sqlite_path(database_url)
        conn = sqlite3.connect(
            db_path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        # built-in LOWER only folds ASCII
        conn.create_function("LOWER", 1, _unicode_lower, deterministic=True)
        _connection = conn
        _backend = "sqlite"
    else:
        conn = psycopg.connect(database_url, row_factory=dict_row)
        _connection = conn
        _backend = "postgres"

    return _connection


def reset_engine() -> None:
    """Reset the current database connection (used in tests)."""
    global _connection, _backend
    if _connection is not None:
        _connection.close()
    _connection = None
    _backend = None


def _adapt(query: str, backend: Optional[str] = None) -> str:
    """Translate psycopg placeholders for the sqlite driver."""
    if (backend or _backend) == "sqlite":
        return query.replace("%s", "?")
    return query


def check_database_connection() -> None:
    """Run a trivial query, raising if the database is unreachable."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        cur.execute("SELECT 1;")
        cur.fetchone()
    finally:
        cur.close()


def init_db() -> None:
    """Create the users, questions and attempts tables if they do not exist."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        if _backend == "postgres":
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    email VARCHAR(255) UNIQUE NOT NULL,
                    password_hash VARCHAR(255) NOT NULL,
                    role VARCHAR(16) NOT NULL CHECK (role IN ('admin', 'student')),
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS questions (
                    id SERIAL PRIMARY KEY,
                    question_text TEXT NOT NULL,
                    answer_text TEXT NOT NULL,
                    level INTEGER NOT NULL CHECK (level BETWEEN 1 AND 6),
                    created_by INTEGER NOT NULL REFERENCES users(id),
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS attempts (
                    id SERIAL PRIMARY KEY,
                    student_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
                    student_answer TEXT NOT NULL,
                    submitted_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
        else:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('admin', 'student')),
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    question_text TEXT NOT NULL,
                    answer_text TEXT NOT NULL,
                    level INTEGER NOT NULL CHECK (level BETWEEN 1 AND 6),
                    created_by INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(created_by) REFERENCES users(id)
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS attempts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id INTEGER NOT NULL,
                    question_id INTEGER NOT NULL,
                    student_answer TEXT NOT NULL,
                    submitted_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(student_id) REFERENCES users(id) ON DELETE CASCADE,
                    FOREIGN KEY(question_id) REFERENCES questions(id) ON DELETE CASCADE
                );
                """
            )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_questions_level
            ON questions (level);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_attempts_student
            ON attempts (student_id);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_attempts_question
            ON attempts (question_id);
            """
        )
        conn.commit()
    finally:
        cur.close()


def _row_to_dict(row) -> Optional[dict]:
    if row is None:
        return None
    if _backend == "sqlite":
        return dict(row)
    return row


def _row_to_scalar(row) -> int:
    if row is None:
        return 0
    if isinstance(row, dict):
        return next(iter(row.values()))
    return row[0]


def _row_to_user(row: Optional[dict]) -> Optional[User]:
    if not row:
        return None

    created_at = row.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.datetime.fromisoformat(created_at)

    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=row["role"],
        created_at=created_at,
    )


def _execute_fetchone(query: str, params: tuple) -> Optional[dict]:
    conn = get_connection()
    cur = conn.cursor()
    try:
        cur.execute(_adapt(query), params)
        return _row_to_dict(cur.fetchone())
    finally:
        cur.close()


def _execute_fetchall(query: str, params: tuple = ()) -> list[dict]:
    conn = get_connection()
    cur = conn.cursor()
    try:
        cur.execute(_adapt(query), params)
        rows = cur.fetchall() or []
        return [_row_to_dict(row) for row in rows]
    finally:
        cur.close()


def get_user_by_id(user_id: int) -> Optional[User]:
    row = _execute_fetchone(
        "SELECT * FROM users WHERE id = %s",
        (user_id,),
    )
    return _row_to_user(row)


def get_user_by_email(email: str) -> Optional[User]:
    if not email:
        return None

    row = _execute_fetchone(
        "SELECT * FROM users WHERE email = %s",
        (email,),
    )
    return _row_to_user(row)


def create_user(
    *,
    name: str,
    email: str,
    password_hash: str,
    role: str,
) -> User:
    normalized_role = role.lower()
    if normalized_role not in USER_ROLES:
        raise ValueError("Role must be 'admin' or 'student'.")

    conn = get_connection()
    cur = conn.cursor()
    try:
        if _backend == "postgres":
            cur.execute(
                """
                INSERT INTO users (name, email, password_hash, role)
                VALUES (%s, %s, %s, %s)
                RETURNING id;
                """,
                (name, email, password_hash, normalized_role),
            )
            new_id = cur.fetchone()["id"]
        else:
            cur.execute(
                """
                INSERT INTO users (name, email, password_hash, role)
                VALUES (?, ?, ?, ?);
                """,
                (name, email, password_hash, normalized_role),
            )
            new_id = cur.lastrowid
        conn.commit()
    except (sqlite3.IntegrityError, pg_errors.UniqueViolation) as exc:
        conn.rollback()
        raise ValueError("Email already in use.") from exc
    finally:
        cur.close()

    user = get_user_by_id(new_id)
    if user is None:
        raise RuntimeError("Failed to retrieve created user.")
    return user


class QuestionTransaction:
    """Statements available to the question bank inside one open transaction."""

    def __init__(self, cursor, backend: str) -> None:
        self._cur = cursor
        self._backend = backend

    def _execute(self, query: str, params: tuple = ()) -> None:
        self._cur.execute(_adapt(query, self._backend), params)

    def count_questions(self) -> int:
        self._execute("SELECT COUNT(*) AS total FROM questions")
        return int(_row_to_scalar(self._cur.fetchone()))

    def count_attempts(self) -> int:
        self._execute("SELECT COUNT(*) AS total FROM attempts")
        return int(_row_to_scalar(self._cur.fetchone()))

    def delete_all_attempts(self) -> None:
        self._execute("DELETE FROM attempts")

    def delete_all_questions(self) -> None:
        self._execute("DELETE FROM questions")

    def question_exists(self, question_text: str, level: int) -> bool:
        """Case-insensitive, trimmed match against stored questions of a level."""
        self._execute(
            """
            SELECT id FROM questions
            WHERE level = %s
              AND LOWER(TRIM(question_text)) = LOWER(TRIM(%s))
            LIMIT 1
            """,
            (level, question_text),
        )
        return self._cur.fetchone() is not None

    def insert_question(
        self,
        *,
        question_text: str,
        answer_text: str,
        level: int,
        created_by: int,
    ) -> int:
        if self._backend == "postgres":
            self._execute(
                """
                INSERT INTO questions (question_text, answer_text, level, created_by)
                VALUES (%s, %s, %s, %s)
                RETURNING id;
                """,
                (question_text, answer_text, level, created_by),
            )
            return int(self._cur.fetchone()["id"])
        self._execute(
            """
            INSERT INTO questions (question_text, answer_text, level, created_by)
            VALUES (%s, %s, %s, %s);
            """,
            (question_text, answer_text, level, created_by),
        )
        return int(self._cur.lastrowid)


class QuestionStore:
    """Question bank handle with scoped, all-or-nothing transactions."""

    def __init__(self, conn=None, backend: Optional[str] = None) -> None:
        self._conn = conn if conn is not None else get_connection()
        self._backend = backend or _backend or "sqlite"

    @contextmanager
    def transaction(self) -> Iterator[QuestionTransaction]:
        cur = self._conn.cursor()
        try:
            yield QuestionTransaction(cur, self._backend)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            cur.close()


def count_questions_by_level() -> dict[int, int]:
    rows = _execute_fetchall(
        """
        SELECT level, COUNT(*) AS question_count
        FROM questions
        GROUP BY level
        """
    )
    return {int(row["level"]): int(row["question_count"]) for row in rows}


def list_questions(level: Optional[int] = None) -> list[dict[str, object]]:
    """Return the question bank, newest first, with the creator's name."""
    query = """
        SELECT q.id, q.question_text, q.answer_text, q.level, q.created_at,
               u.name AS created_by_name
        FROM questions q
        JOIN users u ON q.created_by = u.id
    """
    params: tuple = ()
    if level is not None:
        query += " WHERE q.level = %s"
        params = (level,)
    query += " ORDER BY q.created_at DESC, q.id DESC"
    return _execute_fetchall(query, params)


def list_questions_for_level(level: int) -> list[dict[str, object]]:
    return _execute_fetchall(
        """
        SELECT id, question_text, level
        FROM questions
        WHERE level = %s
        ORDER BY id ASC
        """,
        (level,),
    )


def get_random_question_for_level(level: int) -> Optional[dict[str, object]]:
    return _execute_fetchone(
        """
        SELECT id, question_text, level
        FROM questions
        WHERE level = %s
        ORDER BY RANDOM()
        LIMIT 1
        """,
        (level,),
    )


def question_exists_by_id(question_id: int) -> bool:
    row = _execute_fetchone(
        "SELECT id FROM questions WHERE id = %s LIMIT 1",
        (question_id,),
    )
    return row is not None


def list_level_stats_for_student(student_id: int) -> list[dict[str, object]]:
    """Per-level totals of questions and of questions the student attempted."""
    return _execute_fetchall(
        """
        SELECT
            q.level,
            COUNT(DISTINCT q.id) AS total_questions,
            COUNT(DISTINCT a.question_id) AS attempted_questions
        FROM questions q
        LEFT JOIN attempts a
          ON a.question_id = q.id
         AND a.student_id = %s
        GROUP BY q.level
        ORDER BY q.level ASC
        """,
        (student_id,),
    )


def create_attempt(
    *,
    student_id: int,
    question_id: int,
    student_answer: str,
) -> int:
    """Persist a student's answer and return the new attempt id."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        if _backend == "postgres":
            cur.execute(
                """
                INSERT INTO attempts (student_id, question_id, student_answer)
                VALUES (%s, %s, %s)
                RETURNING id;
                """,
                (student_id, question_id, student_answer),
            )
            new_id = cur.fetchone()["id"]
        else:
            cur.execute(
                """
                INSERT INTO attempts (student_id, question_id, student_answer)
                VALUES (?, ?, ?);
                """,
                (student_id, question_id, student_answer),
            )
            new_id = cur.lastrowid
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
    return int(new_id)


def get_attempt_with_question(attempt_id: int) -> Optional[dict[str, object]]:
    return _execute_fetchone(
        """
        SELECT
            a.id AS attempt_id,
            a.student_id,
            a.student_answer,
            a.submitted_at,
            q.id AS question_id,
            q.question_text,
            q.answer_text AS correct_answer,
            q.level
        FROM attempts a
        JOIN questions q ON q.id = a.question_id
        WHERE a.id = %s
        LIMIT 1
        """,
        (attempt_id,),
    )


def list_submissions(
    *,
    level: Optional[int] = None,
    student_email: Optional[str] = None,
    limit: int = 300,
) -> list[dict[str, object]]:
    """Return recent attempts joined with student and question details."""
    where: list[str] = []
    params: list[object] = []

    if level is not None:
        where.append("q.level = %s")
        params.append(level)

    if student_email:
        where.append("LOWER(u.email) LIKE LOWER(%s)")
        params.append(f"%{student_email}%")

    query = """
        SELECT
            a.id AS attempt_id,
            a.student_answer,
            a.submitted_at,
            u.name AS student_name,
            u.email AS student_email,
            q.level,
            q.question_text,
            q.answer_text AS correct_answer
        FROM attempts a
        JOIN users u ON a.student_id = u.id
        JOIN questions q ON a.question_id = q.id
    """
    if where:
        query += " WHERE " + " AND ".join(where)
    query += " ORDER BY a.submitted_at DESC, a.id DESC LIMIT %s"
    params.append(int(limit))
    return _execute_fetchall(query, tuple(params))
