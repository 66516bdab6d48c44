from __future__ import annotations

from typing import Optional

from models import (
    create_attempt,
    get_attempt_with_question,
    list_submissions,
    question_exists_by_id,
)


def submit_attempt(
    *,
    student_id: int,
    question_id: int,
    student_answer: str,
) -> Optional[int]:
    """Record an answer; returns None when the question does not exist."""
    if not question_exists_by_id(question_id):
        return None
    return create_attempt(
        student_id=student_id,
        question_id=question_id,
        student_answer=student_answer,
    )


def fetch_attempt(attempt_id: int) -> Optional[dict[str, object]]:
    """Return the attempt joined with its question, if it exists."""
    return get_attempt_with_question(attempt_id)


def list_recent_submissions(
    *,
    level: Optional[int] = None,
    student_email: Optional[str] = None,
    limit: int = 300,
) -> list[dict[str, object]]:
    return list_submissions(level=level, student_email=student_email, limit=limit)
