from __future__ import annotations

from typing import Optional

from app.services.progress import LEVELS
from models import (
    count_questions_by_level,
    get_random_question_for_level,
    list_questions,
    list_questions_for_level,
)


def level_overview() -> list[dict[str, object]]:
    """Return one entry per level with its question count."""
    counts = count_questions_by_level()
    overview: list[dict[str, object]] = []
    for level in LEVELS:
        question_count = counts.get(level, 0)
        overview.append(
            {
                "level": level,
                "questionCount": question_count,
                "hasQuestions": question_count > 0,
            }
        )
    return overview


def list_bank(level: Optional[int] = None) -> list[dict[str, object]]:
    """Return stored questions, optionally limited to one level."""
    return list_questions(level)


def questions_for_level(level: int) -> list[dict[str, object]]:
    """Return the questions a student sees for a level, without answers."""
    return list_questions_for_level(level)


def random_question(level: int) -> Optional[dict[str, object]]:
    return get_random_question_for_level(level)
