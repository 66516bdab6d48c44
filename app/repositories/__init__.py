"""Database repository helpers for LevelQuiz."""

from .questions_repo import level_overview, list_bank, questions_for_level, random_question
from .progress_repo import fetch_unlock_state, load_level_stats
from .attempts_repo import fetch_attempt, list_recent_submissions, submit_attempt

__all__ = [
    "level_overview",
    "list_bank",
    "questions_for_level",
    "random_question",
    "fetch_unlock_state",
    "load_level_stats",
    "fetch_attempt",
    "list_recent_submissions",
    "submit_attempt",
]
