from __future__ import annotations

from app.services.progress import LevelProgress, UnlockState, compute_unlock
from models import list_level_stats_for_student


def load_level_stats(student_id: int) -> dict[int, LevelProgress]:
    """Return per-level question totals and the student's attempted counts."""
    stats: dict[int, LevelProgress] = {}
    for row in list_level_stats_for_student(student_id):
        stats[int(row["level"])] = LevelProgress(
            total_questions=int(row.get("total_questions") or 0),
            attempted_questions=int(row.get("attempted_questions") or 0),
        )
    return stats


def fetch_unlock_state(student_id: int) -> UnlockState:
    """Compute the student's unlock state from stored aggregates."""
    return compute_unlock(load_level_stats(student_id))
