"""Level progress and sequential unlock rules for the quiz."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

MIN_LEVEL = 1
MAX_LEVEL = 6
LEVELS = tuple(range(MIN_LEVEL, MAX_LEVEL + 1))
LEVEL_RANGE_ERROR = f"level must be an integer between {MIN_LEVEL} and {MAX_LEVEL}"


def parse_level(value: object) -> Optional[int]:
    """Return the level as an int, or None when it is not an integer in range.

    Accepts loosely typed input: ints, and strings or floats holding an
    integral value ("3", " 3 ", "3.0").
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        level = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            level = int(text)
        except ValueError:
            try:
                as_float = float(text)
            except ValueError:
                return None
            if not as_float.is_integer():
                return None
            level = int(as_float)
    if level < MIN_LEVEL or level > MAX_LEVEL:
        return None
    return level


@dataclass(frozen=True)
class LevelProgress:
    total_questions: int = 0
    attempted_questions: int = 0

    @property
    def is_completed(self) -> bool:
        return self.total_questions > 0 and self.attempted_questions >= self.total_questions

    @property
    def is_in_progress(self) -> bool:
        return not self.is_completed and self.attempted_questions > 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalQuestions": self.total_questions,
            "attemptedQuestions": self.attempted_questions,
        }


@dataclass(frozen=True)
class UnlockState:
    completed_levels: frozenset[int]
    in_progress_levels: frozenset[int]
    unlocked_level: int
    level_progress: dict[int, LevelProgress] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "completedLevels": sorted(self.completed_levels),
            "inProgressLevels": sorted(self.in_progress_levels),
            "unlockedLevel": self.unlocked_level,
            "levelProgress": {
                str(level): progress.to_dict()
                for level, progress in sorted(self.level_progress.items())
            },
        }


def compute_unlock(level_stats: Mapping[int, LevelProgress]) -> UnlockState:
    """Derive completed/in-progress levels and the highest unlocked level.

    A level with no questions is neither completed nor in progress, and it
    stops advancement: levels unlock strictly in order, one past the last
    completed level in an unbroken run starting at level 1.
    """
    level_progress = {
        level: stats for level, stats in level_stats.items() if level in LEVELS
    }

    completed: set[int] = set()
    in_progress: set[int] = set()
    for level in LEVELS:
        stats = level_progress.get(level, LevelProgress())
        if stats.is_completed:
            completed.add(level)
        elif stats.is_in_progress:
            in_progress.add(level)

    unlocked_level = MIN_LEVEL
    for level in LEVELS[:-1]:
        if level not in completed:
            break
        unlocked_level = level + 1

    return UnlockState(
        completed_levels=frozenset(completed),
        in_progress_levels=frozenset(in_progress),
        unlocked_level=unlocked_level,
        level_progress=level_progress,
    )


def is_level_unlocked(state: UnlockState, level: int) -> bool:
    return MIN_LEVEL <= level <= state.unlocked_level
