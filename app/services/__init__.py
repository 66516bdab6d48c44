"""Service layer for question uploads and level progress."""

from . import progress, question_upload

__all__ = [
    "progress",
    "question_upload",
]
