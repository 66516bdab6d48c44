"""CSV question bank uploads: parsing, validation, deduplication and apply."""

from __future__ import annotations

import io
import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Mapping, NamedTuple, Optional, Sequence

import pandas as pd

from models import QuestionStore

from .progress import LEVEL_RANGE_ERROR, parse_level

logger = logging.getLogger(__name__)

UPLOAD_MODES = ("append", "replace")
FIRST_DATA_ROW_NUMBER = 2  # row 1 is the header

BATCH_DUPLICATE_REASON = "duplicate question in uploaded CSV for the same level"
STORE_DUPLICATE_REASON = "question already exists in database for this level"

_WHITESPACE_RE = re.compile(r"\s+")


class QuestionUploadError(ValueError):
    """Raised when an upload is rejected before anything is written."""

    def __init__(self, message: str, report: Optional["UploadReport"] = None) -> None:
        super().__init__(message)
        self.report = report


class CsvFormatError(QuestionUploadError):
    """Raised when the uploaded bytes are not well-formed CSV."""


class QuestionSaveError(RuntimeError):
    """Raised when the apply phase fails and the transaction was rolled back."""


class DedupKey(NamedTuple):
    text: str
    level: int


def dedup_key(question_text: str, level: int) -> DedupKey:
    """Lowercase, whitespace-collapsed question text paired with its level."""
    return DedupKey(_WHITESPACE_RE.sub(" ", question_text.lower()).strip(), level)


@dataclass(frozen=True)
class ValidatedRow:
    row_number: int
    question_text: str
    answer_text: str
    level: int

    def to_dict(self) -> dict[str, object]:
        return {
            "question": self.question_text,
            "answer": self.answer_text,
            "level": self.level,
        }


@dataclass
class UploadReport:
    mode: str
    total_rows: int
    inserted_count: int = 0
    deleted_attempts_count: int = 0
    deleted_questions_count: int = 0
    failed_rows: list[dict[str, object]] = field(default_factory=list)
    duplicate_rows: list[dict[str, object]] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicate_rows)

    @property
    def failed_count(self) -> int:
        return len(self.failed_rows) + len(self.duplicate_rows)

    def to_dict(self) -> dict[str, object]:
        return {
            "mode": self.mode,
            "totalRows": self.total_rows,
            "insertedCount": self.inserted_count,
            "deletedAttemptsCount": self.deleted_attempts_count,
            "deletedQuestionsCount": self.deleted_questions_count,
            "duplicateCount": self.duplicate_count,
            "failedCount": self.failed_count,
            "failedRows": self.failed_rows,
            "duplicateRows": self.duplicate_rows,
        }


def parse_question_csv(raw: bytes) -> list[dict[str, object]]:
    """Return the data rows of an uploaded CSV as dicts keyed by header name.

    Every record must have exactly as many fields as the header. A record
    with more or fewer fields makes the whole upload invalid format.
    """
    if not raw or not raw.strip():
        return []
    stream = io.BytesIO(raw)
    try:
        # an overlong first record is only a ParserWarning in pandas
        with warnings.catch_warnings():
            warnings.simplefilter("error", pd.errors.ParserWarning)
            df = pd.read_csv(
                stream,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding="utf-8-sig",
                index_col=False,
            )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, pd.errors.ParserWarning, UnicodeDecodeError) as exc:
        raise CsvFormatError("Invalid CSV format") from exc
    # with keep_default_na=False only missing trailing fields come back as NaN
    if df.isna().to_numpy().any():
        raise CsvFormatError("Invalid CSV format")
    df.columns = [str(column).strip() for column in df.columns]
    return df.to_dict(orient="records")


def _field_text(row: Mapping[str, object], name: str) -> str:
    value = row.get(name)
    if value is None:
        return ""
    return str(value).strip()


def validate_row(
    row: Mapping[str, object],
    row_number: int,
) -> tuple[Optional[ValidatedRow], Optional[str]]:
    """Return (validated row, None) or (None, failure reason)."""
    question = _field_text(row, "question")
    answer = _field_text(row, "answer")

    if not question:
        return None, "question is required"
    if not answer:
        return None, "answer is required"

    level = parse_level(row.get("level"))
    if level is None:
        return None, LEVEL_RANGE_ERROR

    return (
        ValidatedRow(
            row_number=row_number,
            question_text=question,
            answer_text=answer,
            level=level,
        ),
        None,
    )


def _issue(row_number: int, reason: str, row: object) -> dict[str, object]:
    return {"rowNumber": row_number, "reason": reason, "row": row}


def reconcile_questions(
    rows: Sequence[Mapping[str, object]],
    mode: str,
    actor_id: int,
    store: Optional[QuestionStore] = None,
) -> UploadReport:
    """Validate, deduplicate and atomically apply a batch of uploaded questions.

    Row-level problems are collected in the returned report. Whole-upload
    problems raise ``QuestionUploadError`` before any transaction is opened,
    and any failure while writing rolls the transaction back and raises
    ``QuestionSaveError``.
    """
    if mode not in UPLOAD_MODES:
        raise QuestionUploadError("mode must be either 'append' or 'replace'")
    if not rows:
        raise QuestionUploadError("CSV has no rows")

    report = UploadReport(mode=mode, total_rows=len(rows))
    valid_rows: list[ValidatedRow] = []

    for offset, row in enumerate(rows):
        row_number = offset + FIRST_DATA_ROW_NUMBER
        checked, reason = validate_row(row, row_number)
        if checked is None:
            report.failed_rows.append(_issue(row_number, reason, dict(row)))
            continue
        valid_rows.append(checked)

    if not valid_rows:
        raise QuestionUploadError("No valid rows found in CSV", report=report)

    seen_keys: set[DedupKey] = set()
    candidates: list[ValidatedRow] = []
    batch_duplicates: list[dict[str, object]] = []
    for checked in valid_rows:
        key = dedup_key(checked.question_text, checked.level)
        if key in seen_keys:
            batch_duplicates.append(
                _issue(checked.row_number, BATCH_DUPLICATE_REASON, checked.to_dict())
            )
            continue
        seen_keys.add(key)
        candidates.append(checked)

    store = store if store is not None else QuestionStore()
    store_duplicates: list[dict[str, object]] = []
    inserted_count = 0
    deleted_attempts_count = 0
    deleted_questions_count = 0

    try:
        with store.transaction() as tx:
            if mode == "replace":
                deleted_attempts_count = tx.count_attempts()
                deleted_questions_count = tx.count_questions()
                # attempts reference questions, so they go first
                tx.delete_all_attempts()
                tx.delete_all_questions()

            for checked in candidates:
                if tx.question_exists(checked.question_text, checked.level):
                    store_duplicates.append(
                        _issue(checked.row_number, STORE_DUPLICATE_REASON, checked.to_dict())
                    )
                    continue
                tx.insert_question(
                    question_text=checked.question_text,
                    answer_text=checked.answer_text,
                    level=checked.level,
                    created_by=actor_id,
                )
                inserted_count += 1
    except Exception as exc:
        logger.error(f"Failed to save questions ({mode} upload by user {actor_id}): {exc}", exc_info=True)
        raise QuestionSaveError("Failed to save questions") from exc

    report.inserted_count = inserted_count
    report.deleted_attempts_count = deleted_attempts_count
    report.deleted_questions_count = deleted_questions_count
    report.duplicate_rows = sorted(
        batch_duplicates + store_duplicates,
        key=lambda entry: entry["rowNumber"],
    )

    logger.info(
        f"Question upload by user {actor_id} ({mode}): {report.total_rows} rows, "
        f"{report.inserted_count} inserted, {report.duplicate_count} duplicates, "
        f"{len(report.failed_rows)} invalid"
    )
    return report
