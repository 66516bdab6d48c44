from __future__ import annotations

import csv
import datetime
import io
import logging
import os
from functools import wraps
from typing import Callable, Optional, Sequence

from flask import Blueprint, Response, abort, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from config.settings import get_settings
from app.repositories import (
    fetch_attempt,
    fetch_unlock_state,
    level_overview,
    list_bank,
    list_recent_submissions,
    questions_for_level,
    random_question,
    submit_attempt,
)
from app.services.progress import LEVEL_RANGE_ERROR, is_level_unlocked, parse_level
from app.services.question_upload import (
    UPLOAD_MODES,
    QuestionSaveError,
    QuestionUploadError,
    parse_question_csv,
    reconcile_questions,
)
from models import QuestionStore, get_user_by_email
from .security import verify_password

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)

# largest id a signed 64-bit column holds
MAX_ID = 2**63 - 1


@bp.get("/health")
def health():
    return jsonify({"status": "ok", "service": "levelquiz"}), 200


def role_required(expected_role: str) -> Callable:
    """Ensure the current user has the provided role."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role != expected_role:
                abort(403, description="Forbidden")
            return view(*args, **kwargs)

        return wrapped

    return decorator


def _parse_level_arg(value: object, *, required: bool) -> Optional[int]:
    """Parse a level from query args; raises ValueError with the API message."""
    if value in (None, "") and not required:
        return None
    level = parse_level(value)
    if level is None:
        raise ValueError(LEVEL_RANGE_ERROR)
    return level


def _parse_positive_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a positive integer")
    try:
        result = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be a positive integer")
    if result <= 0 or result > MAX_ID:
        raise ValueError(f"{field_name} must be a positive integer")
    return result


def _isoformat_or_none(value: object) -> Optional[str]:
    if value in (None, "", "null"):
        return None
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.datetime.min.time()).isoformat()
    if isinstance(value, str):
        try:
            return datetime.datetime.fromisoformat(value).isoformat()
        except ValueError:
            return value
    return None


def _serialize_row(row: dict[str, object]) -> dict[str, object]:
    """Copy a database row, rendering timestamps as ISO-8601 strings."""
    return {
        key: _isoformat_or_none(value)
        if isinstance(value, (datetime.date, datetime.datetime))
        else value
        for key, value in row.items()
    }


def _csv_safe(value: object) -> object:
    """Escape values that could be interpreted as formulas by spreadsheet apps."""
    if isinstance(value, str) and value and value[0] in {"=", "+", "-", "@"}:
        return f"'{value}"
    return value


def _build_questions_csv(questions: Sequence[dict[str, object]]) -> str:
    """Return the question bank in the same column layout the upload accepts."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["question", "answer", "level"])
    for entry in questions:
        writer.writerow(
            [
                _csv_safe(entry.get("question_text")),
                _csv_safe(entry.get("answer_text")),
                entry.get("level"),
            ]
        )
    return output.getvalue()


# --- auth -----------------------------------------------------------------


@bp.post("/auth/login")
def auth_login():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if not isinstance(password, str):
        password = ""

    if not email or not password:
        return jsonify({"error": "email and password are required"}), 400

    user = get_user_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        return jsonify({"error": "Invalid credentials"}), 401

    login_user(user)
    return jsonify({"user": user.to_public_dict()})


@bp.post("/auth/logout")
@login_required
def auth_logout():
    logout_user()
    return jsonify({"success": True})


@bp.get("/auth/me")
@login_required
def auth_me():
    return jsonify({"user": current_user.to_public_dict()})


# --- admin ----------------------------------------------------------------


@bp.get("/admin/ping")
@role_required("admin")
def admin_ping():
    return jsonify({"message": "Admin route is accessible"})


@bp.post("/admin/questions/upload")
@role_required("admin")
def admin_upload_questions():
    upload = request.files.get("file")
    if upload is None:
        return jsonify({"error": "CSV file is required (field name: file)"}), 400

    mode = str(request.form.get("mode") or "append").strip().lower()
    if mode not in UPLOAD_MODES:
        return jsonify({"error": "mode must be either 'append' or 'replace'"}), 400

    settings = get_settings()
    stream = upload.stream
    stream.seek(0, os.SEEK_END)
    size_bytes = stream.tell()
    stream.seek(0)
    if size_bytes > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        return jsonify({"error": f"File exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit."}), 400

    try:
        rows = parse_question_csv(stream.read())
        report = reconcile_questions(rows, mode, current_user.id, QuestionStore())
    except QuestionUploadError as exc:
        logger.warning(f"Rejected question upload from user {current_user.id}: {exc}")
        body: dict[str, object] = {"error": str(exc)}
        if exc.report is not None:
            body["report"] = exc.report.to_dict()
        return jsonify(body), 400
    except QuestionSaveError as exc:
        return jsonify({"error": str(exc)}), 500

    if report.inserted_count > 0:
        message, status_code = "Upload processed", 201
    else:
        message, status_code = "Upload processed with no new inserts", 200
    return jsonify({"message": message, "report": report.to_dict()}), status_code


@bp.get("/admin/questions")
@role_required("admin")
def admin_list_questions():
    try:
        level = _parse_level_arg(request.args.get("level"), required=False)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    questions = [_serialize_row(row) for row in list_bank(level)]
    return jsonify({"questions": questions})


@bp.get("/admin/questions/export")
@role_required("admin")
def admin_export_questions():
    try:
        level = _parse_level_arg(request.args.get("level"), required=False)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    questions = sorted(list_bank(level), key=lambda row: (row["level"], row["id"]))
    response = Response(_build_questions_csv(questions), mimetype="text/csv")
    timestamp = datetime.datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    suffix = f"_level{level}" if level is not None else ""
    response.headers["Content-Disposition"] = (
        f'attachment; filename="levelquiz_questions{suffix}_{timestamp}.csv"'
    )
    return response


@bp.get("/admin/submissions")
@role_required("admin")
def admin_list_submissions():
    try:
        level = _parse_level_arg(request.args.get("level"), required=False)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    student_email = str(request.args.get("studentEmail") or "").strip()

    rows = list_recent_submissions(
        level=level,
        student_email=student_email or None,
        limit=get_settings().SUBMISSIONS_LIMIT,
    )
    return jsonify({"submissions": [_serialize_row(row) for row in rows]})


# --- student --------------------------------------------------------------


@bp.get("/student/ping")
@role_required("student")
def student_ping():
    return jsonify({"message": "Student route is accessible"})


@bp.get("/student/levels")
@role_required("student")
def student_levels():
    return jsonify({"levels": level_overview()})


@bp.get("/student/progress")
@role_required("student")
def student_progress():
    return jsonify(fetch_unlock_state(current_user.id).to_dict())


def _unlocked_level_from_args() -> int:
    """Return the requested level, aborting when it is invalid or locked."""
    try:
        level = _parse_level_arg(request.args.get("level"), required=True)
    except ValueError as exc:
        abort(400, description=str(exc))
    state = fetch_unlock_state(current_user.id)
    if not is_level_unlocked(state, level):
        abort(403, description=f"Level {level} is locked")
    return level


@bp.get("/student/questions")
@role_required("student")
def student_questions():
    level = _unlocked_level_from_args()
    questions = questions_for_level(level)
    if not questions:
        return jsonify({"error": "No questions found for this level"}), 404
    return jsonify({"questions": questions})


@bp.get("/student/questions/random")
@role_required("student")
def student_random_question():
    level = _unlocked_level_from_args()
    question = random_question(level)
    if question is None:
        return jsonify({"error": "No question found for this level"}), 404
    return jsonify({"question": question})


@bp.post("/student/attempts")
@role_required("student")
def student_submit_attempt():
    payload = request.get_json(silent=True) or {}
    try:
        question_id = _parse_positive_int(payload.get("questionId"), "questionId")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    student_answer = str(payload.get("studentAnswer") or "").strip()
    if not student_answer:
        return jsonify({"error": "studentAnswer is required"}), 400

    attempt_id = submit_attempt(
        student_id=current_user.id,
        question_id=question_id,
        student_answer=student_answer,
    )
    if attempt_id is None:
        return jsonify({"error": "Question not found"}), 404

    return jsonify({"message": "Attempt submitted", "attemptId": attempt_id}), 201


@bp.get("/student/attempts/<attempt_id>/comparison")
@role_required("student")
def student_attempt_comparison(attempt_id: str):
    try:
        parsed_id = _parse_positive_int(attempt_id, "attempt id")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    row = fetch_attempt(parsed_id)
    if row is None:
        return jsonify({"error": "Attempt not found"}), 404
    if int(row["student_id"]) != int(current_user.id):
        return jsonify({"error": "Forbidden"}), 403

    return jsonify(
        {
            "comparison": {
                "attemptId": row["attempt_id"],
                "questionId": row["question_id"],
                "level": row["level"],
                "question": row["question_text"],
                "correctAnswer": row["correct_answer"],
                "studentAnswer": row["student_answer"],
                "submittedAt": _isoformat_or_none(row.get("submitted_at")),
            }
        }
    )
