from __future__ import annotations

import pytest

from app.security import hash_password
from app.services.question_upload import reconcile_questions
from models import create_user

STUDENT_PASSWORD = "StudentPass123!"


def login(client, email: str, password: str):
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture()
def question_bank(admin_user):
    rows = [
        {"question": "1 + 1?", "answer": "2", "level": "1"},
        {"question": "2 + 2?", "answer": "4", "level": "1"},
        {"question": "3 x 3?", "answer": "9", "level": "2"},
        {"question": "Square root of 81?", "answer": "9", "level": "4"},
    ]
    reconcile_questions(rows, "append", admin_user.id)


@pytest.fixture()
def student_client(client, student_user, question_bank):
    assert login(client, "Sam.Student@example.com", STUDENT_PASSWORD).status_code == 200
    return client


def _answer_level(client, level: int) -> list[int]:
    questions = client.get(f"/student/questions?level={level}").get_json()["questions"]
    attempt_ids = []
    for question in questions:
        response = client.post(
            "/student/attempts",
            json={"questionId": question["id"], "studentAnswer": "my answer"},
        )
        assert response.status_code == 201
        attempt_ids.append(response.get_json()["attemptId"])
    return attempt_ids


def test_levels_overview_lists_all_six_levels(student_client):
    response = student_client.get("/student/levels")

    assert response.status_code == 200
    levels = response.get_json()["levels"]
    assert [entry["level"] for entry in levels] == [1, 2, 3, 4, 5, 6]
    assert [entry["questionCount"] for entry in levels] == [2, 1, 0, 1, 0, 0]
    assert levels[2]["hasQuestions"] is False


def test_new_student_starts_at_level_one(student_client):
    response = student_client.get("/student/progress")

    assert response.status_code == 200
    assert response.get_json() == {
        "completedLevels": [],
        "inProgressLevels": [],
        "unlockedLevel": 1,
        "levelProgress": {
            "1": {"totalQuestions": 2, "attemptedQuestions": 0},
            "2": {"totalQuestions": 1, "attemptedQuestions": 0},
            "4": {"totalQuestions": 1, "attemptedQuestions": 0},
        },
    }


def test_questions_for_unlocked_level_hide_answers(student_client):
    response = student_client.get("/student/questions?level=1")

    assert response.status_code == 200
    questions = response.get_json()["questions"]
    assert [q["question_text"] for q in questions] == ["1 + 1?", "2 + 2?"]
    assert all("answer_text" not in q for q in questions)


def test_locked_level_is_forbidden(student_client):
    response = student_client.get("/student/questions?level=2")

    assert response.status_code == 403
    assert response.get_json() == {"error": "Level 2 is locked"}
    assert student_client.get("/student/questions/random?level=2").status_code == 403


@pytest.mark.parametrize("level", ["0", "7", "abc", ""])
def test_invalid_level_is_rejected(student_client, level):
    response = student_client.get(f"/student/questions?level={level}")

    assert response.status_code == 400
    assert response.get_json() == {"error": "level must be an integer between 1 and 6"}


def test_progress_unlocks_levels_in_order(student_client):
    first_question = student_client.get("/student/questions/random?level=1").get_json()["question"]
    student_client.post(
        "/student/attempts",
        json={"questionId": first_question["id"], "studentAnswer": "2"},
    )

    progress = student_client.get("/student/progress").get_json()
    assert progress["inProgressLevels"] == [1]
    assert progress["unlockedLevel"] == 1

    _answer_level(student_client, 1)
    progress = student_client.get("/student/progress").get_json()
    assert progress["completedLevels"] == [1]
    assert progress["inProgressLevels"] == []
    assert progress["unlockedLevel"] == 2
    assert progress["levelProgress"]["1"] == {"totalQuestions": 2, "attemptedQuestions": 2}

    _answer_level(student_client, 2)
    progress = student_client.get("/student/progress").get_json()
    assert progress["completedLevels"] == [1, 2]
    assert progress["unlockedLevel"] == 3

    # level 3 has no questions, so level 4 stays locked
    response = student_client.get("/student/questions?level=3")
    assert response.status_code == 404
    assert response.get_json() == {"error": "No questions found for this level"}
    assert student_client.get("/student/questions/random?level=3").status_code == 404
    assert student_client.get("/student/questions?level=4").status_code == 403


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"questionId": "abc", "studentAnswer": "x"}, "questionId must be a positive integer"),
        ({"questionId": 0, "studentAnswer": "x"}, "questionId must be a positive integer"),
        ({"questionId": 2**64, "studentAnswer": "x"}, "questionId must be a positive integer"),
        ({"questionId": 1, "studentAnswer": "   "}, "studentAnswer is required"),
    ],
)
def test_attempt_validation(student_client, payload, message):
    response = student_client.post("/student/attempts", json=payload)

    assert response.status_code == 400
    assert response.get_json() == {"error": message}


def test_attempt_on_unknown_question(student_client):
    response = student_client.post(
        "/student/attempts",
        json={"questionId": 9999, "studentAnswer": "x"},
    )

    assert response.status_code == 404
    assert response.get_json() == {"error": "Question not found"}


def test_attempt_comparison_shows_both_answers(student_client):
    question = student_client.get("/student/questions?level=1").get_json()["questions"][0]
    created = student_client.post(
        "/student/attempts",
        json={"questionId": str(question["id"]), "studentAnswer": "  two  "},
    )
    attempt_id = created.get_json()["attemptId"]

    response = student_client.get(f"/student/attempts/{attempt_id}/comparison")

    assert response.status_code == 200
    comparison = response.get_json()["comparison"]
    assert comparison["attemptId"] == attempt_id
    assert comparison["questionId"] == question["id"]
    assert comparison["level"] == 1
    assert comparison["question"] == "1 + 1?"
    assert comparison["correctAnswer"] == "2"
    assert comparison["studentAnswer"] == "two"
    assert comparison["submittedAt"]


def test_attempt_comparison_errors(student_client):
    assert student_client.get("/student/attempts/abc/comparison").status_code == 400
    assert student_client.get(f"/student/attempts/{2**64}/comparison").status_code == 400
    assert student_client.get("/student/attempts/424242/comparison").status_code == 404


def test_other_students_attempt_is_forbidden(student_client):
    question = student_client.get("/student/questions?level=1").get_json()["questions"][0]
    attempt_id = student_client.post(
        "/student/attempts",
        json={"questionId": question["id"], "studentAnswer": "2"},
    ).get_json()["attemptId"]
    student_client.post("/auth/logout")

    create_user(
        name="Other Student",
        email="other.student@example.com",
        password_hash=hash_password(STUDENT_PASSWORD),
        role="student",
    )
    login(student_client, "other.student@example.com", STUDENT_PASSWORD)

    response = student_client.get(f"/student/attempts/{attempt_id}/comparison")

    assert response.status_code == 403
    assert response.get_json() == {"error": "Forbidden"}


def test_admin_cannot_use_student_routes(client, admin_user):
    login(client, "admin@example.com", "AdminPass123!")

    assert client.get("/student/progress").status_code == 403
