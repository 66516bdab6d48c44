from collections.abc import Iterator

import pytest

from app import create_app
from app.security import hash_password
from models import create_user, reset_engine

ADMIN_PASSWORD = "AdminPass123!"
STUDENT_PASSWORD = "StudentPass123!"


@pytest.fixture()
def app(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "false")

    reset_engine()

    application = create_app()
    application.config.update(TESTING=True)

    yield application

    reset_engine()


@pytest.fixture()
def client(app) -> Iterator:
    with app.test_client() as client:
        yield client


@pytest.fixture()
def app_context(app):
    with app.app_context():
        yield


@pytest.fixture()
def admin_user(app_context):
    return create_user(
        name="Quiz Admin",
        email="admin@example.com",
        password_hash=hash_password(ADMIN_PASSWORD),
        role="admin",
    )


@pytest.fixture()
def student_user(app_context):
    return create_user(
        name="Sam Student",
        email="Sam.Student@example.com",
        password_hash=hash_password(STUDENT_PASSWORD),
        role="student",
    )