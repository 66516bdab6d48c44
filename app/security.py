"""Password hashing and verification helpers for LevelQuiz."""

from __future__ import annotations

import bcrypt

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def is_bcrypt_hash(value: object) -> bool:
    return isinstance(value, str) and value.startswith(_BCRYPT_PREFIXES)


def hash_password(plaintext: str) -> str:
    """Return a bcrypt hash for the provided password."""
    if not plaintext:
        raise ValueError("Password must be provided.")

    hashed = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plaintext: str, password_hash: str) -> bool:
    """Check a login password against a stored bcrypt hash.

    Stored values that are not bcrypt hashes never match.
    """
    if not plaintext or not is_bcrypt_hash(password_hash):
        return False

    try:
        return bcrypt.checkpw(
            plaintext.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        return False
