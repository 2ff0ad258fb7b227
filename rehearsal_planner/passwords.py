"""Password policy and hashing helpers."""
from __future__ import annotations

import re
from typing import Optional

from passlib.context import CryptContext
from passlib.exc import MissingBackendError

from .errors import ValidationError

MIN_PASSWORD_LENGTH = 12
SPECIAL_CHARACTERS = "!@#$%^&*"

_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain an uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain a lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain a number"),
    (
        re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]"),
        f"Password must contain a special character ({SPECIAL_CHARACTERS})",
    ),
)


def password_policy_violation(password: str) -> Optional[str]:
    """Return the first unmet password rule, or ``None`` if the password is acceptable."""

    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    for pattern, message in _RULES:
        if not pattern.search(password):
            return message
    return None


def validate_password(password: str) -> None:
    message = password_policy_violation(password)
    if message is not None:
        raise ValidationError(message)


class PasswordHasher:
    """Hash and verify passwords through a passlib :class:`CryptContext`."""

    def __init__(self, context: CryptContext | None = None) -> None:
        # bcrypt stays verifiable for hashes carried over from legacy data files.
        self._context = context or CryptContext(
            schemes=["pbkdf2_sha256", "bcrypt"],
            deprecated="auto",
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValidationError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not password or not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, MissingBackendError):
            return False


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "PasswordHasher",
    "SPECIAL_CHARACTERS",
    "password_policy_violation",
    "validate_password",
]
