from __future__ import annotations

import pytest
from passlib.context import CryptContext

from rehearsal_planner.errors import ValidationError
from rehearsal_planner.passwords import PasswordHasher, password_policy_violation, validate_password


@pytest.mark.parametrize(
    ("password", "expected"),
    [
        ("short1!", "Password must be at least 12 characters"),
        ("lowercase123!", "Password must contain an uppercase letter"),
        ("UPPERCASE123!", "Password must contain a lowercase letter"),
        ("NoDigitsHere!!", "Password must contain a number"),
        ("LongEnough12345", "Password must contain a special character (!@#$%^&*)"),
    ],
)
def test_first_unmet_rule_is_reported(password: str, expected: str) -> None:
    assert password_policy_violation(password) == expected
    with pytest.raises(ValidationError, match=expected.split("(")[0]):
        validate_password(password)


def test_strong_password_passes() -> None:
    assert password_policy_violation("Sup3rSecret!pw") is None
    validate_password("Sup3rSecret!pw")


def test_hash_and_verify_round_trip() -> None:
    hasher = PasswordHasher()
    hashed = hasher.hash("Sup3rSecret!pw")

    assert hashed.startswith("$pbkdf2-sha256$")
    assert hasher.verify("Sup3rSecret!pw", hashed)
    assert not hasher.verify("incorrect", hashed)


def test_verify_rejects_empty_and_malformed_hashes() -> None:
    hasher = PasswordHasher()

    assert not hasher.verify("", "whatever")
    assert not hasher.verify("Sup3rSecret!pw", "")
    assert not hasher.verify("Sup3rSecret!pw", "not-a-hash")
    with pytest.raises(ValidationError):
        hasher.hash("")


def test_custom_context_is_used() -> None:
    context = CryptContext(schemes=["pbkdf2_sha256"], pbkdf2_sha256__rounds=1000)
    hasher = PasswordHasher(context)

    assert hasher.verify("Sup3rSecret!pw", hasher.hash("Sup3rSecret!pw"))
