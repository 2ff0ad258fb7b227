"""Error taxonomy shared by the engine, identity helpers and HTTP layer."""
from __future__ import annotations


class PlannerError(Exception):
    """Base class for failures surfaced to callers as ``kind`` + message."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "kind": self.kind}


class NotFoundError(PlannerError):
    """Raised when a rehearsal, date option or user does not exist."""

    kind = "not_found"


class ValidationError(PlannerError):
    """Raised for malformed input, password policy violations and duplicates."""

    kind = "validation_error"


class AuthError(PlannerError):
    """Raised for bad credentials and invalid or expired tokens."""

    kind = "auth_error"


class AuthorizationError(PlannerError):
    """Raised when a principal lacks the role required for an action."""

    kind = "authorization_error"


class InvalidOperation(PlannerError):
    """Raised when an operation is not allowed in the current state."""

    kind = "invalid_operation"


__all__ = [
    "AuthError",
    "AuthorizationError",
    "InvalidOperation",
    "NotFoundError",
    "PlannerError",
    "ValidationError",
]
