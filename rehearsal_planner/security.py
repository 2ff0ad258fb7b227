"""Token issuance, credential checks and role gates."""
from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

import anyio
from cryptography.fernet import Fernet, InvalidToken
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .engine import RehearsalEngine
from .errors import AuthError, AuthorizationError
from .models import Role, User

logger = logging.getLogger("rehearsal_planner.security")

DEFAULT_TOKEN_TTL = timedelta(hours=24)

# Actions open to any signed-in member.
MEMBER_ACTIONS = frozenset({"vote", "view_profile", "update_profile"})
ADMIN_ACTIONS = frozenset(
    {
        "create_rehearsal",
        "update_rehearsal",
        "delete_rehearsal",
        "select_date",
        "list_users",
        "create_user",
        "update_user",
        "delete_user",
    }
)


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a single request."""

    id: str
    username: str
    role: Role

    @staticmethod
    def from_user(user: User) -> "Principal":
        return Principal(id=user.id, username=user.username, role=user.role)


def _build_cipher(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    key = base64.urlsafe_b64encode(digest)
    return Fernet(key)


def generate_secret() -> str:
    return secrets.token_urlsafe(32)


class TokenIssuer:
    """Issues and verifies encrypted, time-limited bearer tokens."""

    def __init__(self, secret: str, *, ttl: timedelta = DEFAULT_TOKEN_TTL) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        if ttl.total_seconds() <= 0:
            raise ValueError("Token lifetime must be positive")
        self._cipher = _build_cipher(secret)
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, principal: Principal) -> str:
        payload = json.dumps(
            {"id": principal.id, "username": principal.username, "role": principal.role.value}
        )
        return self._cipher.encrypt(payload.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Principal:
        try:
            plaintext = self._cipher.decrypt(token.encode("utf-8"), ttl=int(self._ttl.total_seconds()))
        except InvalidToken as exc:
            raise AuthError("Invalid or expired token") from exc
        try:
            data = json.loads(plaintext.decode("utf-8"))
            return Principal(id=str(data["id"]), username=str(data["username"]), role=Role(data["role"]))
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthError("Invalid or expired token") from exc


class IdentityService:
    """Credential checks backed by the user records in the planner document."""

    def __init__(self, engine: RehearsalEngine, tokens: TokenIssuer) -> None:
        self._engine = engine
        self._tokens = tokens

    @property
    def tokens(self) -> TokenIssuer:
        return self._tokens

    def authenticate(self, username: str, password: str) -> Principal:
        if not username or not password:
            raise AuthError("Username and password required")
        user = self._engine.find_user_by_username(username)
        if user is None or not self._engine.hasher.verify(password, user.password_hash):
            raise AuthError("Invalid username or password")
        return Principal.from_user(user)

    def issue_token(self, principal: Principal) -> str:
        return self._tokens.issue(principal)

    def verify_token(self, token: str) -> Principal:
        """Decode ``token`` and refresh the principal from the current user record.

        Accounts deleted after the token was issued are rejected, and role
        changes take effect without waiting for the token to expire.
        """

        claimed = self._tokens.decode(token)
        user = self._engine.find_user_by_id(claimed.id)
        if user is None:
            raise AuthError("Account no longer exists")
        return Principal.from_user(user)

    @staticmethod
    def is_admin(principal: Principal) -> bool:
        return principal.role is Role.ADMIN

    def authorize(self, principal: Principal, action: str) -> bool:
        if action in MEMBER_ACTIONS:
            return True
        if action in ADMIN_ACTIONS:
            return self.is_admin(principal)
        return False

    def require(self, principal: Principal, action: str) -> None:
        if not self.authorize(principal, action):
            raise AuthorizationError("Admin access required")


class BearerAuth:
    """FastAPI dependency resolving the request's bearer token to a :class:`Principal`."""

    def __init__(self, identity: IdentityService) -> None:
        self._identity = identity
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Principal:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthError("Authentication required")
        try:
            return await anyio.to_thread.run_sync(self._identity.verify_token, credentials.credentials)
        except AuthError:
            logger.warning("Rejected bearer token from %s", request.client.host if request.client else "unknown")
            raise


__all__ = [
    "ADMIN_ACTIONS",
    "BearerAuth",
    "DEFAULT_TOKEN_TTL",
    "IdentityService",
    "MEMBER_ACTIONS",
    "Principal",
    "TokenIssuer",
    "generate_secret",
]
