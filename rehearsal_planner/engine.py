"""Rehearsal scheduling engine: rehearsals, date options, votes and users.

Every public operation loads the complete document from the store, applies a
single transformation, checks the document invariants and saves it back. The
save is the commit point: any error raised before it leaves the stored
document untouched. Operations are serialised by a per-engine lock so that
concurrent requests inside one process cannot interleave their
read-modify-write cycles.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Sequence

from .database import DocumentStore
from .errors import InvalidOperation, NotFoundError, ValidationError
from .models import (
    DateOption,
    Document,
    Rehearsal,
    Role,
    User,
    Vote,
    check_invariants,
    parse_datetime,
    utcnow,
)
from .passwords import PasswordHasher, validate_password
from .tally import RehearsalTally, tally, with_resolved_names

DEFAULT_TITLE = "Untitled Rehearsal"
_MAX_USERNAME_LENGTH = 64


@dataclass(frozen=True)
class DateSpec:
    """A date option as submitted by a client.

    ``id`` is only honoured when it names an option that currently exists on
    the rehearsal being edited.
    """

    starts_at: datetime | str | None
    location: str = ""
    id: Optional[str] = None


@dataclass(frozen=True)
class RehearsalPatch:
    title: Optional[str] = None
    description: Optional[str] = None
    dates: Optional[Sequence[DateSpec]] = None


@dataclass(frozen=True)
class UserPatch:
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role | str] = None


@dataclass(frozen=True)
class ProfilePatch:
    current_password: str
    username: Optional[str] = None
    password: Optional[str] = None


def _new_id() -> str:
    return str(uuid.uuid4())


def _normalise_username(username: Optional[str]) -> str:
    value = (username or "").strip()
    if not value:
        raise ValidationError("Username is required")
    if len(value) > _MAX_USERNAME_LENGTH:
        raise ValidationError(f"Username must be {_MAX_USERNAME_LENGTH} characters or fewer")
    return value


def _parse_role(role: Role | str | None) -> Role:
    if isinstance(role, Role):
        return role
    try:
        return Role(str(role).strip().lower())
    except ValueError as exc:
        raise ValidationError("Role must be either 'admin' or 'user'") from exc


def _parse_starts_at(value: datetime | str | None) -> datetime:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Each date option needs a datetime")
    try:
        return parse_datetime(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid datetime {value!r}") from exc


def _normalise_title(title: Optional[str]) -> str:
    return (title or "").strip() or DEFAULT_TITLE


class RehearsalEngine:
    """Applies rehearsal, vote and user operations to the shared document."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._store = store
        self._hasher = hasher or PasswordHasher()
        self._clock = clock
        self._new_id = id_factory
        self._lock = threading.Lock()

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    @contextmanager
    def _transaction(self) -> Iterator[Document]:
        with self._lock:
            document = self._store.load()
            yield document
            check_invariants(document)
            self._store.save(document)

    def _snapshot(self) -> Document:
        with self._lock:
            return self._store.load()

    @staticmethod
    def _require_rehearsal(document: Document, rehearsal_id: str) -> Rehearsal:
        rehearsal = document.find_rehearsal(rehearsal_id)
        if rehearsal is None:
            raise NotFoundError("Rehearsal not found")
        return rehearsal

    @staticmethod
    def _require_user(document: Document, user_id: str) -> User:
        user = document.find_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Rehearsals
    # ------------------------------------------------------------------
    def list_rehearsals(self) -> List[Rehearsal]:
        document = self._snapshot()
        return [with_resolved_names(rehearsal, document.users) for rehearsal in document.rehearsals]

    def get_rehearsal(self, rehearsal_id: str) -> Rehearsal:
        document = self._snapshot()
        rehearsal = self._require_rehearsal(document, rehearsal_id)
        return with_resolved_names(rehearsal, document.users)

    def get_tally(self, rehearsal_id: str) -> RehearsalTally:
        document = self._snapshot()
        return tally(self._require_rehearsal(document, rehearsal_id))

    def create_rehearsal(
        self,
        title: Optional[str],
        description: Optional[str] = None,
        date_specs: Sequence[DateSpec] = (),
    ) -> Rehearsal:
        dates = [
            DateOption(
                id=self._new_id(),
                starts_at=_parse_starts_at(spec.starts_at),
                location=(spec.location or "").strip(),
            )
            for spec in date_specs
        ]
        rehearsal = Rehearsal(
            id=self._new_id(),
            title=_normalise_title(title),
            description=(description or "").strip(),
            created_at=self._clock(),
            dates=dates,
            selected_date_id=None,
        )
        with self._transaction() as document:
            document.rehearsals.append(rehearsal)
            users = list(document.users)
        return with_resolved_names(rehearsal, users)

    def update_rehearsal(self, rehearsal_id: str, patch: RehearsalPatch) -> Rehearsal:
        with self._transaction() as document:
            rehearsal = self._require_rehearsal(document, rehearsal_id)
            if patch.title is not None:
                rehearsal.title = _normalise_title(patch.title)
            if patch.description is not None:
                rehearsal.description = patch.description.strip()
            if patch.dates is not None:
                rehearsal.dates = self._merge_dates(rehearsal, patch.dates)
                if rehearsal.selected_date_id is not None and rehearsal.find_date(rehearsal.selected_date_id) is None:
                    rehearsal.selected_date_id = None
            users = list(document.users)
        return with_resolved_names(rehearsal, users)

    def _merge_dates(self, rehearsal: Rehearsal, specs: Sequence[DateSpec]) -> List[DateOption]:
        """Match submitted options to existing ones by id; anything unrecognised is new."""

        existing = {option.id: option for option in rehearsal.dates}
        claimed: set[str] = set()
        merged: List[DateOption] = []
        for spec in specs:
            starts_at = _parse_starts_at(spec.starts_at)
            location = (spec.location or "").strip()
            current = existing.get(spec.id) if spec.id else None
            if current is not None and current.id not in claimed:
                claimed.add(current.id)
                merged.append(
                    DateOption(id=current.id, starts_at=starts_at, location=location, votes=list(current.votes))
                )
            else:
                merged.append(DateOption(id=self._new_id(), starts_at=starts_at, location=location))
        return merged

    def delete_rehearsal(self, rehearsal_id: str) -> None:
        with self._transaction() as document:
            rehearsal = self._require_rehearsal(document, rehearsal_id)
            rehearsal.selected_date_id = None
            document.rehearsals.remove(rehearsal)

    def select_date(self, rehearsal_id: str, date_id: Optional[str]) -> Rehearsal:
        """Mark ``date_id`` as the chosen option, or reopen voting when it is ``None``.

        The choice is the administrator's and is not constrained by the tally.
        """

        with self._transaction() as document:
            rehearsal = self._require_rehearsal(document, rehearsal_id)
            if date_id:
                if rehearsal.find_date(date_id) is None:
                    raise NotFoundError("Date option not found")
                rehearsal.selected_date_id = date_id
            else:
                rehearsal.selected_date_id = None
            users = list(document.users)
        return with_resolved_names(rehearsal, users)

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------
    def record_vote(
        self,
        rehearsal_id: str,
        date_id: str,
        user_id: str,
        user_name: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> Rehearsal:
        """Insert or replace ``user_id``'s vote on a date option.

        A repeated vote replaces the previous entry in place and always
        refreshes ``created_at``, so timestamps reflect the latest vote.
        """

        if not user_id or not str(user_id).strip():
            raise ValidationError("A vote needs a user id")

        with self._transaction() as document:
            rehearsal = self._require_rehearsal(document, rehearsal_id)
            option = rehearsal.find_date(date_id)
            if option is None:
                raise NotFoundError("Date option not found")

            vote = Vote(
                user_id=user_id,
                user_name=(user_name or "").strip(),
                comment=comment or "",
                created_at=self._clock(),
            )
            for index, existing in enumerate(option.votes):
                if existing.user_id == user_id:
                    option.votes[index] = vote
                    break
            else:
                option.votes.append(vote)
            users = list(document.users)
        return with_resolved_names(rehearsal, users)

    # ------------------------------------------------------------------
    # Setup and users
    # ------------------------------------------------------------------
    def setup_status(self) -> bool:
        return self._snapshot().setup_complete

    def setup(self, username: str, password: str) -> User:
        """Create the first administrator. Only allowed once."""

        with self._transaction() as document:
            if document.setup_complete:
                raise InvalidOperation("Setup already complete")
            name = _normalise_username(username)
            if not password:
                raise ValidationError("Username and password required")
            validate_password(password)
            if document.find_user_by_username(name) is not None:
                raise ValidationError("Username already exists")
            user = User(
                id=self._new_id(),
                username=name,
                password_hash=self._hasher.hash(password),
                role=Role.ADMIN,
                created_at=self._clock(),
            )
            document.users.append(user)
            document.setup_complete = True
        return user

    def list_users(self) -> List[User]:
        return list(self._snapshot().users)

    def get_user(self, user_id: str) -> User:
        return self._require_user(self._snapshot(), user_id)

    def find_user_by_username(self, username: str) -> Optional[User]:
        return self._snapshot().find_user_by_username(username)

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        return self._snapshot().find_user(user_id)

    def create_user(self, username: str, password: str, role: Role | str = Role.USER) -> User:
        name = _normalise_username(username)
        if not password:
            raise ValidationError("Username and password required")
        resolved_role = _parse_role(role)

        with self._transaction() as document:
            if document.find_user_by_username(name) is not None:
                raise ValidationError("Username already exists")
            validate_password(password)
            user = User(
                id=self._new_id(),
                username=name,
                password_hash=self._hasher.hash(password),
                role=resolved_role,
                created_at=self._clock(),
            )
            document.users.append(user)
        return user

    def update_user(self, user_id: str, patch: UserPatch) -> User:
        """Apply an administrator's edit. Each field is optional and validated only when present."""

        with self._transaction() as document:
            user = self._require_user(document, user_id)
            if patch.username is not None:
                self._rename(document, user, patch.username)
            if patch.password:
                validate_password(patch.password)
                user.password_hash = self._hasher.hash(patch.password)
            if patch.role is not None:
                user.role = _parse_role(patch.role)
        return user

    def delete_user(self, user_id: str, requester_id: str) -> None:
        """Remove an account. Votes cast by it stay attributed to its id."""

        with self._transaction() as document:
            user = self._require_user(document, user_id)
            if user.id == requester_id:
                raise InvalidOperation("Cannot delete your own account")
            document.users.remove(user)

    def update_profile(self, requester_id: str, patch: ProfilePatch) -> User:
        with self._transaction() as document:
            user = self._require_user(document, requester_id)
            if not patch.current_password or not self._hasher.verify(patch.current_password, user.password_hash):
                raise ValidationError("Current password is required and must be correct")
            if patch.username is not None:
                self._rename(document, user, patch.username)
            if patch.password:
                validate_password(patch.password)
                user.password_hash = self._hasher.hash(patch.password)
        return user

    @staticmethod
    def _rename(document: Document, user: User, username: str) -> None:
        name = _normalise_username(username)
        if name == user.username:
            return
        other = document.find_user_by_username(name)
        if other is not None and other.id != user.id:
            raise ValidationError("Username already exists")
        user.username = name


__all__ = [
    "DEFAULT_TITLE",
    "DateSpec",
    "ProfilePatch",
    "RehearsalEngine",
    "RehearsalPatch",
    "UserPatch",
]
