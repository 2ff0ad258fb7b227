"""Domain models persisted in the shared planner document."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Optional

from .errors import ValidationError


class Role(str, Enum):
    """Access level of a user account."""

    ADMIN = "admin"
    USER = "user"


class RehearsalState(str, Enum):
    """Whether a rehearsal is still collecting votes or has a chosen date."""

    OPEN = "open"
    DECIDED = "decided"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: object) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("Timestamp must not be empty")
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(data: Mapping[str, object], key: str, kind: str) -> object:
    if key not in data or data[key] is None:
        raise ValueError(f"{kind} record is missing '{key}'")
    return data[key]


@dataclass
class User:
    """A member account. ``password_hash`` never leaves the document."""

    id: str
    username: str
    password_hash: str
    role: Role
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "User":
        return User(
            id=str(_require(data, "id", "User")),
            username=str(_require(data, "username", "User")),
            password_hash=str(data.get("passwordHash") or ""),
            role=Role(str(data.get("role") or Role.USER.value)),
            created_at=parse_datetime(_require(data, "createdAt", "User")),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "username": self.username,
            "passwordHash": self.password_hash,
            "role": self.role.value,
            "createdAt": serialize_datetime(self.created_at),
        }


@dataclass
class Vote:
    """One user's vote on a date option.

    ``user_name`` is a snapshot taken when voting and may be empty, in which
    case readers resolve it against the current user set.
    """

    user_id: str
    user_name: str
    comment: str
    created_at: datetime

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Vote":
        return Vote(
            user_id=str(_require(data, "userId", "Vote")),
            user_name=str(data.get("userName") or ""),
            comment=str(data.get("comment") or ""),
            created_at=parse_datetime(_require(data, "createdAt", "Vote")),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "comment": self.comment,
            "createdAt": serialize_datetime(self.created_at),
        }


@dataclass
class DateOption:
    """A candidate date and location for a rehearsal."""

    id: str
    starts_at: datetime
    location: str
    votes: List[Vote] = field(default_factory=list)

    @property
    def vote_count(self) -> int:
        return len(self.votes)

    def find_vote(self, user_id: str) -> Optional[Vote]:
        for vote in self.votes:
            if vote.user_id == user_id:
                return vote
        return None

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "DateOption":
        return DateOption(
            id=str(_require(data, "id", "Date option")),
            starts_at=parse_datetime(_require(data, "datetime", "Date option")),
            location=str(data.get("location") or ""),
            votes=[Vote.from_dict(item) for item in data.get("votes") or []],  # type: ignore[union-attr]
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "datetime": serialize_datetime(self.starts_at),
            "location": self.location,
            "votes": [vote.to_dict() for vote in self.votes],
        }


@dataclass
class Rehearsal:
    """A schedulable event with its candidate date options."""

    id: str
    title: str
    description: str
    created_at: datetime
    dates: List[DateOption] = field(default_factory=list)
    selected_date_id: Optional[str] = None

    @property
    def state(self) -> RehearsalState:
        if self.selected_date_id is None:
            return RehearsalState.OPEN
        return RehearsalState.DECIDED

    @property
    def selected_date(self) -> Optional[DateOption]:
        if self.selected_date_id is None:
            return None
        return self.find_date(self.selected_date_id)

    def find_date(self, date_id: str) -> Optional[DateOption]:
        for option in self.dates:
            if option.id == date_id:
                return option
        return None

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Rehearsal":
        dates = [DateOption.from_dict(item) for item in data.get("dates") or []]  # type: ignore[union-attr]
        selected = str(data.get("selectedDateId") or "") or None
        # Older data files can select an option that was since removed.
        if selected is not None and all(option.id != selected for option in dates):
            selected = None
        return Rehearsal(
            id=str(_require(data, "id", "Rehearsal")),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            created_at=parse_datetime(_require(data, "createdAt", "Rehearsal")),
            dates=dates,
            selected_date_id=selected,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "createdAt": serialize_datetime(self.created_at),
            "dates": [option.to_dict() for option in self.dates],
            "selectedDateId": self.selected_date_id,
        }


@dataclass
class Document:
    """The whole application state, loaded and saved as one unit."""

    setup_complete: bool = False
    users: List[User] = field(default_factory=list)
    rehearsals: List[Rehearsal] = field(default_factory=list)

    def find_user(self, user_id: str) -> Optional[User]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def find_user_by_username(self, username: str) -> Optional[User]:
        for user in self.users:
            if user.username == username:
                return user
        return None

    def find_rehearsal(self, rehearsal_id: str) -> Optional[Rehearsal]:
        for rehearsal in self.rehearsals:
            if rehearsal.id == rehearsal_id:
                return rehearsal
        return None

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Document":
        return Document(
            setup_complete=bool(data.get("setupComplete", False)),
            users=[User.from_dict(item) for item in data.get("users") or []],  # type: ignore[union-attr]
            rehearsals=[Rehearsal.from_dict(item) for item in data.get("rehearsals") or []],  # type: ignore[union-attr]
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "setupComplete": self.setup_complete,
            "users": [user.to_dict() for user in self.users],
            "rehearsals": [rehearsal.to_dict() for rehearsal in self.rehearsals],
        }


def check_invariants(document: Document) -> None:
    """Raise :class:`ValidationError` if the document is inconsistent.

    Called before every save so that no write can persist a dangling
    selection, a duplicate vote or a duplicate username.
    """

    usernames: set[str] = set()
    user_ids: set[str] = set()
    for user in document.users:
        if user.id in user_ids:
            raise ValidationError(f"Duplicate user id {user.id}")
        if user.username in usernames:
            raise ValidationError("Username already exists")
        user_ids.add(user.id)
        usernames.add(user.username)

    rehearsal_ids: set[str] = set()
    for rehearsal in document.rehearsals:
        if rehearsal.id in rehearsal_ids:
            raise ValidationError(f"Duplicate rehearsal id {rehearsal.id}")
        rehearsal_ids.add(rehearsal.id)

        date_ids: set[str] = set()
        for option in rehearsal.dates:
            if option.id in date_ids:
                raise ValidationError(f"Duplicate date option id {option.id}")
            date_ids.add(option.id)

            voters: set[str] = set()
            for vote in option.votes:
                if vote.user_id in voters:
                    raise ValidationError(
                        f"Date option {option.id} holds more than one vote for user {vote.user_id}"
                    )
                voters.add(vote.user_id)

        if rehearsal.selected_date_id is not None and rehearsal.selected_date_id not in date_ids:
            raise ValidationError(
                f"Rehearsal {rehearsal.id} selects a date option that does not exist"
            )


__all__ = [
    "DateOption",
    "Document",
    "Rehearsal",
    "RehearsalState",
    "Role",
    "User",
    "Vote",
    "check_invariants",
    "parse_datetime",
    "serialize_datetime",
    "utcnow",
]
