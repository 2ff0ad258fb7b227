"""Request and response schemas for the planner HTTP API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .engine import DateSpec, ProfilePatch, RehearsalPatch, UserPatch
from .models import DateOption, Rehearsal, RehearsalState, Role, User
from .tally import tally

_MAX_COMMENT_LENGTH = 2000


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialsRequest(_Request):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)


class DateSpecPayload(_Request):
    id: Optional[str] = None
    starts_at: datetime = Field(..., alias="datetime")
    location: str = Field(default="", max_length=255)

    def to_spec(self) -> DateSpec:
        return DateSpec(starts_at=self.starts_at, location=self.location, id=self.id)


class RehearsalCreateRequest(_Request):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    dates: List[DateSpecPayload] = Field(default_factory=list)


class RehearsalUpdateRequest(_Request):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    dates: Optional[List[DateSpecPayload]] = None

    def to_patch(self) -> RehearsalPatch:
        return RehearsalPatch(
            title=self.title,
            description=self.description,
            dates=[item.to_spec() for item in self.dates] if self.dates is not None else None,
        )


class SelectDateRequest(_Request):
    date_id: Optional[str] = None


class VoteRequest(_Request):
    user_id: Optional[str] = None
    user_name: Optional[str] = Field(default=None, max_length=64)
    comment: str = Field(default="", max_length=_MAX_COMMENT_LENGTH)


class UserCreateRequest(_Request):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    role: Role = Role.USER


class UserUpdateRequest(_Request):
    username: Optional[str] = Field(default=None, max_length=64)
    password: Optional[str] = None
    role: Optional[Role] = None

    @field_validator("password")
    @classmethod
    def _blank_password_means_unchanged(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def to_patch(self) -> UserPatch:
        return UserPatch(username=self.username, password=self.password, role=self.role)


class ProfileUpdateRequest(_Request):
    current_password: str = Field(..., min_length=1)
    username: Optional[str] = Field(default=None, max_length=64)
    password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def _blank_password_means_unchanged(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def to_patch(self) -> ProfilePatch:
        return ProfilePatch(
            current_password=self.current_password,
            username=self.username,
            password=self.password,
        )


class UserResponse(_Response):
    id: str
    username: str
    role: Role
    created_at: datetime


class AuthResponse(_Response):
    token: str
    user: UserResponse


class SetupStatusResponse(_Response):
    setup_complete: bool


class VoteResponse(_Response):
    user_id: str
    user_name: str
    comment: str
    created_at: datetime


class DateOptionResponse(_Response):
    id: str
    starts_at: datetime = Field(..., alias="datetime")
    location: str
    votes: List[VoteResponse]
    vote_count: int
    vote_percent: float


class RehearsalResponse(_Response):
    id: str
    title: str
    description: str
    created_at: datetime
    dates: List[DateOptionResponse]
    selected_date_id: Optional[str]
    state: RehearsalState
    max_votes: int


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        created_at=user.created_at,
    )


def _date_to_response(option: DateOption, percent: float) -> DateOptionResponse:
    return DateOptionResponse(
        id=option.id,
        starts_at=option.starts_at,
        location=option.location,
        votes=[
            VoteResponse(
                user_id=vote.user_id,
                user_name=vote.user_name,
                comment=vote.comment,
                created_at=vote.created_at,
            )
            for vote in option.votes
        ],
        vote_count=option.vote_count,
        vote_percent=percent,
    )


def rehearsal_to_response(rehearsal: Rehearsal) -> RehearsalResponse:
    summary = tally(rehearsal)
    return RehearsalResponse(
        id=rehearsal.id,
        title=rehearsal.title,
        description=rehearsal.description,
        created_at=rehearsal.created_at,
        dates=[
            _date_to_response(option, summary.for_date(option.id).percent)
            for option in rehearsal.dates
        ],
        selected_date_id=rehearsal.selected_date_id,
        state=rehearsal.state,
        max_votes=summary.max_votes,
    )


__all__ = [
    "AuthResponse",
    "CredentialsRequest",
    "DateOptionResponse",
    "DateSpecPayload",
    "ProfileUpdateRequest",
    "RehearsalCreateRequest",
    "RehearsalResponse",
    "RehearsalUpdateRequest",
    "SelectDateRequest",
    "SetupStatusResponse",
    "UserCreateRequest",
    "UserResponse",
    "UserUpdateRequest",
    "VoteRequest",
    "VoteResponse",
    "rehearsal_to_response",
    "user_to_response",
]
