"""Read-side vote tallies and voter name resolution."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List, Mapping, Tuple

from .models import DateOption, Rehearsal, User, Vote


@dataclass(frozen=True)
class DateTally:
    date_id: str
    votes: int
    percent: float


@dataclass(frozen=True)
class RehearsalTally:
    """Vote counts for every date option of a rehearsal."""

    rehearsal_id: str
    max_votes: int
    dates: Tuple[DateTally, ...]

    @property
    def leading_date_ids(self) -> Tuple[str, ...]:
        """Ids of the options holding the most votes (empty while nobody has voted)."""

        if self.max_votes == 0:
            return ()
        return tuple(entry.date_id for entry in self.dates if entry.votes == self.max_votes)

    def for_date(self, date_id: str) -> DateTally:
        for entry in self.dates:
            if entry.date_id == date_id:
                return entry
        raise KeyError(date_id)


def max_votes(rehearsal: Rehearsal) -> int:
    """Largest vote count across the rehearsal's date options, 0 without options."""

    return max((option.vote_count for option in rehearsal.dates), default=0)


def vote_percent(option: DateOption, rehearsal: Rehearsal) -> float:
    """Share of ``option`` relative to the most-voted option, in the range 0-100."""

    highest = max_votes(rehearsal)
    if highest <= 0:
        return 0.0
    return 100.0 * option.vote_count / highest


def tally(rehearsal: Rehearsal) -> RehearsalTally:
    highest = max_votes(rehearsal)
    entries: List[DateTally] = []
    for option in rehearsal.dates:
        percent = 100.0 * option.vote_count / highest if highest > 0 else 0.0
        entries.append(DateTally(date_id=option.id, votes=option.vote_count, percent=percent))
    return RehearsalTally(rehearsal_id=rehearsal.id, max_votes=highest, dates=tuple(entries))


def resolve_voter_name(vote: Vote, users_by_id: Mapping[str, User]) -> str:
    """Stored snapshot first, then the live username, then the raw user id."""

    if vote.user_name:
        return vote.user_name
    user = users_by_id.get(vote.user_id)
    if user is not None:
        return user.username
    return vote.user_id


def with_resolved_names(rehearsal: Rehearsal, users: Iterable[User]) -> Rehearsal:
    """Return a copy of ``rehearsal`` whose votes all carry a display name.

    The input is left untouched so that the resolved names are never written
    back to the document.
    """

    users_by_id = {user.id: user for user in users}
    dates = [
        replace(
            option,
            votes=[replace(vote, user_name=resolve_voter_name(vote, users_by_id)) for vote in option.votes],
        )
        for option in rehearsal.dates
    ]
    return replace(rehearsal, dates=dates)


__all__ = [
    "DateTally",
    "RehearsalTally",
    "max_votes",
    "resolve_voter_name",
    "tally",
    "vote_percent",
    "with_resolved_names",
]
