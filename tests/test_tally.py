from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rehearsal_planner.models import DateOption, Rehearsal, User, Role, Vote
from rehearsal_planner.tally import (
    max_votes,
    resolve_voter_name,
    tally,
    vote_percent,
    with_resolved_names,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _votes(*user_ids: str) -> list[Vote]:
    return [Vote(user_id=user_id, user_name="", comment="", created_at=NOW) for user_id in user_ids]


def _rehearsal(*counts: int) -> Rehearsal:
    dates = [
        DateOption(
            id=f"d{index}",
            starts_at=NOW,
            location="",
            votes=_votes(*(f"u{n}" for n in range(count))),
        )
        for index, count in enumerate(counts)
    ]
    return Rehearsal(id="r1", title="Tutti", description="", created_at=NOW, dates=dates)


def test_three_to_one_split() -> None:
    rehearsal = _rehearsal(3, 1)

    assert max_votes(rehearsal) == 3
    assert vote_percent(rehearsal.dates[0], rehearsal) == 100
    assert vote_percent(rehearsal.dates[1], rehearsal) == pytest.approx(33.33, abs=0.01)


def test_no_dates_or_no_votes_yield_zero() -> None:
    empty = _rehearsal()
    assert max_votes(empty) == 0

    silent = _rehearsal(0, 0)
    assert max_votes(silent) == 0
    assert all(vote_percent(option, silent) == 0 for option in silent.dates)
    assert tally(silent).leading_date_ids == ()


@pytest.mark.parametrize("counts", [(1,), (2, 2), (5, 0, 3), (4, 1, 4, 2)])
def test_percentages_are_bounded_and_top_option_reaches_100(counts: tuple[int, ...]) -> None:
    rehearsal = _rehearsal(*counts)
    summary = tally(rehearsal)

    percents = [entry.percent for entry in summary.dates]
    assert all(0 <= percent <= 100 for percent in percents)
    assert max(percents) == 100
    assert summary.max_votes == max(counts)


def test_tally_reports_ties_as_leading() -> None:
    summary = tally(_rehearsal(2, 1, 2))

    assert summary.leading_date_ids == ("d0", "d2")
    assert summary.for_date("d1").votes == 1
    with pytest.raises(KeyError):
        summary.for_date("missing")


def test_voter_name_resolution_order() -> None:
    users = {"u1": User(id="u1", username="ann", password_hash="", role=Role.USER, created_at=NOW)}

    assert resolve_voter_name(Vote("u1", "Annie", "", NOW), users) == "Annie"
    assert resolve_voter_name(Vote("u1", "", "", NOW), users) == "ann"
    assert resolve_voter_name(Vote("u9", "", "", NOW), users) == "u9"


def test_with_resolved_names_leaves_input_untouched() -> None:
    rehearsal = _rehearsal(1)
    user = User(id="u0", username="ann", password_hash="", role=Role.USER, created_at=NOW)

    resolved = with_resolved_names(rehearsal, [user])

    assert resolved.dates[0].votes[0].user_name == "ann"
    assert rehearsal.dates[0].votes[0].user_name == ""
