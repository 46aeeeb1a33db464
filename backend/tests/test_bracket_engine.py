"""Bracket creation and recreation against the database."""
import random

import pytest
from sqlmodel import Session

from app.models.match import MatchStatus
from app.models.tournament import TournamentStatus
from app.services.bracket_engine import (
    SeedingPolicy,
    bracket_sink,
    create_bracket,
    list_matches,
    recreate_bracket,
)
from app.services.errors import (
    InsufficientTeamsError,
    InvalidTransitionError,
    NotFoundError,
    UnsupportedFormatError,
)
from tests.factories import make_tournament, register_field, register_team


def test_create_bracket_five_teams_by_rank(session: Session):
    tournament = make_tournament(session)
    teams = register_field(session, tournament, 5)
    ids = [t.id for t in teams]

    result = create_bracket(session, tournament.id, seeding=SeedingPolicy.rank)

    assert result.rounds == 3
    assert result.bye_count == 1
    assert (result.registered_count, result.eligible_count) == (5, 5)

    matches = list_matches(session, tournament.id)
    by_number = {m.match_number: m for m in matches}
    assert [m.round_number for m in matches] == [1, 1, 1, 2, 2, 3]
    assert (by_number[1].team1_id, by_number[1].team2_id) == (ids[0], ids[3])
    assert (by_number[2].team1_id, by_number[2].team2_id) == (ids[1], ids[2])

    bye = by_number[3]
    assert bye.status == MatchStatus.bye.value
    assert bye.winner_id == ids[4]
    assert bye.completed_at is not None
    seated = by_number[5]
    assert seated.team2_id == ids[4]

    assert bracket_sink({m.id: m.next_match_id for m in matches}) == by_number[6].id
    assert by_number[6].bracket_type == "final"

    session.refresh(tournament)
    assert tournament.status == TournamentStatus.open.value


def test_unpaid_teams_are_left_out(session: Session):
    tournament = make_tournament(session)
    register_field(session, tournament, 3)
    register_team(session, tournament, "Unpaid", paid=False)

    result = create_bracket(session, tournament.id, rng=random.Random(1))

    assert (result.registered_count, result.eligible_count) == (4, 3)
    seated = {t for m in result.matches for t in (m.team1_id, m.team2_id) if m.round_number == 1}
    assert len(seated - {None}) == 3


def test_teams_registered_elsewhere_are_not_in_the_field(session: Session):
    tournament = make_tournament(session)
    other = make_tournament(session, name="Fall Open")
    register_field(session, tournament, 2)
    register_field(session, other, 4)

    result = create_bracket(session, tournament.id)
    assert len(result.matches) == 1


def test_insufficient_teams_writes_nothing(session: Session):
    tournament = make_tournament(session)
    register_team(session, tournament, "Solo")
    register_team(session, tournament, "Unpaid", paid=False)

    with pytest.raises(InsufficientTeamsError) as exc_info:
        create_bracket(session, tournament.id)

    assert exc_info.value.details["eligible_count"] == 1
    assert list_matches(session, tournament.id) == []
    session.refresh(tournament)
    assert tournament.status == TournamentStatus.draft.value


def test_min_teams_is_respected(session: Session):
    tournament = make_tournament(session, min_teams=4)
    register_field(session, tournament, 3)
    with pytest.raises(InsufficientTeamsError):
        create_bracket(session, tournament.id)


def test_max_teams_is_respected(session: Session):
    tournament = make_tournament(session, max_teams=3)
    register_field(session, tournament, 4)
    with pytest.raises(InvalidTransitionError):
        create_bracket(session, tournament.id)


def test_second_create_is_refused(session: Session):
    tournament = make_tournament(session)
    register_field(session, tournament, 4)
    create_bracket(session, tournament.id)

    with pytest.raises(InvalidTransitionError):
        create_bracket(session, tournament.id)
    assert len(list_matches(session, tournament.id)) == 3


def test_unknown_tournament(session: Session):
    with pytest.raises(NotFoundError):
        create_bracket(session, 999)


@pytest.mark.parametrize("fmt", ["double-elimination", "group-stage", "swiss"])
def test_unsupported_formats(session: Session, fmt):
    tournament = make_tournament(session)
    register_field(session, tournament, 4)
    with pytest.raises(UnsupportedFormatError):
        create_bracket(session, tournament.id, fmt=fmt)


def test_round_robin_bracket(session: Session):
    tournament = make_tournament(session, format="round-robin")
    register_field(session, tournament, 4)

    result = create_bracket(session, tournament.id)

    assert result.format == "round-robin"
    assert len(result.matches) == 6
    assert result.rounds == 3
    assert all(m.next_match_id is None for m in result.matches)


def test_recreate_requires_confirmation(session: Session):
    tournament = make_tournament(session)
    register_field(session, tournament, 4)
    create_bracket(session, tournament.id)

    with pytest.raises(InvalidTransitionError):
        recreate_bracket(session, tournament.id)
    assert len(list_matches(session, tournament.id)) == 3


def test_recreate_picks_up_newly_eligible_teams(session: Session):
    tournament = make_tournament(session)
    register_field(session, tournament, 4)
    create_bracket(session, tournament.id)

    register_team(session, tournament, "Late Entry")
    result = recreate_bracket(session, tournament.id, confirm=True)

    assert result.replaced_count == 3
    assert result.eligible_count == 5
    assert len(list_matches(session, tournament.id)) == len(result.matches) == 6


def test_completed_tournament_bracket_is_frozen(session: Session):
    tournament = make_tournament(session, status=TournamentStatus.completed.value)
    register_field(session, tournament, 4)
    with pytest.raises(InvalidTransitionError):
        recreate_bracket(session, tournament.id, confirm=True)


def test_five_teams_random_seeding_shape(session: Session):
    tournament = make_tournament(session)
    register_field(session, tournament, 5)

    result = create_bracket(session, tournament.id, seeding=SeedingPolicy.random, rng=random.Random(42))

    per_round = {}
    for m in result.matches:
        per_round.setdefault(m.round_number, []).append(m)
    assert [len(per_round[r]) for r in (1, 2, 3)] == [3, 2, 1]
    assert sum(1 for m in per_round[1] if m.status == MatchStatus.bye.value) == 1
