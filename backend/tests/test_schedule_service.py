"""Schedule generation, manual placement and open-slot lookup against the database."""
from datetime import date, datetime, time, timedelta

import pytest
from sqlmodel import Session

from app.models.match import MatchStatus
from app.models.tournament import TournamentStatus
from app.services.advancement_service import record_result
from app.services.bracket_engine import SeedingPolicy, create_bracket, list_matches
from app.services.errors import InvalidTransitionError, NotFoundError, SchedulingWindowExhaustedError
from app.services.schedule_engine import ScheduleStrategy, ScheduleWindow
from app.services.schedule_service import (
    available_slots,
    court_schedule,
    generate_schedule,
    remove_schedule,
    schedule_match,
    tournament_conflicts,
)
from tests.factories import make_tournament, register_field

DAY = date(2026, 5, 2)
WINDOW = ScheduleWindow(DAY, DAY, time(9, 0), time(18, 0))


def at(hour, minute=0, day=DAY):
    return datetime.combine(day, time(hour, minute))


@pytest.fixture
def eight_team_bracket(session: Session):
    tournament = make_tournament(session, court_names=["1", "2"])
    register_field(session, tournament, 8)
    create_bracket(session, tournament.id, seeding=SeedingPolicy.rank)
    return tournament


def test_parallel_generation_places_every_match(session: Session, eight_team_bracket):
    tournament = eight_team_bracket

    result = generate_schedule(session, tournament.id, WINDOW, strategy=ScheduleStrategy.parallel)

    assert len(result.scheduled) == 7
    assert result.unplaced == []
    assert result.conflicts == []

    matches = {m.match_number: m for m in list_matches(session, tournament.id)}
    assert [(matches[n].court, matches[n].scheduled_time) for n in (1, 2, 3, 4)] == [
        ("1", at(9)),
        ("2", at(9)),
        ("1", at(9, 50)),
        ("2", at(9, 50)),
    ]
    # Semifinals wait for both quarterfinals plus the break
    for n in (5, 6):
        assert matches[n].scheduled_time >= at(10, 40)
    assert matches[7].scheduled_time >= max(matches[5].scheduled_end(40), matches[6].scheduled_end(40)) + timedelta(
        minutes=10
    )
    assert all(m.duration_minutes == 40 for m in matches.values())


def test_sequential_generation_uses_one_court(session: Session, eight_team_bracket):
    result = generate_schedule(session, eight_team_bracket.id, WINDOW, match_duration=30, break_duration=5)
    assert {m.court for m in result.scheduled} == {"1"}
    times = sorted(m.scheduled_time for m in result.scheduled)
    assert times[-1] - times[0] == timedelta(minutes=6 * 35)


def test_generation_skips_already_scheduled_matches(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    first = list_matches(session, tournament.id)[0]
    schedule_match(session, first.id, at(9), "1")

    result = generate_schedule(session, tournament.id, WINDOW, strategy=ScheduleStrategy.parallel)

    assert first.id not in {m.id for m in result.scheduled}
    assert len(result.scheduled) == 6
    assert result.conflicts == []


def test_require_all_aborts_without_writing(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    tight = ScheduleWindow(DAY, DAY, time(9, 0), time(10, 0))

    with pytest.raises(SchedulingWindowExhaustedError) as exc_info:
        generate_schedule(session, tournament.id, tight, require_all=True)

    assert exc_info.value.details["placed"] == 1
    assert all(m.scheduled_time is None for m in list_matches(session, tournament.id))


def test_partial_generation_reports_unplaced(session: Session, eight_team_bracket):
    tight = ScheduleWindow(DAY, DAY, time(9, 0), time(10, 0))
    result = generate_schedule(session, eight_team_bracket.id, tight, strategy=ScheduleStrategy.parallel)
    assert len(result.scheduled) == 2
    assert [u.match_number for u in result.unplaced] == [3, 4, 5, 6, 7]


def test_match_ids_limit_generation(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    wanted = [m.id for m in list_matches(session, tournament.id, round_number=1)]
    result = generate_schedule(session, tournament.id, WINDOW, match_ids=wanted)
    assert sorted(m.id for m in result.scheduled) == sorted(wanted)

    with pytest.raises(NotFoundError):
        generate_schedule(session, tournament.id, WINDOW, match_ids=[9999])


def test_courts_are_required(session: Session):
    tournament = make_tournament(session)
    register_field(session, tournament, 2)
    create_bracket(session, tournament.id)
    with pytest.raises(ValueError):
        generate_schedule(session, tournament.id, WINDOW)


def test_manual_conflict_is_reported_but_saved(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    m1, m2 = list_matches(session, tournament.id)[:2]
    schedule_match(session, m1.id, at(9), "1")

    outcome = schedule_match(session, m2.id, at(9), "1")

    assert len(outcome.conflicts) == 1
    assert outcome.conflicts[0].conflicting_match_id == m1.id
    session.refresh(m2)
    assert (m2.court, m2.scheduled_time) == ("1", at(9))
    assert len(tournament_conflicts(session, tournament.id)) == 1


def test_manual_placement_on_another_court_is_clean(session: Session, eight_team_bracket):
    m1, m2 = list_matches(session, eight_team_bracket.id)[:2]
    schedule_match(session, m1.id, at(9), "1")
    assert schedule_match(session, m2.id, at(9), "2").conflicts == []
    assert schedule_match(session, m1.id, at(9, 40), "2").conflicts == []


def test_rescheduling_does_not_conflict_with_itself(session: Session, eight_team_bracket):
    m1 = list_matches(session, eight_team_bracket.id)[0]
    schedule_match(session, m1.id, at(9), "1")
    assert schedule_match(session, m1.id, at(9, 10), "1").conflicts == []


def test_played_match_cannot_move(session: Session, eight_team_bracket):
    m1 = list_matches(session, eight_team_bracket.id)[0]
    schedule_match(session, m1.id, at(9), "1")
    record_result(session, m1.id, 21, 10)
    with pytest.raises(InvalidTransitionError):
        schedule_match(session, m1.id, at(11), "1")
    with pytest.raises(InvalidTransitionError):
        remove_schedule(session, m1.id)


def test_remove_schedule(session: Session, eight_team_bracket):
    m1 = list_matches(session, eight_team_bracket.id)[0]
    schedule_match(session, m1.id, at(9), "1", duration=60)
    match = remove_schedule(session, m1.id)
    assert match.scheduled_time is None and match.court is None
    assert match.status == MatchStatus.scheduled.value


def test_schedule_frozen_once_tournament_completed(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    tournament.status = TournamentStatus.completed.value
    session.add(tournament)
    session.commit()
    with pytest.raises(InvalidTransitionError):
        generate_schedule(session, tournament.id, WINDOW)


def test_court_schedule_groups_by_court(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    generate_schedule(session, tournament.id, WINDOW, strategy=ScheduleStrategy.parallel)

    view = court_schedule(session, tournament.id, DAY)
    assert sorted(view) == ["1", "2"]
    assert sum(len(v) for v in view.values()) == 7
    for matches in view.values():
        assert [m.scheduled_time for m in matches] == sorted(m.scheduled_time for m in matches)
    assert court_schedule(session, tournament.id, DAY + timedelta(days=1)) == {}


def test_available_slots_between_placements(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    m1, m2 = list_matches(session, tournament.id)[:2]
    schedule_match(session, m1.id, at(10), "1")
    schedule_match(session, m2.id, at(9), "2")

    slots = available_slots(session, tournament.id, DAY, time(9, 0), time(12, 0))

    assert [(s.start, s.end) for s in slots["1"]] == [(at(9), at(9, 50)), (at(10, 50), at(12))]
    assert [(s.start, s.end) for s in slots["2"]] == [(at(9, 50), at(12))]
    assert slots["2"][0].capacity(40, 10) == 2


def test_available_slots_keeps_openings_long_enough_for_a_match(session: Session, eight_team_bracket):
    tournament = eight_team_bracket
    m1 = list_matches(session, tournament.id)[0]
    schedule_match(session, m1.id, at(10, 30), "1")

    slots = available_slots(session, tournament.id, DAY, time(9, 0), time(12, 0), courts=["1"])
    assert [(s.start, s.end) for s in slots["1"]] == [(at(9), at(10, 20)), (at(11, 20), at(12))]


def test_available_slots_rejects_inverted_window(session: Session, eight_team_bracket):
    with pytest.raises(ValueError):
        available_slots(session, eight_team_bracket.id, DAY, time(12, 0), time(9, 0))


def test_single_feeder_matches_never_take_a_court(session: Session):
    """Five teams: m4 is fed only by m1, so it can only become a bye."""
    tournament = make_tournament(session, court_names=["1", "2"])
    register_field(session, tournament, 5)
    create_bracket(session, tournament.id, seeding=SeedingPolicy.rank)

    result = generate_schedule(session, tournament.id, WINDOW, strategy=ScheduleStrategy.parallel)

    assert sorted(m.match_number for m in result.scheduled) == [1, 2, 5, 6]
    matches = {m.match_number: m for m in list_matches(session, tournament.id)}
    assert matches[4].scheduled_time is None
    # The final waits on m1 (through the pass-through m4) and on m5
    assert matches[6].scheduled_time >= matches[5].scheduled_end(40) + timedelta(minutes=10)

    record_result(session, matches[1].id, 21, 10)

    held = [
        m.match_number
        for m in list_matches(session, tournament.id)
        if m.status == MatchStatus.bye.value and m.scheduled_time is not None
    ]
    assert held == []


def test_sequential_generation_waits_for_other_courts(session: Session):
    tournament = make_tournament(session, court_names=["1", "2"])
    register_field(session, tournament, 4)
    create_bracket(session, tournament.id, seeding=SeedingPolicy.rank)
    m1, m2, final = list_matches(session, tournament.id)
    schedule_match(session, m1.id, at(9), "2")

    result = generate_schedule(session, tournament.id, WINDOW, strategy=ScheduleStrategy.sequential)

    assert [(m.match_number, m.court, m.scheduled_time) for m in result.scheduled] == [
        (m2.match_number, "1", at(9, 50)),
        (final.match_number, "1", at(10, 40)),
    ]
    assert result.conflicts == []
