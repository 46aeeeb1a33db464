"""
Schedule operations against stored matches.

Batch generation holds the tournament lock exclusively and writes the whole
plan in one transaction. Manual placement and removal are single-match edits
(shared lock plus per-match mutex). Conflicts found on a manual placement are
returned with the saved match; they never block the write.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlmodel import Session, select

from app.database import atomic
from app.models.match import Match, MatchStatus
from app.models.tournament import Tournament, TournamentStatus
from app.services.advancement_service import get_match
from app.services.bracket_engine import get_tournament, list_matches
from app.services.conflict_detector import (
    Placement,
    PlacementIndex,
    ScheduleConflict,
    detect_all_conflicts,
    find_conflicts,
)
from app.services.errors import InvalidTransitionError, NotFoundError, SchedulingWindowExhaustedError
from app.services.schedule_engine import (
    SchedulableMatch,
    ScheduleStrategy,
    ScheduleWindow,
    UnplacedMatch,
    plan_schedule,
)
from app.services.tournament_lock import exclusive_tournament, shared_match
from app.utils.courts import parse_court_names

logger = logging.getLogger(__name__)


def _require_schedule_editable(tournament: Tournament) -> None:
    if tournament.status in (TournamentStatus.completed.value, TournamentStatus.cancelled.value):
        raise InvalidTransitionError(
            f"Tournament is {tournament.status}; its schedule can no longer change",
            details={"tournament_id": tournament.id, "status": tournament.status},
        )


def _require_unplayed(match: Match) -> None:
    if match.status != MatchStatus.scheduled.value:
        raise InvalidTransitionError(
            f"Match {match.match_number} is {match.status}; only unplayed matches can be (re)scheduled",
            details={"match_id": match.id, "status": match.status},
        )


def _resolve_courts(tournament: Tournament, courts: Optional[Iterable[str]]) -> List[str]:
    resolved = parse_court_names(list(courts) if courts is not None else None)
    if not resolved:
        resolved = parse_court_names(tournament.court_names)
    if not resolved:
        raise ValueError("At least one court is required")
    return resolved


def _matches_between(session: Session, tournament_id: int, start: datetime, end: datetime) -> List[Match]:
    return list(
        session.exec(
            select(Match).where(
                Match.tournament_id == tournament_id,
                Match.scheduled_time.is_not(None),
                Match.scheduled_time >= start,
                Match.scheduled_time < end,
            )
        ).all()
    )


def _played_feeders(match_id: int, feeders: Mapping[int, List[int]], pass_through: Iterable[int]) -> Tuple[int, ...]:
    """Feeders a match waits on, looking through single-feeder matches to the one that is actually played."""
    resolved: List[int] = []
    for feeder_id in feeders.get(match_id, ()):
        if feeder_id in pass_through:
            resolved.extend(_played_feeders(feeder_id, feeders, pass_through))
        else:
            resolved.append(feeder_id)
    return tuple(resolved)


@dataclass
class ScheduleGenerationResult:
    tournament_id: int
    strategy: str
    scheduled: List[Match] = field(default_factory=list)
    unplaced: List[UnplacedMatch] = field(default_factory=list)
    conflicts: List[ScheduleConflict] = field(default_factory=list)


def generate_schedule(
    session: Session,
    tournament_id: int,
    window: ScheduleWindow,
    courts: Optional[Sequence[str]] = None,
    match_duration: Optional[int] = None,
    break_duration: Optional[int] = None,
    strategy: ScheduleStrategy = ScheduleStrategy.sequential,
    court_closing_times: Optional[Mapping[str, time]] = None,
    match_ids: Optional[Sequence[int]] = None,
    require_all: bool = False,
) -> ScheduleGenerationResult:
    """
    Place every unscheduled, unplayed match of the tournament.

    Matches that do not fit come back in `unplaced`; with require_all=True
    that aborts the whole generation instead and nothing is written.
    `conflicts` is a full scan of the resulting schedule, so overlaps left
    by earlier manual overrides stay visible.
    """
    with exclusive_tournament(tournament_id):
        with atomic(session):
            tournament = get_tournament(session, tournament_id)
            _require_schedule_editable(tournament)
            court_list = _resolve_courts(tournament, courts)
            gap = tournament.break_duration if break_duration is None else break_duration

            all_matches = list_matches(session, tournament_id)
            by_id = {m.id: m for m in all_matches}

            feeders: Dict[int, List[int]] = {}
            for m in all_matches:
                if m.next_match_id is not None:
                    feeders.setdefault(m.next_match_id, []).append(m.id)
            # A single-feeder match only ever becomes a bye; it never takes a court
            pass_through = {match_id for match_id, ids in feeders.items() if len(ids) == 1}

            pending = [
                m
                for m in all_matches
                if not m.is_scheduled and m.status == MatchStatus.scheduled.value and m.id not in pass_through
            ]
            if match_ids is not None:
                unknown = sorted(set(match_ids) - set(by_id))
                if unknown:
                    raise NotFoundError(
                        f"Matches {unknown} do not belong to tournament {tournament_id}",
                        details={"tournament_id": tournament_id, "match_ids": unknown},
                    )
                wanted = set(match_ids)
                pending = [m for m in pending if m.id in wanted]

            index = PlacementIndex.from_matches(all_matches, tournament.match_duration)
            known_ends = {
                m.id: m.scheduled_end(tournament.match_duration) for m in all_matches if m.is_scheduled
            }
            plan = plan_schedule(
                [
                    SchedulableMatch(
                        match_id=m.id,
                        match_number=m.match_number,
                        round_number=m.round_number,
                        duration=match_duration or m.duration_minutes or tournament.match_duration,
                        feeder_ids=_played_feeders(m.id, feeders, pass_through),
                    )
                    for m in pending
                ],
                window,
                court_list,
                gap,
                ScheduleStrategy(strategy),
                existing=index,
                known_ends=known_ends,
                court_closing_times=court_closing_times,
            )

            if require_all and plan.unplaced:
                raise SchedulingWindowExhaustedError(
                    f"{len(plan.unplaced)} of {len(pending)} matches do not fit in the scheduling window",
                    details={
                        "tournament_id": tournament_id,
                        "placed": len(plan.placements),
                        "unplaced": [u.to_dict() for u in plan.unplaced],
                    },
                )

            scheduled: List[Match] = []
            for placement in plan.placements:
                match = by_id[placement.match_id]
                match.scheduled_time = placement.start
                match.court = placement.court
                match.duration_minutes = placement.minutes
                session.add(match)
                scheduled.append(match)
            session.flush()

            conflicts = detect_all_conflicts(all_matches, tournament.match_duration)

    logger.info(
        "Schedule generated for tournament %d (%s): %d placed, %d unplaced, %d conflicts",
        tournament_id,
        plan.strategy,
        len(scheduled),
        len(plan.unplaced),
        len(conflicts),
    )
    if plan.unplaced:
        logger.warning(
            "Tournament %d: window %s..%s exhausted with %d matches unplaced",
            tournament_id,
            window.start_date.isoformat(),
            window.end_date.isoformat(),
            len(plan.unplaced),
        )
    return ScheduleGenerationResult(
        tournament_id=tournament_id,
        strategy=plan.strategy,
        scheduled=scheduled,
        unplaced=plan.unplaced,
        conflicts=conflicts,
    )


@dataclass
class ScheduleMatchOutcome:
    match: Match
    conflicts: List[ScheduleConflict] = field(default_factory=list)


def schedule_match(
    session: Session,
    match_id: int,
    scheduled_time: datetime,
    court: str,
    duration: Optional[int] = None,
) -> ScheduleMatchOutcome:
    """Manual placement. Conflicts are reported alongside the saved match, never instead of it."""
    court = (court or "").strip()
    if not court:
        raise ValueError("court is required")
    if scheduled_time.tzinfo is not None:
        scheduled_time = scheduled_time.replace(tzinfo=None)

    tournament_id = get_match(session, match_id).tournament_id
    with shared_match(tournament_id, match_id):
        with atomic(session):
            match = get_match(session, match_id)
            session.refresh(match)
            tournament = get_tournament(session, tournament_id)
            _require_schedule_editable(tournament)
            _require_unplayed(match)

            minutes = duration or match.duration_minutes or tournament.match_duration
            candidate = Placement(
                court=court,
                start=scheduled_time,
                end=scheduled_time + timedelta(minutes=minutes),
                match_id=match.id,
                match_number=match.match_number,
            )
            # Only neighbours that can reach this placement: same court, a day either side
            neighbours = [
                m
                for m in _matches_between(
                    session,
                    tournament_id,
                    scheduled_time - timedelta(days=1),
                    candidate.end + timedelta(days=1),
                )
                if m.court == court
            ]
            conflicts = find_conflicts(candidate, neighbours, tournament.match_duration)

            match.scheduled_time = scheduled_time
            match.court = court
            match.duration_minutes = minutes
            session.add(match)

    if conflicts:
        logger.warning(
            "Match %d placed on court %s at %s with %d conflicts",
            match.match_number,
            court,
            scheduled_time.isoformat(),
            len(conflicts),
        )
    return ScheduleMatchOutcome(match=match, conflicts=conflicts)


def remove_schedule(session: Session, match_id: int) -> Match:
    tournament_id = get_match(session, match_id).tournament_id
    with shared_match(tournament_id, match_id):
        with atomic(session):
            match = get_match(session, match_id)
            session.refresh(match)
            tournament = get_tournament(session, tournament_id)
            _require_schedule_editable(tournament)
            _require_unplayed(match)
            match.clear_schedule()
            session.add(match)
    return match


def court_schedule(session: Session, tournament_id: int, day: date) -> Dict[str, List[Match]]:
    """Court -> matches on that court for one date, ordered by start time."""
    get_tournament(session, tournament_id)
    start = datetime.combine(day, time.min)
    matches = _matches_between(session, tournament_id, start, start + timedelta(days=1))
    view: Dict[str, List[Match]] = {}
    for m in sorted(matches, key=lambda m: (m.court or "", m.scheduled_time, m.match_number)):
        view.setdefault(m.court, []).append(m)
    return view


@dataclass(frozen=True)
class TimeSlot:
    court: str
    start: datetime
    end: datetime

    @property
    def duration(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def capacity(self, match_duration: int, break_duration: int) -> int:
        """How many matches fit back to back in this opening."""
        return (self.duration + break_duration) // (match_duration + break_duration)

    def to_dict(self) -> dict:
        return {
            "court": self.court,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration": self.duration,
            "available": True,
        }


def open_intervals(
    busy: Sequence[Placement],
    court: str,
    window_start: datetime,
    window_end: datetime,
    match_duration: int,
    break_duration: int,
) -> List[TimeSlot]:
    """
    Openings on one court between busy placements.

    A new match must keep the break from its neighbours, so each opening runs
    from a neighbour's end + break to the next neighbour's start - break, and
    only openings long enough for one match are kept.
    """
    gap = timedelta(minutes=break_duration)
    need = timedelta(minutes=match_duration)
    slots: List[TimeSlot] = []
    cursor = window_start
    for placement in sorted(busy, key=lambda p: p.start):
        opening_end = min(placement.start - gap, window_end)
        if opening_end - cursor >= need:
            slots.append(TimeSlot(court=court, start=cursor, end=opening_end))
        cursor = max(cursor, placement.end + gap)
        if cursor >= window_end:
            break
    if window_end - cursor >= need:
        slots.append(TimeSlot(court=court, start=cursor, end=window_end))
    return slots


def available_slots(
    session: Session,
    tournament_id: int,
    day: date,
    start_time: time,
    end_time: time,
    courts: Optional[Sequence[str]] = None,
    match_duration: Optional[int] = None,
    break_duration: Optional[int] = None,
) -> Dict[str, List[TimeSlot]]:
    """Open [start, end) intervals per court on one date, before committing a manual placement."""
    if end_time <= start_time:
        raise ValueError("end_time must be after start_time")
    tournament = get_tournament(session, tournament_id)
    duration = match_duration or tournament.match_duration
    gap = tournament.break_duration if break_duration is None else break_duration

    window_start = datetime.combine(day, start_time)
    window_end = datetime.combine(day, end_time)
    nearby = _matches_between(session, tournament_id, window_start - timedelta(days=1), window_end)
    index = PlacementIndex.from_matches(nearby, tournament.match_duration)

    if courts:
        court_list = parse_court_names(list(courts))
    else:
        court_list = parse_court_names(tournament.court_names) or index.courts_on(day)

    return {
        court: open_intervals(index.on(day, court), court, window_start, window_end, duration, gap)
        for court in court_list
    }


def tournament_conflicts(session: Session, tournament_id: int) -> List[ScheduleConflict]:
    tournament = get_tournament(session, tournament_id)
    return detect_all_conflicts(list_matches(session, tournament_id), tournament.match_duration)
