"""
Schedule Engine: places unscheduled matches onto courts inside a date/time window.

Strategies:
- sequential: one match at a time across all courts combined, booked on
  the first court; each start is the previous end plus the break, and
  placements already on any other court block it too.
- parallel: matches dealt round-robin across courts, each court packed
  back to back with break gaps.
- balanced: each match goes to the court with the fewest matches in the
  window (existing ones included), earliest opening breaking ties, so a
  court that closes early or already carries manual placements takes less.

Every strategy respects the daily window (and per-court closing times);
a slot that would run past closing rolls over to the next day. Existing
placements and already-placed feeders are honoured through the
PlacementIndex, and whatever does not fit before the window ends is
returned as unplaced instead of being dropped.

This module is pure: it works on SchedulableMatch records and returns a
SchedulePlan. schedule_service applies plans to the database.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from app.services.conflict_detector import Placement, PlacementIndex

logger = logging.getLogger(__name__)


class ScheduleStrategy(str, Enum):
    sequential = "sequential"
    parallel = "parallel"
    balanced = "balanced"


@dataclass(frozen=True)
class ScheduleWindow:
    start_date: date
    end_date: date
    daily_start_time: time
    daily_end_time: time

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        if self.daily_end_time <= self.daily_start_time:
            raise ValueError("daily_end_time must be after daily_start_time")

    def opening(self, day: date) -> datetime:
        return datetime.combine(day, self.daily_start_time)

    def closing(self, day: date, close_time: Optional[time] = None) -> datetime:
        end = self.daily_end_time if close_time is None else min(close_time, self.daily_end_time)
        return datetime.combine(day, end)


@dataclass(frozen=True)
class SchedulableMatch:
    match_id: Optional[int]
    match_number: int
    round_number: int
    duration: int  # minutes
    feeder_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class UnplacedMatch:
    match_id: Optional[int]
    match_number: int
    round_number: int
    reason: str

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "match_number": self.match_number,
            "round_number": self.round_number,
            "reason": self.reason,
        }


@dataclass
class SchedulePlan:
    strategy: str
    placements: List[Placement] = field(default_factory=list)
    unplaced: List[UnplacedMatch] = field(default_factory=list)

    @property
    def first_start(self) -> Optional[datetime]:
        return min((p.start for p in self.placements), default=None)

    @property
    def last_end(self) -> Optional[datetime]:
        return max((p.end for p in self.placements), default=None)

    def by_court(self) -> Dict[str, List[Placement]]:
        courts: Dict[str, List[Placement]] = {}
        for p in sorted(self.placements, key=lambda p: (p.court, p.start)):
            courts.setdefault(p.court, []).append(p)
        return courts


class _CourtClock:
    """Next free moment on one court, rolling over day by day inside the window."""

    def __init__(
        self,
        court: str,
        position: int,
        window: ScheduleWindow,
        break_minutes: int,
        index: PlacementIndex,
        close_time: Optional[time] = None,
        span_all_courts: bool = False,
    ) -> None:
        self.court = court
        self.position = position
        self.window = window
        self.gap = timedelta(minutes=break_minutes)
        self.index = index
        self.close_time = close_time
        # The sequential virtual court waits on every real court
        self.span_all_courts = span_all_courts
        self.cursor = window.opening(window.start_date)

    def probe(self, duration: int, not_before: Optional[datetime] = None) -> Optional[datetime]:
        """Earliest start that fits today's hours and clears existing placements, or None."""
        length = timedelta(minutes=duration)
        cursor = max(self.cursor, not_before) if not_before else self.cursor
        while True:
            day = cursor.date()
            if day > self.window.end_date:
                return None
            opening = self.window.opening(day)
            if cursor < opening:
                cursor = opening
            if cursor + length > self.window.closing(day, self.close_time):
                cursor = self.window.opening(day + timedelta(days=1))
                continue
            # Pad by the break on both sides so neighbours keep their gap
            padded = Placement(court=self.court, start=cursor - self.gap, end=cursor + length + self.gap)
            blocking = self.index.overlapping(padded, any_court=self.span_all_courts)
            if blocking:
                cursor = max(p.end for p in blocking) + self.gap
                logger.debug("Court %s busy, bumping candidate to %s", self.court, cursor.isoformat())
                continue
            return cursor

    def commit(self, placement: Placement) -> None:
        self.index.add(placement)
        self.cursor = placement.end + self.gap


class _Planner:
    def __init__(
        self,
        strategy: ScheduleStrategy,
        window: ScheduleWindow,
        courts: Sequence[str],
        break_minutes: int,
        index: PlacementIndex,
        known_ends: Mapping[int, datetime],
        court_closing_times: Optional[Mapping[str, time]] = None,
    ) -> None:
        closing = court_closing_times or {}
        self.window = window
        self.gap = timedelta(minutes=break_minutes)
        self.index = index
        sequential = strategy == ScheduleStrategy.sequential
        self.clocks = [
            _CourtClock(court, i, window, break_minutes, index, closing.get(court), span_all_courts=sequential)
            for i, court in enumerate(courts)
        ]
        self.load: Dict[str, int] = {
            c.court: index.count_on_court(c.court, window.start_date, window.end_date) for c in self.clocks
        }
        self.ends: Dict[int, datetime] = dict(known_ends)
        self.plan = SchedulePlan(strategy=strategy.value)

    def not_before(self, match: SchedulableMatch) -> Optional[datetime]:
        ends = [self.ends[f] for f in match.feeder_ids if f in self.ends]
        return max(ends) + self.gap if ends else None

    def place(self, match: SchedulableMatch, clocks: Sequence[_CourtClock]) -> bool:
        not_before = self.not_before(match)
        for clock in clocks:
            start = clock.probe(match.duration, not_before)
            if start is None:
                continue
            self._commit(match, clock, start)
            return True
        self.plan.unplaced.append(
            UnplacedMatch(
                match_id=match.match_id,
                match_number=match.match_number,
                round_number=match.round_number,
                reason="scheduling window exhausted",
            )
        )
        return False

    def _commit(self, match: SchedulableMatch, clock: _CourtClock, start: datetime) -> None:
        placement = Placement(
            court=clock.court,
            start=start,
            end=start + timedelta(minutes=match.duration),
            match_id=match.match_id,
            match_number=match.match_number,
        )
        clock.commit(placement)
        self.load[clock.court] += 1
        if match.match_id is not None:
            self.ends[match.match_id] = placement.end
        self.plan.placements.append(placement)


def _plan_sequential(planner: _Planner, matches: Sequence[SchedulableMatch]) -> None:
    virtual_court = planner.clocks[0]
    for match in matches:
        planner.place(match, [virtual_court])


def _plan_parallel(planner: _Planner, matches: Sequence[SchedulableMatch]) -> None:
    clocks = planner.clocks
    for i, match in enumerate(matches):
        # Dealt court first, then the rest in rotation once that court's window is spent
        rotation = [clocks[(i + k) % len(clocks)] for k in range(len(clocks))]
        planner.place(match, rotation)


def _plan_balanced(planner: _Planner, matches: Sequence[SchedulableMatch]) -> None:
    far_future = datetime.max
    for match in matches:
        not_before = planner.not_before(match)
        openings = {c.court: c.probe(match.duration, not_before) for c in planner.clocks}
        ranked = sorted(
            (c for c in planner.clocks if openings[c.court] is not None),
            key=lambda c: (planner.load[c.court], openings[c.court] or far_future, c.position),
        )
        planner.place(match, ranked)


STRATEGY_HANDLERS: Dict[ScheduleStrategy, Callable[[_Planner, Sequence[SchedulableMatch]], None]] = {
    ScheduleStrategy.sequential: _plan_sequential,
    ScheduleStrategy.parallel: _plan_parallel,
    ScheduleStrategy.balanced: _plan_balanced,
}


def schedule_order(matches: Sequence[SchedulableMatch]) -> List[SchedulableMatch]:
    return sorted(matches, key=lambda m: (m.round_number, m.match_number, m.match_id or 0))


def plan_schedule(
    matches: Sequence[SchedulableMatch],
    window: ScheduleWindow,
    courts: Sequence[str],
    break_minutes: int,
    strategy: ScheduleStrategy,
    existing: Optional[PlacementIndex] = None,
    known_ends: Optional[Mapping[int, datetime]] = None,
    court_closing_times: Optional[Mapping[str, time]] = None,
) -> SchedulePlan:
    """
    Place matches (in round, then match-number order) under the chosen strategy.

    `existing` holds placements already on the calendar; it is extended in
    place with the new placements. `known_ends` maps match ids to the end of
    already-scheduled matches so dependants start after their feeders.
    """
    if not courts:
        raise ValueError("At least one court is required")
    if break_minutes < 0:
        raise ValueError("break duration cannot be negative")
    for m in matches:
        if m.duration <= 0:
            raise ValueError(f"Match {m.match_number} has a non-positive duration")

    planner = _Planner(
        ScheduleStrategy(strategy),
        window,
        list(courts),
        break_minutes,
        existing if existing is not None else PlacementIndex(),
        known_ends or {},
        court_closing_times,
    )
    STRATEGY_HANDLERS[ScheduleStrategy(strategy)](planner, schedule_order(matches))
    return planner.plan
