"""
Conflict Detector: court/time overlap between match placements.

Two placements conflict iff they share a court and their half-open
[start, end) intervals overlap; touching endpoints do not conflict.
Placements are indexed by (date, court) so a lookup only scans the matches
already on that court that day. A placement that runs past midnight is
indexed under every date it touches.

The detector is advisory: it reports conflicts and never refuses a
placement. Callers decide whether to keep the write.
"""
from bisect import insort
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from itertools import count
from typing import Dict, Iterable, List, Optional, Tuple, Union

from app.models.match import Match


@dataclass(frozen=True)
class Placement:
    court: str
    start: datetime
    end: datetime
    match_id: Optional[int] = None
    match_number: Optional[int] = None

    def overlaps(self, other: "Placement") -> bool:
        return self.court == other.court and self.start < other.end and other.start < self.end

    def dates(self) -> List[date]:
        last = (self.end - timedelta(microseconds=1)).date() if self.end > self.start else self.start.date()
        days = []
        current = self.start.date()
        while current <= last:
            days.append(current)
            current += timedelta(days=1)
        return days

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass(frozen=True)
class ScheduleConflict:
    """Two placements sharing a court with overlapping time windows."""

    match_id: Optional[int]
    match_number: Optional[int]
    conflicting_match_id: Optional[int]
    conflicting_match_number: Optional[int]
    court: str
    time: datetime  # Start of the shared window
    overlap_end: datetime

    @property
    def overlap_minutes(self) -> int:
        return int((self.overlap_end - self.time).total_seconds() // 60)

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "match_number": self.match_number,
            "conflicting_match_id": self.conflicting_match_id,
            "conflicting_match_number": self.conflicting_match_number,
            "court": self.court,
            "time": self.time.isoformat(),
            "overlap_end": self.overlap_end.isoformat(),
            "overlap_minutes": self.overlap_minutes,
        }


def _conflict(candidate: Placement, other: Placement) -> ScheduleConflict:
    return ScheduleConflict(
        match_id=candidate.match_id,
        match_number=candidate.match_number,
        conflicting_match_id=other.match_id,
        conflicting_match_number=other.match_number,
        court=candidate.court,
        time=max(candidate.start, other.start),
        overlap_end=min(candidate.end, other.end),
    )


def placement_for_match(match: Match, default_duration: int) -> Optional[Placement]:
    """Placement occupied by a scheduled match, None for unscheduled ones."""
    if not match.is_scheduled:
        return None
    return Placement(
        court=match.court,
        start=match.scheduled_time,
        end=match.scheduled_end(default_duration),
        match_id=match.id,
        match_number=match.match_number,
    )


def _sort_key(p: Placement) -> Tuple:
    return (p.start, p.end, p.match_number or 0, p.match_id or 0)


class PlacementIndex:
    """Existing placements bucketed by (date, court), each bucket sorted by start."""

    def __init__(self, placements: Iterable[Placement] = ()) -> None:
        self._buckets: Dict[Tuple[date, str], List[Tuple[Tuple, int, Placement]]] = defaultdict(list)
        self._sequence = count()
        for placement in placements:
            self.add(placement)

    @classmethod
    def from_matches(cls, matches: Iterable[Match], default_duration: int) -> "PlacementIndex":
        index = cls()
        for match in matches:
            placement = placement_for_match(match, default_duration)
            if placement is not None:
                index.add(placement)
        return index

    def add(self, placement: Placement) -> None:
        for day in placement.dates():
            insort(self._buckets[(day, placement.court)], (_sort_key(placement), next(self._sequence), placement))

    def remove_match(self, match_id: int) -> None:
        for key, bucket in self._buckets.items():
            self._buckets[key] = [entry for entry in bucket if entry[2].match_id != match_id]

    def on(self, day: date, court: str) -> List[Placement]:
        return [p for _, _, p in self._buckets.get((day, court), [])]

    def courts_on(self, day: date) -> List[str]:
        return sorted({court for (d, court), bucket in self._buckets.items() if d == day and bucket})

    def count_on_court(self, court: str, start_date: date, end_date: date) -> int:
        seen = set()
        for (d, c), bucket in self._buckets.items():
            if c == court and start_date <= d <= end_date:
                for _, _, p in bucket:
                    seen.add((p.match_id, p.start))
        return len(seen)

    def overlapping(
        self,
        candidate: Placement,
        exclude_match_id: Optional[int] = None,
        any_court: bool = False,
    ) -> List[Placement]:
        """Placements overlapping the candidate on its court, or on every court with any_court=True."""
        hits: Dict[Tuple, Placement] = {}
        for day in candidate.dates():
            courts = self.courts_on(day) if any_court else [candidate.court]
            for court in courts:
                for _, _, existing in self._buckets.get((day, court), []):
                    if existing.start >= candidate.end:
                        break
                    if exclude_match_id is not None and existing.match_id == exclude_match_id:
                        continue
                    if existing.start < candidate.end and candidate.start < existing.end:
                        hits[(existing.match_id, existing.court, existing.start)] = existing
        return sorted(hits.values(), key=_sort_key)

    def find_conflicts(self, candidate: Placement, exclude_match_id: Optional[int] = None) -> List[ScheduleConflict]:
        return [_conflict(candidate, other) for other in self.overlapping(candidate, exclude_match_id)]


def find_conflicts(
    candidate: Placement,
    existing: Union[PlacementIndex, Iterable[Match]],
    default_duration: int = 0,
    exclude_match_id: Optional[int] = None,
) -> List[ScheduleConflict]:
    """Conflicts between a proposed placement and existing placements."""
    if exclude_match_id is None:
        exclude_match_id = candidate.match_id
    index = existing if isinstance(existing, PlacementIndex) else PlacementIndex.from_matches(existing, default_duration)
    return index.find_conflicts(candidate, exclude_match_id=exclude_match_id)


def detect_all_conflicts(matches: Iterable[Match], default_duration: int) -> List[ScheduleConflict]:
    """Every overlapping pair among scheduled matches, each pair reported once."""
    by_court: Dict[str, List[Placement]] = defaultdict(list)
    for match in matches:
        placement = placement_for_match(match, default_duration)
        if placement is not None:
            by_court[placement.court].append(placement)

    conflicts: List[ScheduleConflict] = []
    for court in sorted(by_court):
        active: List[Placement] = []
        for placement in sorted(by_court[court], key=_sort_key):
            active = [p for p in active if p.end > placement.start]
            for earlier in active:
                conflicts.append(_conflict(earlier, placement))
            active.append(placement)
    return conflicts
