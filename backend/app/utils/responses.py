"""
Response models shared across routers (tournaments, bracket, matches, schedule).
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.models.match import Match
from app.services.conflict_detector import ScheduleConflict


class MatchResponse(BaseModel):
    id: int
    tournament_id: int
    round_number: int
    match_number: int
    bracket_type: str
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_name: Optional[str] = None
    team2_name: Optional[str] = None
    team1_score: int
    team2_score: int
    winner_id: Optional[int] = None
    loser_id: Optional[int] = None
    status: str
    scheduled_time: Optional[datetime] = None
    court: Optional[str] = None
    duration_minutes: Optional[int] = None
    next_match_id: Optional[int] = None
    next_match_slot: Optional[int] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ConflictResponse(BaseModel):
    match_id: Optional[int] = None
    match_number: Optional[int] = None
    conflicting_match_id: Optional[int] = None
    conflicting_match_number: Optional[int] = None
    court: str
    time: datetime
    overlap_end: datetime
    overlap_minutes: int


def match_to_response(m: Match) -> MatchResponse:
    return MatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        round_number=m.round_number,
        match_number=m.match_number,
        bracket_type=m.bracket_type,
        team1_id=m.team1_id,
        team2_id=m.team2_id,
        team1_name=m.team1.name if m.team1 else None,
        team2_name=m.team2.name if m.team2 else None,
        team1_score=m.team1_score,
        team2_score=m.team2_score,
        winner_id=m.winner_id,
        loser_id=m.loser_id,
        status=m.status,
        scheduled_time=m.scheduled_time,
        court=m.court,
        duration_minutes=m.duration_minutes,
        next_match_id=m.next_match_id,
        next_match_slot=m.next_match_slot,
        notes=m.notes,
        started_at=m.started_at,
        completed_at=m.completed_at,
    )


def matches_to_response(matches: List[Match]) -> List[MatchResponse]:
    return [match_to_response(m) for m in matches]


def conflict_to_response(c: ScheduleConflict) -> ConflictResponse:
    return ConflictResponse(
        match_id=c.match_id,
        match_number=c.match_number,
        conflicting_match_id=c.conflicting_match_id,
        conflicting_match_number=c.conflicting_match_number,
        court=c.court,
        time=c.time,
        overlap_end=c.overlap_end,
        overlap_minutes=c.overlap_minutes,
    )
