"""
Schedule endpoints: batch generation, manual placement, date views,
open-slot lookup, conflict scans and schedule resets.
"""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session

from app.database import get_session
from app.services.errors import EngineError
from app.services.reset_manager import ResetMode, can_reset, reset_schedule
from app.services.schedule_engine import ScheduleStrategy, ScheduleWindow
from app.services.schedule_service import (
    available_slots,
    court_schedule,
    generate_schedule,
    remove_schedule,
    schedule_match,
    tournament_conflicts,
)
from app.utils.http_errors import to_http_exception
from app.utils.responses import (
    ConflictResponse,
    MatchResponse,
    conflict_to_response,
    match_to_response,
    matches_to_response,
)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class ScheduleGenerateRequest(BaseModel):
    start_date: date
    end_date: date
    start_time: time
    end_time: time
    courts: Optional[List[str]] = None
    match_duration: Optional[int] = None
    break_duration: Optional[int] = None
    strategy: ScheduleStrategy = ScheduleStrategy.sequential
    court_closing_times: Optional[Dict[str, time]] = None
    match_ids: Optional[List[int]] = None
    require_all: bool = False

    @model_validator(mode="after")
    def validate_window(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.match_duration is not None and self.match_duration <= 0:
            raise ValueError("match_duration must be positive")
        if self.break_duration is not None and self.break_duration < 0:
            raise ValueError("break_duration cannot be negative")
        return self


class UnplacedMatchResponse(BaseModel):
    match_id: Optional[int] = None
    match_number: int
    round_number: int
    reason: str


class ScheduleGenerateResponse(BaseModel):
    tournament_id: int
    strategy: str
    scheduled_count: int
    unplaced_count: int
    scheduled: List[MatchResponse]
    unplaced: List[UnplacedMatchResponse]
    conflicts: List[ConflictResponse]


class MatchScheduleRequest(BaseModel):
    scheduled_time: datetime
    court: str
    duration: Optional[int] = None

    @field_validator("court")
    @classmethod
    def validate_court(cls, v):
        if not v or not v.strip():
            raise ValueError("court is required")
        return v.strip()

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and v <= 0:
            raise ValueError("duration must be positive")
        return v


class MatchScheduleResponse(BaseModel):
    match: MatchResponse
    conflicts: List[ConflictResponse]
    has_conflicts: bool


class DateScheduleResponse(BaseModel):
    tournament_id: int
    date: date
    total_matches: int
    courts: Dict[str, List[MatchResponse]]


class ConflictScanResponse(BaseModel):
    tournament_id: int
    total_conflicts: int
    conflicts: List[ConflictResponse]


class ResetRequest(BaseModel):
    mode: ResetMode


class ResetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tournament_id: int
    mode: str
    matches_affected: int
    affected_match_ids: List[int]
    tournament_status: str


# ============================================================================
# Generation and manual placement
# ============================================================================


@router.post("/tournaments/{tournament_id}/schedule/generate", response_model=ScheduleGenerateResponse)
def generate_tournament_schedule(
    tournament_id: int, request: ScheduleGenerateRequest, session: Session = Depends(get_session)
):
    """
    Place every unscheduled match inside the window.

    Matches that do not fit are listed in `unplaced` (or, with
    require_all=true, the request fails with 422 and nothing is saved).
    """
    try:
        window = ScheduleWindow(request.start_date, request.end_date, request.start_time, request.end_time)
        result = generate_schedule(
            session,
            tournament_id,
            window,
            courts=request.courts,
            match_duration=request.match_duration,
            break_duration=request.break_duration,
            strategy=request.strategy,
            court_closing_times=request.court_closing_times,
            match_ids=request.match_ids,
            require_all=request.require_all,
        )
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)

    return ScheduleGenerateResponse(
        tournament_id=tournament_id,
        strategy=result.strategy,
        scheduled_count=len(result.scheduled),
        unplaced_count=len(result.unplaced),
        scheduled=matches_to_response(result.scheduled),
        unplaced=[UnplacedMatchResponse(**u.to_dict()) for u in result.unplaced],
        conflicts=[conflict_to_response(c) for c in result.conflicts],
    )


@router.put("/matches/{match_id}/schedule", response_model=MatchScheduleResponse)
def schedule_single_match(match_id: int, request: MatchScheduleRequest, session: Session = Depends(get_session)):
    """Manual placement. The write always succeeds; overlaps come back as warnings."""
    try:
        outcome = schedule_match(session, match_id, request.scheduled_time, request.court, request.duration)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return MatchScheduleResponse(
        match=match_to_response(outcome.match),
        conflicts=[conflict_to_response(c) for c in outcome.conflicts],
        has_conflicts=bool(outcome.conflicts),
    )


@router.delete("/matches/{match_id}/schedule", response_model=MatchResponse)
def unschedule_match(match_id: int, session: Session = Depends(get_session)):
    try:
        return match_to_response(remove_schedule(session, match_id))
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)


# ============================================================================
# Views
# ============================================================================


@router.get("/tournaments/{tournament_id}/schedule/date/{day}", response_model=DateScheduleResponse)
def get_schedule_by_date(tournament_id: int, day: date, session: Session = Depends(get_session)):
    try:
        view = court_schedule(session, tournament_id, day)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return DateScheduleResponse(
        tournament_id=tournament_id,
        date=day,
        total_matches=sum(len(matches) for matches in view.values()),
        courts={court: matches_to_response(matches) for court, matches in view.items()},
    )


@router.get("/tournaments/{tournament_id}/schedule/available-slots")
def get_available_slots(
    tournament_id: int,
    day: date = Query(..., alias="date"),
    start_time: time = Query(time(8, 0)),
    end_time: time = Query(time(18, 0)),
    courts: Optional[List[str]] = Query(None),
    match_duration: Optional[int] = Query(None, gt=0),
    break_duration: Optional[int] = Query(None, ge=0),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Open intervals per court on one date, each long enough for at least one match."""
    try:
        slots = available_slots(
            session,
            tournament_id,
            day,
            start_time,
            end_time,
            courts=courts,
            match_duration=match_duration,
            break_duration=break_duration,
        )
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return {
        "tournament_id": tournament_id,
        "date": day.isoformat(),
        "courts": {court: [slot.to_dict() for slot in court_slots] for court, court_slots in slots.items()},
    }


@router.get("/tournaments/{tournament_id}/schedule/conflicts", response_model=ConflictScanResponse)
def get_schedule_conflicts(tournament_id: int, session: Session = Depends(get_session)):
    """Every pair of matches whose placements overlap on the same court."""
    try:
        conflicts = tournament_conflicts(session, tournament_id)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return ConflictScanResponse(
        tournament_id=tournament_id,
        total_conflicts=len(conflicts),
        conflicts=[conflict_to_response(c) for c in conflicts],
    )


# ============================================================================
# Reset
# ============================================================================


@router.get("/tournaments/{tournament_id}/schedule/can-reset")
def get_reset_permissions(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    try:
        permissions = can_reset(session, tournament_id)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return {
        "tournament_id": tournament_id,
        "modes": {mode.value: permission.to_dict() for mode, permission in permissions.items()},
    }


@router.post("/tournaments/{tournament_id}/schedule/reset", response_model=ResetResponse)
def reset_tournament_schedule(tournament_id: int, request: ResetRequest, session: Session = Depends(get_session)):
    """
    soft: clear every time and court. hard: delete all matches, back to draft.
    partial: clear only matches that have not been decided.
    """
    try:
        return reset_schedule(session, tournament_id, request.mode)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
