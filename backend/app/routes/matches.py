"""
Match lifecycle endpoints: record results, start, cancel and reset.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session

from app.database import get_session
from app.models.match import MatchStatus
from app.services.advancement_service import cancel_match, record_result, reset_match_result, start_match
from app.services.errors import EngineError
from app.utils.http_errors import to_http_exception
from app.utils.responses import MatchResponse, match_to_response, matches_to_response

router = APIRouter()


class MatchResultRequest(BaseModel):
    team1_score: int = 0
    team2_score: int = 0
    winner_id: Optional[int] = None
    status: MatchStatus = MatchStatus.completed
    notes: Optional[str] = None

    @field_validator("team1_score", "team2_score")
    @classmethod
    def validate_score(cls, v):
        if v < 0:
            raise ValueError("scores cannot be negative")
        return v


class MatchNotesRequest(BaseModel):
    notes: Optional[str] = None


class MatchResultResponse(BaseModel):
    match: MatchResponse
    advanced: List[MatchResponse]
    tournament_status: Optional[str] = None


@router.put("/matches/{match_id}/result", response_model=MatchResultResponse)
def update_match_result(match_id: int, request: MatchResultRequest, session: Session = Depends(get_session)):
    """Record a completed or walkover result; the winner moves into the next match."""
    try:
        outcome = record_result(
            session,
            match_id,
            request.team1_score,
            request.team2_score,
            winner_id=request.winner_id,
            status=request.status.value,
            notes=request.notes,
        )
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return MatchResultResponse(
        match=match_to_response(outcome.match),
        advanced=matches_to_response(outcome.advanced),
        tournament_status=outcome.tournament_status,
    )


@router.post("/matches/{match_id}/start", response_model=MatchResponse)
def start_match_endpoint(match_id: int, session: Session = Depends(get_session)):
    try:
        return match_to_response(start_match(session, match_id))
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)


@router.post("/matches/{match_id}/cancel", response_model=MatchResponse)
def cancel_match_endpoint(
    match_id: int, request: Optional[MatchNotesRequest] = None, session: Session = Depends(get_session)
):
    try:
        return match_to_response(cancel_match(session, match_id, notes=request.notes if request else None))
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)


@router.post("/matches/{match_id}/reset", response_model=MatchResponse)
def reset_match_endpoint(match_id: int, session: Session = Depends(get_session)):
    """Undo a result or cancellation, as long as nothing downstream has been played."""
    try:
        return match_to_response(reset_match_result(session, match_id))
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
