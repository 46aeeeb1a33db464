"""
Bracket generation, round advancement and standings endpoints.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from app.database import get_session
from app.models.tournament import TournamentFormat
from app.services.advancement_service import advance_round, round_summary, tournament_progress
from app.services.bracket_engine import BracketResult, SeedingPolicy, create_bracket, recreate_bracket
from app.services.errors import EngineError
from app.services.standings import tournament_standings
from app.utils.http_errors import to_http_exception
from app.utils.responses import MatchResponse, matches_to_response

router = APIRouter()


class BracketCreateRequest(BaseModel):
    format: Optional[TournamentFormat] = None
    seeding: SeedingPolicy = SeedingPolicy.random


class BracketRecreateRequest(BracketCreateRequest):
    confirm: bool = False


class BracketResponse(BaseModel):
    tournament_id: int
    format: str
    seeding: str
    rounds: int
    total_matches: int
    bye_count: int
    registered_count: int
    eligible_count: int
    replaced_count: int
    matches: List[MatchResponse]


class StandingsRowResponse(BaseModel):
    rank: int
    team_id: int
    team_name: str
    played: int = 0
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0
    point_diff: int = 0


class StandingsResponse(BaseModel):
    tournament_id: int
    format: str
    tiebreak_notes: str
    rows: List[StandingsRowResponse]


class AdvanceRoundRequest(BaseModel):
    round: int


class AdvanceRoundResponse(BaseModel):
    success: bool
    tournament_id: int
    round: int
    next_round: int
    teams_advanced: int
    winning_teams: List[Dict[str, Any]]


def _bracket_response(result: BracketResult) -> BracketResponse:
    return BracketResponse(
        tournament_id=result.tournament_id,
        format=result.format,
        seeding=result.seeding,
        rounds=result.rounds,
        total_matches=len(result.matches),
        bye_count=result.bye_count,
        registered_count=result.registered_count,
        eligible_count=result.eligible_count,
        replaced_count=result.replaced_count,
        matches=matches_to_response(result.matches),
    )


@router.post("/tournaments/{tournament_id}/bracket", response_model=BracketResponse, status_code=201)
def create_tournament_bracket(
    tournament_id: int,
    request: Optional[BracketCreateRequest] = None,
    session: Session = Depends(get_session),
):
    """Generate the bracket from the tournament's eligible teams."""
    request = request or BracketCreateRequest()
    try:
        result = create_bracket(
            session,
            tournament_id,
            fmt=request.format.value if request.format else None,
            seeding=request.seeding,
        )
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return _bracket_response(result)


@router.post("/tournaments/{tournament_id}/bracket/recreate", response_model=BracketResponse)
def recreate_tournament_bracket(
    tournament_id: int,
    request: BracketRecreateRequest,
    session: Session = Depends(get_session),
):
    """
    Delete every match and regenerate the bracket.

    Results and schedule are lost, so the request must carry confirm=true.
    """
    try:
        result = recreate_bracket(
            session,
            tournament_id,
            fmt=request.format.value if request.format else None,
            seeding=request.seeding,
            confirm=request.confirm,
        )
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return _bracket_response(result)


@router.get("/tournaments/{tournament_id}/bracket/rounds/{round_number}/summary")
def get_round_summary(tournament_id: int, round_number: int, session: Session = Depends(get_session)):
    """Completion state of one round, including whether it can advance."""
    try:
        return round_summary(session, tournament_id, round_number).to_dict()
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)


@router.post("/tournaments/{tournament_id}/advance-round", response_model=AdvanceRoundResponse)
def advance_tournament_round(
    tournament_id: int, request: AdvanceRoundRequest, session: Session = Depends(get_session)
):
    try:
        result = advance_round(session, tournament_id, request.round)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
    return AdvanceRoundResponse(
        success=True,
        tournament_id=result.tournament_id,
        round=result.round,
        next_round=result.next_round,
        teams_advanced=result.teams_advanced,
        winning_teams=result.winning_teams,
    )


@router.get("/tournaments/{tournament_id}/progress")
def get_tournament_progress(tournament_id: int, session: Session = Depends(get_session)):
    try:
        return tournament_progress(session, tournament_id)
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)


@router.get("/tournaments/{tournament_id}/standings", response_model=StandingsResponse)
def get_tournament_standings(tournament_id: int, session: Session = Depends(get_session)):
    """Wins, losses and points for/against per team, best first."""
    try:
        return tournament_standings(session, tournament_id).to_dict()
    except (EngineError, ValueError) as exc:
        raise to_http_exception(exc)
