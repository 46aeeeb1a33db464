from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session, select

from app.database import atomic, get_session
from app.models.tournament import (
    STATUS_TRANSITIONS,
    CompetitionLevel,
    Tournament,
    TournamentFormat,
    TournamentStatus,
)
from app.services.bracket_engine import delete_matches, list_matches
from app.services.tournament_lock import exclusive_tournament
from app.utils.courts import parse_court_names
from app.utils.responses import MatchResponse, matches_to_response

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    year: int
    description: Optional[str] = None
    format: TournamentFormat = TournamentFormat.single_elimination
    level_of_competition: CompetitionLevel = CompetitionLevel.all
    sex: str = "Mixed"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_teams: int = 2
    max_teams: Optional[int] = None
    match_duration: Optional[int] = None
    break_duration: Optional[int] = None
    court_names: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        if self.min_teams < 2:
            raise ValueError("min_teams must be at least 2")
        if self.max_teams is not None and self.max_teams < self.min_teams:
            raise ValueError("max_teams must be >= min_teams")
        if self.match_duration is not None and self.match_duration <= 0:
            raise ValueError("match_duration must be positive")
        if self.break_duration is not None and self.break_duration < 0:
            raise ValueError("break_duration cannot be negative")
        return self


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    format: Optional[TournamentFormat] = None
    level_of_competition: Optional[CompetitionLevel] = None
    sex: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_teams: Optional[int] = None
    max_teams: Optional[int] = None
    match_duration: Optional[int] = None
    break_duration: Optional[int] = None
    court_names: Optional[List[str]] = None

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentStatusUpdate(BaseModel):
    status: TournamentStatus


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    year: int
    description: Optional[str]
    format: str
    level_of_competition: str
    sex: str
    status: str
    start_date: Optional[date]
    end_date: Optional[date]
    min_teams: int
    max_teams: Optional[int]
    match_duration: int
    break_duration: int
    court_names: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("court_names", mode="before")
    @classmethod
    def normalize_court_names(cls, v):
        """Court names may be stored as '1,2,3' instead of a list."""
        if v is None:
            return None
        return parse_court_names(v)


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.year.desc(), Tournament.name)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a new tournament in draft status"""
    data = tournament_data.model_dump(exclude_none=True)
    for key in ("format", "level_of_competition"):
        if key in data:
            data[key] = data[key].value
    if "court_names" in data:
        data["court_names"] = parse_court_names(data["court_names"])
    tournament = Tournament(**data)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    return _get_tournament_or_404(session, tournament_id)


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Update tournament details and settings (status changes go through /status)"""
    tournament = _get_tournament_or_404(session, tournament_id)

    update_data = tournament_data.model_dump(exclude_unset=True)
    if "format" in update_data and update_data["format"] is not None:
        if list_matches(session, tournament_id) and update_data["format"].value != tournament.format:
            raise HTTPException(status_code=409, detail="Cannot change format once a bracket exists")
        update_data["format"] = update_data["format"].value
    if update_data.get("level_of_competition") is not None:
        update_data["level_of_competition"] = update_data["level_of_competition"].value
    if "court_names" in update_data:
        update_data["court_names"] = parse_court_names(update_data["court_names"]) or None

    for field, value in update_data.items():
        if value is None and field not in ("description", "max_teams", "court_names", "start_date", "end_date"):
            continue
        setattr(tournament, field, value)

    if tournament.start_date and tournament.end_date and tournament.end_date < tournament.start_date:
        raise HTTPException(status_code=422, detail="end_date must be >= start_date")

    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.delete("/tournaments/{tournament_id}", status_code=204)
def delete_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Delete a tournament that is still in draft, with any matches left behind by a hard reset"""
    tournament = _get_tournament_or_404(session, tournament_id)
    if tournament.status != TournamentStatus.draft.value:
        raise HTTPException(
            status_code=409,
            detail={
                "code": "INVALID_TRANSITION",
                "message": f"Only draft tournaments can be deleted; this one is {tournament.status}",
                "details": {"tournament_id": tournament_id, "status": tournament.status},
            },
        )

    with exclusive_tournament(tournament_id):
        with atomic(session):
            delete_matches(session, list_matches(session, tournament_id))
            session.delete(tournament)

    return Response(status_code=204)


@router.post("/tournaments/{tournament_id}/status", response_model=TournamentResponse)
def update_tournament_status(
    tournament_id: int, payload: TournamentStatusUpdate, session: Session = Depends(get_session)
):
    """Move the tournament through draft -> open -> ongoing -> completed (or cancelled)"""
    tournament = _get_tournament_or_404(session, tournament_id)
    target = payload.status.value
    if target == tournament.status:
        return tournament
    if target not in STATUS_TRANSITIONS.get(tournament.status, set()):
        raise HTTPException(
            status_code=409,
            detail={
                "code": "INVALID_TRANSITION",
                "message": f"Cannot move tournament from {tournament.status} to {target}",
                "details": {"from": tournament.status, "to": target},
            },
        )
    tournament.status = target
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_tournament_matches(
    tournament_id: int, round: Optional[int] = None, session: Session = Depends(get_session)
):
    """All matches of a tournament, ordered by round then match number"""
    _get_tournament_or_404(session, tournament_id)
    return matches_to_response(list_matches(session, tournament_id, round))
