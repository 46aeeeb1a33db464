"""
Team intake and registration views.

Teams are mirrored from the registration system; the engine only needs
enough of them to decide eligibility and seed brackets.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.database import get_session
from app.models.team import Team
from app.models.team_registration import TeamRegistration
from app.models.tournament import Tournament
from app.services.eligibility import evaluate_eligibility
from app.services.roster import context_for, list_registered_teams

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class RegistrationCreateRequest(BaseModel):
    tournament: str
    year: int
    registration_date: Optional[datetime] = None
    payment_complete: bool = False
    payment_status: Optional[str] = None
    amount_paid: Optional[float] = None
    level_of_competition: Optional[str] = None

    @field_validator("amount_paid")
    @classmethod
    def validate_amount(cls, v):
        if v is not None and v < 0:
            raise ValueError("amount_paid cannot be negative")
        return v


class TeamCreateRequest(BaseModel):
    name: str
    external_id: Optional[str] = None
    grade: Optional[str] = None
    sex: Optional[str] = None
    level_of_competition: Optional[str] = None
    rank: Optional[int] = None
    is_active: bool = True
    payment_complete: Optional[bool] = None
    payment_status: Optional[str] = None
    registrations: List[RegistrationCreateRequest] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("rank")
    @classmethod
    def validate_rank(cls, v):
        if v is not None and v < 1:
            raise ValueError("rank is 1-based")
        return v


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament: str
    year: int
    registration_date: Optional[datetime] = None
    payment_complete: bool
    payment_status: Optional[str] = None
    amount_paid: Optional[float] = None
    level_of_competition: Optional[str] = None


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: Optional[str] = None
    name: str
    grade: Optional[str] = None
    sex: Optional[str] = None
    level_of_competition: Optional[str] = None
    rank: Optional[int] = None
    is_active: bool
    payment_complete: Optional[bool] = None
    payment_status: Optional[str] = None
    created_at: datetime
    registrations: List[RegistrationResponse] = []


class RegisteredTeamResponse(BaseModel):
    team_id: int
    team_name: str
    rank: Optional[int] = None
    eligible: bool
    rule: Optional[str] = None
    reason: str


class RegisteredTeamsResponse(BaseModel):
    tournament_id: int
    registered_count: int
    eligible_count: int
    teams: List[RegisteredTeamResponse]


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(request: TeamCreateRequest, session: Session = Depends(get_session)):
    """Create a team together with its tournament registrations."""
    team = Team(**request.model_dump(exclude={"registrations"}))
    team.registrations = [TeamRegistration(**r.model_dump()) for r in request.registrations]

    try:
        session.add(team)
        session.commit()
        session.refresh(team)
        return team
    except IntegrityError as e:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Team or registration already exists: {e.orig}")


@router.get("/tournaments/{tournament_id}/registered-teams", response_model=RegisteredTeamsResponse)
def get_registered_teams(tournament_id: int, session: Session = Depends(get_session)):
    """
    Teams registered for the tournament (by name + year), each with its
    eligibility decision and the rule that produced it.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")

    context = context_for(tournament)
    teams = list_registered_teams(session, tournament)
    decisions = [evaluate_eligibility(team, context) for team in teams]
    ranks = {t.id: t.rank for t in teams}

    return RegisteredTeamsResponse(
        tournament_id=tournament_id,
        registered_count=len(decisions),
        eligible_count=sum(1 for d in decisions if d.eligible),
        teams=[RegisteredTeamResponse(rank=ranks.get(d.team_id), **d.to_dict()) for d in decisions],
    )
