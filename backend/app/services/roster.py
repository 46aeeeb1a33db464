"""
Read side of the registration system: the teams registered for a tournament,
addressed by tournament name + year.
"""
from typing import List

from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from app.models.team import Team
from app.models.team_registration import TeamRegistration
from app.models.tournament import Tournament
from app.services.eligibility import TournamentContext


def context_for(tournament: Tournament) -> TournamentContext:
    return TournamentContext(name=tournament.name, year=tournament.year)


def list_registered_teams(session: Session, tournament: Tournament) -> List[Team]:
    """Active teams holding a registration record for the tournament, ordered by id."""
    team_ids = session.exec(
        select(TeamRegistration.team_id).where(
            TeamRegistration.tournament == tournament.name,
            TeamRegistration.year == tournament.year,
        )
    ).all()
    if not team_ids:
        return []
    return list(
        session.exec(
            select(Team)
            .where(Team.id.in_(set(team_ids)), Team.is_active == True)  # noqa: E712
            .options(selectinload(Team.registrations))
            .order_by(Team.id)
        ).all()
    )
