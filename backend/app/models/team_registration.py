from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.team import Team


class TeamRegistration(SQLModel, table=True):
    """Per-tournament registration record, addressed by tournament name + year."""

    __table_args__ = (SAUniqueConstraint("team_id", "tournament", "year", name="uq_registration_team_tournament"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id", index=True)
    tournament: str = Field(index=True)
    year: int
    registration_date: Optional[datetime] = None
    payment_complete: bool = Field(default=False)
    payment_status: Optional[str] = Field(default=None)  # "pending" | "paid" | "completed" | ...
    amount_paid: Optional[float] = Field(default=None)
    level_of_competition: Optional[str] = None

    # Relationships
    team: Optional["Team"] = Relationship(back_populates="registrations")
