from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

from app.config import DEFAULT_BREAK_DURATION_MINUTES, DEFAULT_MATCH_DURATION_MINUTES

if TYPE_CHECKING:
    from app.models.match import Match


class TournamentFormat(str, Enum):
    single_elimination = "single-elimination"
    double_elimination = "double-elimination"
    round_robin = "round-robin"
    group_stage = "group-stage"


class TournamentStatus(str, Enum):
    draft = "draft"
    open = "open"
    ongoing = "ongoing"
    completed = "completed"
    cancelled = "cancelled"


class CompetitionLevel(str, Enum):
    gold = "Gold"
    silver = "Silver"
    all = "All"


# Allowed lifecycle moves; "completed" and "cancelled" are terminal
STATUS_TRANSITIONS = {
    TournamentStatus.draft.value: {TournamentStatus.open.value, TournamentStatus.cancelled.value},
    TournamentStatus.open.value: {
        TournamentStatus.draft.value,
        TournamentStatus.ongoing.value,
        TournamentStatus.cancelled.value,
    },
    TournamentStatus.ongoing.value: {TournamentStatus.completed.value, TournamentStatus.cancelled.value},
    TournamentStatus.completed.value: set(),
    TournamentStatus.cancelled.value: set(),
}


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    year: int = Field(index=True)
    description: Optional[str] = None
    format: str = Field(default=TournamentFormat.single_elimination.value)
    level_of_competition: str = Field(default=CompetitionLevel.all.value)
    sex: str = Field(default="Mixed")
    status: str = Field(default=TournamentStatus.draft.value)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_teams: int = Field(default=2)
    max_teams: Optional[int] = None

    # Settings
    match_duration: int = Field(default=DEFAULT_MATCH_DURATION_MINUTES)
    break_duration: int = Field(default=DEFAULT_BREAK_DURATION_MINUTES)
    court_names: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    matches: List["Match"] = Relationship(back_populates="tournament")
