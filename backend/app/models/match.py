from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.team import Team
    from app.models.tournament import Tournament


class MatchStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in-progress"
    completed = "completed"
    cancelled = "cancelled"
    walkover = "walkover"
    bye = "bye"


TERMINAL_STATUSES = frozenset(
    {
        MatchStatus.completed.value,
        MatchStatus.cancelled.value,
        MatchStatus.walkover.value,
        MatchStatus.bye.value,
    }
)

# Statuses whose winner flows into the next match
DECIDED_STATUSES = frozenset({MatchStatus.completed.value, MatchStatus.walkover.value, MatchStatus.bye.value})


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "match_number", name="uq_match_tournament_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int
    match_number: int  # Unique within the tournament; bracket links depend on it
    bracket_type: str = Field(default="winners")  # "winners" | "final" | "round-robin"

    # Nullable until the bracket resolves them (bye or prior-round winner)
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team1_score: int = Field(default=0)
    team2_score: int = Field(default=0)
    winner_id: Optional[int] = Field(default=None, foreign_key="team.id")
    loser_id: Optional[int] = Field(default=None, foreign_key="team.id")

    # Unscheduled is the absence of scheduled_time, not a status value
    status: str = Field(default=MatchStatus.scheduled.value)
    notes: Optional[str] = None

    # Scheduling: scheduled_time and court are set or cleared together
    scheduled_time: Optional[datetime] = Field(default=None, index=True)
    court: Optional[str] = Field(default=None)
    duration_minutes: Optional[int] = Field(default=None)

    # Bracket topology: the winner of this match fills next_match.team{next_match_slot}
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    next_match_slot: Optional[int] = Field(default=None)  # 1 | 2

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    team1: Optional["Team"] = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.team1_id"})
    team2: Optional["Team"] = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.team2_id"})
    winner: Optional["Team"] = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.winner_id"})

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_time is not None and self.court is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def scheduled_end(self, default_duration: int) -> Optional[datetime]:
        if self.scheduled_time is None:
            return None
        return self.scheduled_time + timedelta(minutes=self.duration_minutes or default_duration)

    def clear_schedule(self) -> None:
        self.scheduled_time = None
        self.court = None
