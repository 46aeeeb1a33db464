from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.team_registration import TeamRegistration


class Team(SQLModel, table=True):
    """A team as mirrored from the registration system. The engine only reads it."""

    id: Optional[int] = Field(default=None, primary_key=True)
    external_id: Optional[str] = Field(default=None, index=True, unique=True)  # Registration-system identity
    name: str
    grade: Optional[str] = None
    sex: Optional[str] = None
    level_of_competition: Optional[str] = None  # "Gold" | "Silver"
    rank: Optional[int] = Field(default=None)  # 1-based (1=strongest), used by rank seeding
    is_active: bool = Field(default=True)

    # Legacy root-level payment fields (pre per-tournament registrations)
    payment_complete: Optional[bool] = Field(default=None)
    payment_status: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    registrations: List["TeamRegistration"] = Relationship(back_populates="team")
