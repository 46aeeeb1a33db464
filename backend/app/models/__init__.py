from app.models.match import DECIDED_STATUSES, TERMINAL_STATUSES, Match, MatchStatus
from app.models.team import Team
from app.models.team_registration import TeamRegistration
from app.models.tournament import (
    STATUS_TRANSITIONS,
    CompetitionLevel,
    Tournament,
    TournamentFormat,
    TournamentStatus,
)

__all__ = [
    "Tournament",
    "TournamentFormat",
    "TournamentStatus",
    "CompetitionLevel",
    "STATUS_TRANSITIONS",
    "Team",
    "TeamRegistration",
    "Match",
    "MatchStatus",
    "TERMINAL_STATUSES",
    "DECIDED_STATUSES",
]
