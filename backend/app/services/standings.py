"""
Standings: wins, losses and points for/against per team.

Only completed and walkover matches with two teams count; byes and
cancellations count for nobody. Rows are ordered by wins, then point
difference, then points for. Teams level on all three share a rank.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from sqlmodel import Session, select

from app.models.match import MatchStatus
from app.models.team import Team
from app.services.bracket_engine import get_tournament, list_matches

logger = logging.getLogger(__name__)

COUNTED_STATUSES = frozenset({MatchStatus.completed.value, MatchStatus.walkover.value})
TIEBREAK_NOTES = "Sorted by Wins, then Point Diff, then Points For"


@dataclass
class StandingsRow:
    team_id: int
    team_name: str
    played: int = 0
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0
    rank: int = 0

    @property
    def point_diff(self) -> int:
        return self.points_for - self.points_against

    def ranking_key(self) -> Tuple[int, int, int]:
        return (-self.wins, -self.point_diff, -self.points_for)

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "played": self.played,
            "wins": self.wins,
            "losses": self.losses,
            "points_for": self.points_for,
            "points_against": self.points_against,
            "point_diff": self.point_diff,
        }


@dataclass
class StandingsTable:
    tournament_id: int
    format: str
    rows: List[StandingsRow] = field(default_factory=list)
    tiebreak_notes: str = TIEBREAK_NOTES

    def to_dict(self) -> dict:
        return {
            "tournament_id": self.tournament_id,
            "format": self.format,
            "tiebreak_notes": self.tiebreak_notes,
            "rows": [row.to_dict() for row in self.rows],
        }


def tournament_standings(session: Session, tournament_id: int) -> StandingsTable:
    tournament = get_tournament(session, tournament_id)
    matches = list_matches(session, tournament_id)

    team_ids: Set[int] = set()
    for m in matches:
        if m.team1_id is not None:
            team_ids.add(m.team1_id)
        if m.team2_id is not None:
            team_ids.add(m.team2_id)
    teams = session.exec(select(Team).where(Team.id.in_(list(team_ids)))).all() if team_ids else []
    names = {t.id: t.name for t in teams}
    rows: Dict[int, StandingsRow] = {
        team_id: StandingsRow(team_id=team_id, team_name=names.get(team_id, f"Team {team_id}")) for team_id in team_ids
    }

    for m in matches:
        if m.status not in COUNTED_STATUSES or m.winner_id is None:
            continue
        if m.team1_id is None or m.team2_id is None:
            continue
        for team_id, scored, conceded in (
            (m.team1_id, m.team1_score, m.team2_score),
            (m.team2_id, m.team2_score, m.team1_score),
        ):
            row = rows[team_id]
            row.played += 1
            row.points_for += scored
            row.points_against += conceded
            if team_id == m.winner_id:
                row.wins += 1
            else:
                row.losses += 1

    ordered = sorted(rows.values(), key=lambda r: (r.ranking_key(), r.team_name.lower(), r.team_id))
    for position, row in enumerate(ordered, start=1):
        previous = ordered[position - 2] if position > 1 else None
        if previous is not None and previous.ranking_key() == row.ranking_key():
            row.rank = previous.rank
        else:
            row.rank = position

    logger.debug("Standings for tournament %d: %d teams", tournament_id, len(ordered))
    return StandingsTable(tournament_id=tournament_id, format=tournament.format, rows=ordered)
