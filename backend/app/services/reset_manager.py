"""
Reset Manager: reverts schedule and bracket state.

- soft: clear time and court on every match; results stay.
- hard: delete every match and return the tournament to draft. Irreversible.
- partial: clear time and court only on matches that are not terminal
  (completed, walkover, bye and cancelled keep theirs).

No reset touches a completed tournament. Soft and hard are also refused
once any match is completed; partial exists for exactly that case.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Sequence

from sqlmodel import Session

from app.database import atomic
from app.models.match import TERMINAL_STATUSES, Match, MatchStatus
from app.models.tournament import Tournament, TournamentStatus
from app.services.bracket_engine import delete_matches, get_tournament, list_matches
from app.services.errors import InvalidTransitionError
from app.services.tournament_lock import exclusive_tournament

logger = logging.getLogger(__name__)


class ResetMode(str, Enum):
    soft = "soft"
    hard = "hard"
    partial = "partial"


@dataclass(frozen=True)
class ResetPermission:
    mode: ResetMode
    allowed: bool
    reason: str = ""

    def to_dict(self) -> dict:
        return {"allowed": self.allowed, "reason": self.reason or None}


@dataclass
class ResetResult:
    tournament_id: int
    mode: str
    matches_affected: int
    affected_match_ids: List[int] = field(default_factory=list)
    tournament_status: str = ""


def reset_permissions(tournament: Tournament, matches: Sequence[Match]) -> Dict[ResetMode, ResetPermission]:
    """Per mode, whether a reset is currently permitted and why not."""
    if tournament.status == TournamentStatus.completed.value:
        reason = "tournament is completed"
        return {mode: ResetPermission(mode, False, reason) for mode in ResetMode}

    completed = [m for m in matches if m.status == MatchStatus.completed.value]
    permissions = {mode: ResetPermission(mode, True) for mode in ResetMode}
    if completed:
        reason = f"{len(completed)} matches are already completed; use a partial reset"
        permissions[ResetMode.soft] = ResetPermission(ResetMode.soft, False, reason)
        permissions[ResetMode.hard] = ResetPermission(ResetMode.hard, False, reason)
    return permissions


def can_reset(session: Session, tournament_id: int) -> Dict[ResetMode, ResetPermission]:
    tournament = get_tournament(session, tournament_id)
    return reset_permissions(tournament, list_matches(session, tournament_id))


def _clear_schedules(session: Session, matches: Sequence[Match]) -> List[int]:
    affected = []
    for match in matches:
        if match.scheduled_time is None and match.court is None:
            continue
        match.clear_schedule()
        session.add(match)
        affected.append(match.id)
    return affected


def _soft_reset(session: Session, tournament: Tournament, matches: Sequence[Match]) -> List[int]:
    return _clear_schedules(session, matches)


def _partial_reset(session: Session, tournament: Tournament, matches: Sequence[Match]) -> List[int]:
    return _clear_schedules(session, [m for m in matches if m.status not in TERMINAL_STATUSES])


def _hard_reset(session: Session, tournament: Tournament, matches: Sequence[Match]) -> List[int]:
    affected = [m.id for m in matches]
    delete_matches(session, matches)
    tournament.status = TournamentStatus.draft.value
    return affected


RESET_HANDLERS: Dict[ResetMode, Callable[[Session, Tournament, Sequence[Match]], List[int]]] = {
    ResetMode.soft: _soft_reset,
    ResetMode.hard: _hard_reset,
    ResetMode.partial: _partial_reset,
}


def reset_schedule(session: Session, tournament_id: int, mode: ResetMode) -> ResetResult:
    mode = ResetMode(mode)
    with exclusive_tournament(tournament_id):
        with atomic(session):
            tournament = get_tournament(session, tournament_id)
            matches = list_matches(session, tournament_id)
            permission = reset_permissions(tournament, matches)[mode]
            if not permission.allowed:
                logger.warning("Refused %s reset for tournament %d: %s", mode.value, tournament_id, permission.reason)
                raise InvalidTransitionError(
                    f"Cannot perform a {mode.value} reset: {permission.reason}",
                    details={"tournament_id": tournament_id, "mode": mode.value, "reason": permission.reason},
                )

            affected = RESET_HANDLERS[mode](session, tournament, matches)
            tournament.updated_at = datetime.utcnow()
            session.add(tournament)
            status = tournament.status

    logger.info("%s reset on tournament %d affected %d matches", mode.value.capitalize(), tournament_id, len(affected))
    return ResetResult(
        tournament_id=tournament_id,
        mode=mode.value,
        matches_affected=len(affected),
        affected_match_ids=affected,
        tournament_status=status,
    )
