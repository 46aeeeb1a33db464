"""
Match results and round advancement.

When a match is decided (completed, walkover or bye) its winner fills the
team slot named by next_match_id/next_match_slot. A downstream match with a
single feeder has no second opponent coming, so it becomes a bye the moment
that feeder resolves and passes the team on again.

Result edits hold the tournament lock shared (plus a per-match mutex);
round advancement holds it exclusively.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from app.database import atomic
from app.models.match import DECIDED_STATUSES, TERMINAL_STATUSES, Match, MatchStatus
from app.models.team import Team
from app.models.tournament import Tournament, TournamentStatus
from app.services.bracket_engine import get_tournament, list_matches
from app.services.errors import InvalidTransitionError, NotFoundError
from app.services.tournament_lock import exclusive_tournament, shared_match

logger = logging.getLogger(__name__)

RESULT_STATUSES = frozenset({MatchStatus.completed.value, MatchStatus.walkover.value})


def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found", details={"match_id": match_id})
    return match


def feeders_of(session: Session, match: Match) -> List[Match]:
    return list(
        session.exec(select(Match).where(Match.next_match_id == match.id).order_by(Match.match_number)).all()
    )


def propagate_winner(session: Session, match: Match) -> List[Match]:
    """
    Push a decided match's winner into its downstream slot.

    Idempotent. Returns the downstream matches that changed, including any
    single-feeder matches that turned into byes along the way.
    """
    if match.status not in DECIDED_STATUSES or match.winner_id is None or match.next_match_id is None:
        return []

    downstream = get_match(session, match.next_match_id)
    attr = f"team{match.next_match_slot or 1}_id"
    current = getattr(downstream, attr)
    touched: List[Match] = []

    if current != match.winner_id:
        if current is not None:
            raise InvalidTransitionError(
                f"Match {downstream.match_number} already holds another team in slot {match.next_match_slot}",
                details={"match_id": downstream.id, "slot": match.next_match_slot, "team_id": current},
            )
        setattr(downstream, attr, match.winner_id)
        downstream.updated_at = datetime.utcnow()
        session.add(downstream)
        touched.append(downstream)

    if downstream.status not in TERMINAL_STATUSES and len(feeders_of(session, downstream)) == 1:
        downstream.status = MatchStatus.bye.value
        downstream.winner_id = match.winner_id
        downstream.completed_at = datetime.utcnow()
        # A bye is never played, so it gives back any court slot it held
        downstream.clear_schedule()
        session.add(downstream)
        if downstream not in touched:
            touched.append(downstream)
        logger.debug("Match %d became a bye for team %d", downstream.match_number, match.winner_id)
        touched.extend(propagate_winner(session, downstream))

    session.flush()
    return touched


def _require_accepts_play(tournament: Tournament) -> None:
    if tournament.status in (TournamentStatus.completed.value, TournamentStatus.cancelled.value):
        raise InvalidTransitionError(
            f"Tournament is {tournament.status}; match state can no longer change",
            details={"tournament_id": tournament.id, "status": tournament.status},
        )


def _sync_tournament_status(session: Session, tournament: Tournament) -> None:
    """draft/open -> ongoing once play starts; ongoing -> completed once every match is terminal."""
    if tournament.status in (TournamentStatus.draft.value, TournamentStatus.open.value):
        tournament.status = TournamentStatus.ongoing.value
    matches = list_matches(session, tournament.id)
    if matches and all(m.status in TERMINAL_STATUSES for m in matches):
        tournament.status = TournamentStatus.completed.value
        logger.info("Tournament %d completed", tournament.id)
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)


@dataclass
class ResultOutcome:
    match: Match
    advanced: List[Match] = field(default_factory=list)
    tournament_status: Optional[str] = None


def _locked_match(session: Session, match_id: int) -> Match:
    match = get_match(session, match_id)
    session.refresh(match)
    return match


def record_result(
    session: Session,
    match_id: int,
    team1_score: int,
    team2_score: int,
    winner_id: Optional[int] = None,
    status: str = MatchStatus.completed.value,
    notes: Optional[str] = None,
) -> ResultOutcome:
    """Record a completed or walkover result and advance the winner. Only a walkover may skip the calendar."""
    tournament_id = get_match(session, match_id).tournament_id
    with shared_match(tournament_id, match_id):
        with atomic(session):
            match = _locked_match(session, match_id)
            tournament = get_tournament(session, tournament_id)
            _require_accepts_play(tournament)

            if status not in RESULT_STATUSES:
                raise InvalidTransitionError(
                    f"A result must be '{MatchStatus.completed.value}' or '{MatchStatus.walkover.value}', got '{status}'",
                    details={"match_id": match_id, "status": status},
                )
            if match.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(
                    f"Match {match.match_number} is already {match.status}",
                    details={"match_id": match_id, "status": match.status},
                )
            if status == MatchStatus.completed.value and not match.is_scheduled:
                raise InvalidTransitionError(
                    f"Match {match.match_number} has no time and court; only a walkover can be recorded",
                    details={"match_id": match_id, "status": match.status},
                )
            if match.team1_id is None or match.team2_id is None:
                raise InvalidTransitionError(
                    f"Both teams must be assigned before match {match.match_number} can be decided",
                    details={"match_id": match_id, "team1_id": match.team1_id, "team2_id": match.team2_id},
                )

            if winner_id is None:
                if status == MatchStatus.walkover.value or team1_score == team2_score:
                    raise InvalidTransitionError(
                        "A winner is required for a walkover or a level score",
                        details={"match_id": match_id, "team1_score": team1_score, "team2_score": team2_score},
                    )
                winner_id = match.team1_id if team1_score > team2_score else match.team2_id
            elif winner_id not in (match.team1_id, match.team2_id):
                raise InvalidTransitionError(
                    f"Team {winner_id} is not playing in match {match.match_number}",
                    details={"match_id": match_id, "winner_id": winner_id},
                )

            match.team1_score = team1_score
            match.team2_score = team2_score
            match.winner_id = winner_id
            match.loser_id = match.team2_id if winner_id == match.team1_id else match.team1_id
            match.status = status
            match.completed_at = datetime.utcnow()
            if notes is not None:
                match.notes = notes
            session.add(match)
            session.flush()

            advanced = propagate_winner(session, match)
            _sync_tournament_status(session, tournament)

    logger.info(
        "Match %d (tournament %d) %s: winner team %d, advanced into %d matches",
        match.match_number,
        tournament_id,
        status,
        winner_id,
        len(advanced),
    )
    return ResultOutcome(match=match, advanced=advanced, tournament_status=tournament.status)


def start_match(session: Session, match_id: int) -> Match:
    tournament_id = get_match(session, match_id).tournament_id
    with shared_match(tournament_id, match_id):
        with atomic(session):
            match = _locked_match(session, match_id)
            tournament = get_tournament(session, tournament_id)
            _require_accepts_play(tournament)
            if match.status != MatchStatus.scheduled.value:
                raise InvalidTransitionError(
                    f"Only a scheduled match can start; match {match.match_number} is {match.status}",
                    details={"match_id": match_id, "status": match.status},
                )
            if not match.is_scheduled:
                raise InvalidTransitionError(
                    f"Match {match.match_number} has no time and court yet",
                    details={"match_id": match_id},
                )
            if match.team1_id is None or match.team2_id is None:
                raise InvalidTransitionError(
                    f"Match {match.match_number} is still waiting for its teams",
                    details={"match_id": match_id},
                )
            match.status = MatchStatus.in_progress.value
            match.started_at = match.started_at or datetime.utcnow()
            session.add(match)
            _sync_tournament_status(session, tournament)
    return match


def cancel_match(session: Session, match_id: int, notes: Optional[str] = None) -> Match:
    tournament_id = get_match(session, match_id).tournament_id
    with shared_match(tournament_id, match_id):
        with atomic(session):
            match = _locked_match(session, match_id)
            tournament = get_tournament(session, tournament_id)
            _require_accepts_play(tournament)
            if match.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(
                    f"Match {match.match_number} is already {match.status}",
                    details={"match_id": match_id, "status": match.status},
                )
            match.status = MatchStatus.cancelled.value
            match.completed_at = datetime.utcnow()
            if notes is not None:
                match.notes = notes
            session.add(match)
            session.flush()
            _sync_tournament_status(session, tournament)
    logger.warning("Match %d (tournament %d) cancelled", match.match_number, tournament_id)
    return match


def _retraction_chain(session: Session, match: Match) -> List[Match]:
    """Downstream matches to clear when undoing a result; refuses if any has been played."""
    chain: List[Match] = []
    current = match
    while current.next_match_id is not None and current.winner_id is not None:
        downstream = get_match(session, current.next_match_id)
        auto_bye = downstream.status == MatchStatus.bye.value and len(feeders_of(session, downstream)) == 1
        if downstream.status != MatchStatus.scheduled.value and not auto_bye:
            raise InvalidTransitionError(
                f"Match {downstream.match_number} is already {downstream.status}; reset it first",
                details={"match_id": downstream.id, "status": downstream.status},
            )
        chain.append(downstream)
        if not auto_bye:
            break
        current = downstream
    return chain


def reset_match_result(session: Session, match_id: int) -> Match:
    """Return a decided or cancelled match to 'scheduled', withdrawing its winner from downstream slots."""
    tournament_id = get_match(session, match_id).tournament_id
    with shared_match(tournament_id, match_id):
        with atomic(session):
            match = _locked_match(session, match_id)
            tournament = get_tournament(session, tournament_id)
            _require_accepts_play(tournament)
            if match.status not in (
                MatchStatus.completed.value,
                MatchStatus.walkover.value,
                MatchStatus.cancelled.value,
            ):
                raise InvalidTransitionError(
                    f"Match {match.match_number} is {match.status}; only decided or cancelled matches can be reset",
                    details={"match_id": match_id, "status": match.status},
                )

            withdrawn_team = match.winner_id
            source = match
            for downstream in _retraction_chain(session, match):
                attr = f"team{source.next_match_slot or 1}_id"
                if getattr(downstream, attr) == withdrawn_team:
                    setattr(downstream, attr, None)
                if downstream.status == MatchStatus.bye.value:
                    downstream.status = MatchStatus.scheduled.value
                    downstream.winner_id = None
                    downstream.completed_at = None
                session.add(downstream)
                source = downstream

            match.status = MatchStatus.scheduled.value
            match.team1_score = 0
            match.team2_score = 0
            match.winner_id = None
            match.loser_id = None
            match.started_at = None
            match.completed_at = None
            session.add(match)
    logger.info("Match %d (tournament %d) result reset", match.match_number, tournament_id)
    return match


def _team_label(team: Optional[Team]) -> str:
    return team.name if team else "TBD"


@dataclass
class RoundSummary:
    tournament_id: int
    round: int
    tournament_status: str
    total_matches: int
    status_counts: Dict[str, int]
    unscheduled_matches: int
    matches_with_winners: int
    matches_without_winners: int
    is_round_complete: bool
    can_advance: bool
    is_final_round: bool
    next_round: Optional[int]
    next_round_exists: bool
    winning_teams: List[Dict]
    incomplete_matches: List[Dict]

    def to_dict(self) -> Dict:
        return {
            "tournament_id": self.tournament_id,
            "round": self.round,
            "tournament_status": self.tournament_status,
            "total_matches": self.total_matches,
            "scheduled_matches": self.status_counts[MatchStatus.scheduled.value],
            "in_progress_matches": self.status_counts[MatchStatus.in_progress.value],
            "completed_matches": self.status_counts[MatchStatus.completed.value],
            "walkover_matches": self.status_counts[MatchStatus.walkover.value],
            "bye_matches": self.status_counts[MatchStatus.bye.value],
            "cancelled_matches": self.status_counts[MatchStatus.cancelled.value],
            "unscheduled_matches": self.unscheduled_matches,
            "matches_with_winners": self.matches_with_winners,
            "matches_without_winners": self.matches_without_winners,
            "is_round_complete": self.is_round_complete,
            "can_advance": self.can_advance,
            "is_final_round": self.is_final_round,
            "next_round": self.next_round,
            "next_round_exists": self.next_round_exists,
            "winning_teams": self.winning_teams,
            "incomplete_matches": self.incomplete_matches,
        }


def round_summary(session: Session, tournament_id: int, round_number: int) -> RoundSummary:
    """
    Completion state of one round.

    A round is complete when every match other than byes and cancellations
    is terminal with a winner. It can advance when it is complete, a later
    round exists, and every match that feeds the next round has produced
    its winner (so a cancelled feeder blocks advancement).
    """
    tournament = get_tournament(session, tournament_id)
    matches = list_matches(session, tournament_id, round_number)
    if not matches:
        raise NotFoundError(
            f"Round {round_number} has no matches",
            details={"tournament_id": tournament_id, "round": round_number},
        )

    status_counts = {s.value: 0 for s in MatchStatus}
    for m in matches:
        status_counts[m.status] = status_counts.get(m.status, 0) + 1

    playable = [m for m in matches if m.status not in (MatchStatus.bye.value, MatchStatus.cancelled.value)]
    is_complete = all(m.status in TERMINAL_STATUSES and m.winner_id is not None for m in playable)

    with_winners = [m for m in matches if m.winner_id is not None]
    missing = [m for m in matches if m.status != MatchStatus.bye.value and m.winner_id is None]

    max_round = max(m.round_number for m in list_matches(session, tournament_id))
    is_final_round = round_number >= max_round
    # Each feeding match fills exactly one next-round slot
    feeding = [m for m in matches if m.next_match_id is not None]
    can_advance = (
        is_complete
        and not is_final_round
        and not missing
        and sum(1 for m in feeding if m.winner_id is not None) == len(feeding)
    )

    return RoundSummary(
        tournament_id=tournament_id,
        round=round_number,
        tournament_status=tournament.status,
        total_matches=len(matches),
        status_counts=status_counts,
        unscheduled_matches=sum(1 for m in matches if not m.is_scheduled and m.status == MatchStatus.scheduled.value),
        matches_with_winners=len(with_winners),
        matches_without_winners=len(matches) - len(with_winners),
        is_round_complete=is_complete,
        can_advance=can_advance,
        is_final_round=is_final_round,
        next_round=None if is_final_round else round_number + 1,
        next_round_exists=not is_final_round,
        winning_teams=[
            {
                "team_id": m.winner_id,
                "team_name": _team_label(m.winner),
                "match_id": m.id,
                "match_number": m.match_number,
            }
            for m in with_winners
        ],
        incomplete_matches=[
            {
                "match_id": m.id,
                "match_number": m.match_number,
                "teams": f"{_team_label(m.team1)} vs {_team_label(m.team2)}",
                "status": m.status,
            }
            for m in missing
        ],
    )


@dataclass
class AdvanceResult:
    tournament_id: int
    round: int
    next_round: int
    teams_advanced: int
    winning_teams: List[Dict]


def advance_round(session: Session, tournament_id: int, round_number: int) -> AdvanceResult:
    """Confirm a round is finished and make sure every winner sits in its next-round slot."""
    with exclusive_tournament(tournament_id):
        with atomic(session):
            tournament = get_tournament(session, tournament_id)
            _require_accepts_play(tournament)
            summary = round_summary(session, tournament_id, round_number)
            if summary.is_final_round:
                raise InvalidTransitionError(
                    f"Round {round_number} is the final round; there is no next round",
                    details={"tournament_id": tournament_id, "round": round_number},
                )
            if not summary.can_advance:
                logger.warning(
                    "Refused to advance tournament %d past round %d: %d matches without a winner",
                    tournament_id,
                    round_number,
                    len(summary.incomplete_matches),
                )
                raise InvalidTransitionError(
                    f"Round {round_number} is not complete",
                    details={
                        "tournament_id": tournament_id,
                        "round": round_number,
                        "incomplete_matches": summary.incomplete_matches,
                    },
                )

            advanced = 0
            for match in list_matches(session, tournament_id, round_number):
                advanced += len(propagate_winner(session, match))
            _sync_tournament_status(session, tournament)

    logger.info("Tournament %d advanced from round %d (%d slots filled)", tournament_id, round_number, advanced)
    return AdvanceResult(
        tournament_id=tournament_id,
        round=round_number,
        next_round=round_number + 1,
        teams_advanced=advanced,
        winning_teams=summary.winning_teams,
    )


def tournament_progress(session: Session, tournament_id: int) -> Dict:
    """Per-round progress plus the earliest round that still has undecided matches."""
    tournament = get_tournament(session, tournament_id)
    matches = list_matches(session, tournament_id)
    rounds = sorted({m.round_number for m in matches})

    progress = []
    current_round = rounds[-1] if rounds else 1
    for r in reversed(rounds):
        in_round = [m for m in matches if m.round_number == r]
        decided = [m for m in in_round if m.status in TERMINAL_STATUSES]
        winners = [m for m in in_round if m.winner_id is not None]
        complete = len(decided) == len(in_round)
        if not complete:
            current_round = r
        progress.append(
            {
                "round": r,
                "total_matches": len(in_round),
                "completed_matches": len(decided),
                "completion_percentage": round(len(decided) / len(in_round) * 100, 1),
                "winning_teams_count": len(winners),
                "is_complete": complete,
                "has_byes": any(m.status == MatchStatus.bye.value for m in in_round),
                "winning_teams": [{"team_id": m.winner_id, "team_name": _team_label(m.winner)} for m in winners],
            }
        )
    progress.reverse()

    return {
        "tournament_id": tournament_id,
        "tournament_status": tournament.status,
        "rounds": rounds,
        "total_rounds": len(rounds),
        "current_round": current_round,
        "progress": progress,
    }
