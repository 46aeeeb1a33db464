"""
Bracket Engine: builds elimination brackets from the eligible field.

Round 1 holds ceil(N/2) matches. With an odd field the last seed gets a
bye match that is decided at generation time. Every later round holds
ceil(previous_round_matches / 2) matches until one final remains. When a
later round has an odd number of feeders, one match is left with a single
feeder; it turns into a bye as soon as that feeder resolves (see
advancement_service).

Topology is an arena of matches linked by next_match_id/next_match_slot,
so the "exactly one final" rule can be checked mechanically before any
row is written.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session, func, select

from app.database import atomic
from app.models.match import Match, MatchStatus
from app.models.team import Team
from app.models.tournament import Tournament, TournamentFormat, TournamentStatus
from app.services.eligibility import MIN_BRACKET_TEAMS, require_bracket_field
from app.services.errors import InsufficientTeamsError, InvalidTransitionError, NotFoundError, UnsupportedFormatError
from app.services.roster import context_for, list_registered_teams
from app.services.tournament_lock import exclusive_tournament, forget_matches

logger = logging.getLogger(__name__)


class SeedingPolicy(str, Enum):
    random = "random"
    rank = "rank"


def seed_randomly(teams: Sequence[Team], rng: random.Random) -> List[Team]:
    seeded = list(teams)
    rng.shuffle(seeded)
    return seeded


def seed_by_rank(teams: Sequence[Team], rng: random.Random) -> List[Team]:
    """Rank 1 first; unranked teams last, ordered by name then id."""
    return sorted(
        teams,
        key=lambda t: (t.rank is None, t.rank or 0, (t.name or "").lower(), t.id or 0),
    )


SEEDING_POLICIES: Dict[SeedingPolicy, Callable[[Sequence[Team], random.Random], List[Team]]] = {
    SeedingPolicy.random: seed_randomly,
    SeedingPolicy.rank: seed_by_rank,
}


@dataclass
class PlannedMatch:
    round_number: int
    match_number: int
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    status: str = MatchStatus.scheduled.value
    winner_id: Optional[int] = None
    next_match_number: Optional[int] = None
    next_match_slot: Optional[int] = None
    feeders: List[int] = field(default_factory=list)  # match numbers feeding this one
    bracket_type: str = "winners"

    @property
    def is_bye(self) -> bool:
        return self.status == MatchStatus.bye.value


def bracket_fold_positions(n: int) -> List[int]:
    """Standard bracket-fold positions for *n* entries (n a power of two).

    Consecutive pairs indicate which seeds meet if chalk holds:
      4-entry -> [1, 4, 2, 3] -> (1v4), (2v3)
      8-entry -> [1, 8, 4, 5, 3, 6, 2, 7]
    """
    if n <= 2:
        return list(range(1, n + 1))

    half = bracket_fold_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def _is_power_of_two(n: int) -> bool:
    return n >= 1 and n & (n - 1) == 0


def first_round_pairs(seeded_ids: Sequence[int]) -> Tuple[List[Tuple[int, int]], Optional[int]]:
    """Top-vs-bottom pairs over the seeded order; the last seed sits out when the field is odd."""
    ids = list(seeded_ids)
    bye_id = ids.pop() if len(ids) % 2 else None
    half = len(ids) // 2
    pairs = [(ids[i], ids[-1 - i]) for i in range(half)]
    if half > 2 and _is_power_of_two(half):
        pairs = [pairs[position - 1] for position in bracket_fold_positions(half)]
    return pairs, bye_id


def _carry_index(feeders: Sequence[PlannedMatch]) -> int:
    """Feeder that gets the single-feeder slot: prefer a full, played match over an earlier pass."""
    for i, m in enumerate(feeders):
        if not m.is_bye and len(m.feeders) != 1:
            return i
    for i, m in enumerate(feeders):
        if not m.is_bye:
            return i
    return 0


def _link(feeder: PlannedMatch, target: PlannedMatch, slot: int) -> None:
    feeder.next_match_number = target.match_number
    feeder.next_match_slot = slot
    target.feeders.append(feeder.match_number)


def _settle_planned(plans: Dict[int, PlannedMatch], match: PlannedMatch) -> None:
    if match.winner_id is None or match.next_match_number is None:
        return
    target = plans[match.next_match_number]
    setattr(target, f"team{match.next_match_slot}_id", match.winner_id)
    if len(target.feeders) == 1 and not target.is_bye:
        target.status = MatchStatus.bye.value
        target.winner_id = match.winner_id
        _settle_planned(plans, target)


def plan_single_elimination(seeded_ids: Sequence[int]) -> List[PlannedMatch]:
    if len(seeded_ids) < MIN_BRACKET_TEAMS:
        raise InsufficientTeamsError(
            f"At least {MIN_BRACKET_TEAMS} teams are required; found {len(seeded_ids)}",
            details={"eligible_count": len(seeded_ids), "minimum": MIN_BRACKET_TEAMS},
        )

    plans: List[PlannedMatch] = []

    def new_match(round_number: int, **kwargs: Any) -> PlannedMatch:
        planned = PlannedMatch(round_number=round_number, match_number=len(plans) + 1, **kwargs)
        plans.append(planned)
        return planned

    pairs, bye_id = first_round_pairs(seeded_ids)
    previous = [new_match(1, team1_id=a, team2_id=b) for a, b in pairs]
    if bye_id is not None:
        previous.append(new_match(1, team1_id=bye_id, status=MatchStatus.bye.value, winner_id=bye_id))

    round_number = 1
    while len(previous) > 1:
        round_number += 1
        feeders = list(previous)
        current: List[PlannedMatch] = []
        if len(feeders) % 2:
            carried = feeders.pop(_carry_index(feeders))
            single = new_match(round_number)
            _link(carried, single, 1)
            current.append(single)
        for a, b in zip(feeders[0::2], feeders[1::2]):
            target = new_match(round_number)
            _link(a, target, 1)
            _link(b, target, 2)
            current.append(target)
        previous = current

    previous[0].bracket_type = "final"

    by_number = {p.match_number: p for p in plans}
    for planned in list(plans):
        if planned.is_bye:
            _settle_planned(by_number, planned)
    return plans


def plan_round_robin(seeded_ids: Sequence[int]) -> List[PlannedMatch]:
    """Circle method: every pair meets once; an odd field rests one team per round."""
    if len(seeded_ids) < MIN_BRACKET_TEAMS:
        raise InsufficientTeamsError(
            f"At least {MIN_BRACKET_TEAMS} teams are required; found {len(seeded_ids)}",
            details={"eligible_count": len(seeded_ids), "minimum": MIN_BRACKET_TEAMS},
        )
    slots: List[Optional[int]] = list(seeded_ids)
    if len(slots) % 2:
        slots.append(None)
    n = len(slots)

    plans: List[PlannedMatch] = []
    for round_index in range(n - 1):
        for i in range(n // 2):
            a, b = slots[i], slots[n - 1 - i]
            if a is None or b is None:
                continue
            plans.append(
                PlannedMatch(
                    round_number=round_index + 1,
                    match_number=len(plans) + 1,
                    team1_id=a,
                    team2_id=b,
                    bracket_type="round-robin",
                )
            )
        slots = [slots[0], slots[-1]] + slots[1:-1]
    return plans


FORMAT_PLANNERS: Dict[TournamentFormat, Callable[[Sequence[int]], List[PlannedMatch]]] = {
    TournamentFormat.single_elimination: plan_single_elimination,
    TournamentFormat.round_robin: plan_round_robin,
}


def bracket_sink(links: Dict[int, Optional[int]]) -> int:
    """
    The single final match of a bracket given match_number -> next_match_number.

    Raises ValueError on a dangling link, a cycle, or anything other than
    exactly one sink.
    """
    for number, target in links.items():
        if target is not None and target not in links:
            raise ValueError(f"Match {number} links to unknown match {target}")

    sinks = [number for number, target in links.items() if target is None]
    if len(sinks) != 1:
        raise ValueError(f"Bracket must have exactly one final match, found {len(sinks)}")

    for start in links:
        seen = set()
        current: Optional[int] = start
        while current is not None:
            if current in seen:
                raise ValueError(f"Cycle detected through match {current}")
            seen.add(current)
            current = links[current]
    return sinks[0]


@dataclass
class BracketResult:
    tournament_id: int
    format: str
    seeding: str
    matches: List[Match]
    registered_count: int
    eligible_count: int
    replaced_count: int = 0

    @property
    def rounds(self) -> int:
        return max((m.round_number for m in self.matches), default=0)

    @property
    def bye_count(self) -> int:
        return sum(1 for m in self.matches if m.status == MatchStatus.bye.value)


def get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found", details={"tournament_id": tournament_id})
    return tournament


def list_matches(session: Session, tournament_id: int, round_number: Optional[int] = None) -> List[Match]:
    query = select(Match).where(Match.tournament_id == tournament_id)
    if round_number is not None:
        query = query.where(Match.round_number == round_number)
    return list(session.exec(query.order_by(Match.round_number, Match.match_number)).all())


def count_matches(session: Session, tournament_id: int) -> int:
    return session.exec(select(func.count(Match.id)).where(Match.tournament_id == tournament_id)).one()


def delete_matches(session: Session, matches: Sequence[Match]) -> int:
    """Delete matches in FK-safe order: unlink the bracket first, then remove rows."""
    for match in matches:
        if match.next_match_id is not None:
            match.next_match_id = None
            session.add(match)
    session.flush()

    deleted: Dict[int, List[int]] = {}
    for match in matches:
        deleted.setdefault(match.tournament_id, []).append(match.id)
        session.delete(match)
    session.flush()
    for tournament_id, match_ids in deleted.items():
        forget_matches(tournament_id, match_ids)
    return len(matches)


def _require_bracket_editable(tournament: Tournament) -> None:
    if tournament.status in (TournamentStatus.completed.value, TournamentStatus.cancelled.value):
        raise InvalidTransitionError(
            f"Tournament is {tournament.status}; its bracket can no longer change",
            details={"tournament_id": tournament.id, "status": tournament.status},
        )


def _resolve_format(tournament: Tournament, requested: Optional[str]) -> TournamentFormat:
    raw = requested or tournament.format
    try:
        fmt = TournamentFormat(raw)
    except ValueError:
        raise UnsupportedFormatError(f"Unknown tournament format '{raw}'", details={"format": raw})
    if fmt not in FORMAT_PLANNERS:
        raise UnsupportedFormatError(
            f"Bracket generation is not available for '{fmt.value}'",
            details={"format": fmt.value, "supported": [f.value for f in FORMAT_PLANNERS]},
        )
    return fmt


def _build(
    session: Session,
    tournament: Tournament,
    fmt: TournamentFormat,
    seeding: SeedingPolicy,
    rng: random.Random,
) -> BracketResult:
    registered = list_registered_teams(session, tournament)
    eligible = require_bracket_field(registered, context_for(tournament), minimum=tournament.min_teams)
    if tournament.max_teams and len(eligible) > tournament.max_teams:
        raise InvalidTransitionError(
            f"{len(eligible)} eligible teams exceed the tournament maximum of {tournament.max_teams}",
            details={"eligible_count": len(eligible), "max_teams": tournament.max_teams},
        )

    seeded = SEEDING_POLICIES[seeding](eligible, rng)
    plans = FORMAT_PLANNERS[fmt]([t.id for t in seeded])
    if fmt == TournamentFormat.single_elimination:
        bracket_sink({p.match_number: p.next_match_number for p in plans})

    rows: Dict[int, Match] = {}
    now = datetime.utcnow()
    for planned in plans:
        row = Match(
            tournament_id=tournament.id,
            round_number=planned.round_number,
            match_number=planned.match_number,
            bracket_type=planned.bracket_type,
            team1_id=planned.team1_id,
            team2_id=planned.team2_id,
            status=planned.status,
            winner_id=planned.winner_id,
            next_match_slot=planned.next_match_slot,
            completed_at=now if planned.is_bye else None,
        )
        session.add(row)
        rows[planned.match_number] = row
    session.flush()

    for planned in plans:
        if planned.next_match_number is not None:
            rows[planned.match_number].next_match_id = rows[planned.next_match_number].id
            session.add(rows[planned.match_number])

    tournament.format = fmt.value
    if tournament.status == TournamentStatus.draft.value:
        tournament.status = TournamentStatus.open.value
    tournament.updated_at = now
    session.add(tournament)
    session.flush()

    return BracketResult(
        tournament_id=tournament.id,
        format=fmt.value,
        seeding=seeding.value,
        matches=[rows[p.match_number] for p in plans],
        registered_count=len(registered),
        eligible_count=len(eligible),
    )


def create_bracket(
    session: Session,
    tournament_id: int,
    fmt: Optional[str] = None,
    seeding: SeedingPolicy = SeedingPolicy.random,
    rng: Optional[random.Random] = None,
) -> BracketResult:
    """Build the bracket for a tournament that has none yet."""
    rng = rng or random.Random()
    with exclusive_tournament(tournament_id):
        with atomic(session):
            tournament = get_tournament(session, tournament_id)
            _require_bracket_editable(tournament)
            existing = count_matches(session, tournament_id)
            if existing:
                raise InvalidTransitionError(
                    f"Tournament already has {existing} matches; recreate the bracket to replace them",
                    details={"tournament_id": tournament_id, "existing_matches": existing},
                )
            result = _build(session, tournament, _resolve_format(tournament, fmt), SeedingPolicy(seeding), rng)

    logger.info(
        "Bracket created for tournament %d: %d matches over %d rounds (%d byes, %d/%d teams eligible)",
        tournament_id,
        len(result.matches),
        result.rounds,
        result.bye_count,
        result.eligible_count,
        result.registered_count,
    )
    return result


def recreate_bracket(
    session: Session,
    tournament_id: int,
    fmt: Optional[str] = None,
    seeding: SeedingPolicy = SeedingPolicy.random,
    confirm: bool = False,
    rng: Optional[random.Random] = None,
) -> BracketResult:
    """
    Discard every match (results and schedule included) and regenerate from
    the current eligible field. Irreversible; requires confirm=True.
    """
    if not confirm:
        raise InvalidTransitionError(
            "Recreating a bracket deletes all matches and results; confirmation is required",
            details={"tournament_id": tournament_id, "confirm": False},
        )
    rng = rng or random.Random()
    with exclusive_tournament(tournament_id):
        with atomic(session):
            tournament = get_tournament(session, tournament_id)
            _require_bracket_editable(tournament)
            replaced = delete_matches(session, list_matches(session, tournament_id))
            result = _build(session, tournament, _resolve_format(tournament, fmt), SeedingPolicy(seeding), rng)
            result.replaced_count = replaced

    logger.info(
        "Bracket recreated for tournament %d: replaced %d matches with %d",
        tournament_id,
        result.replaced_count,
        len(result.matches),
    )
    return result
