"""
Eligibility Filter: which registered teams may take part in a tournament.

Payment evidence is checked against an ordered precedence list:

1. tournament-scoped: the team's registration record for this tournament
   name + year (paymentComplete, paid/completed status, or amountPaid > 0)
2. root-level: the legacy paymentComplete / paymentStatus fields on the team
3. context-free: any registration record showing payment, only consulted
   when no tournament context is supplied

The root-level step is a compatibility shim for teams migrated from the old
registration schema. Tournament-scoped evidence always wins so a team paid
for one tournament is not treated as paid for another.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from app.services.errors import InsufficientTeamsError

logger = logging.getLogger(__name__)

MIN_BRACKET_TEAMS = 2
PAID_STATUSES = frozenset({"paid", "completed"})


@dataclass(frozen=True)
class TournamentContext:
    name: str
    year: int


class EligibilityRule(str, Enum):
    tournament_registration = "tournament_registration"
    root_level = "root_level"
    any_registration = "any_registration"


@dataclass(frozen=True)
class EligibilityDecision:
    team_id: Optional[int]
    team_name: str
    eligible: bool
    rule: Optional[EligibilityRule]
    reason: str

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "eligible": self.eligible,
            "rule": self.rule.value if self.rule else None,
            "reason": self.reason,
        }


def registration_payment_reason(registration: Any) -> Optional[str]:
    """Return why a registration record counts as paid, or None."""
    if getattr(registration, "payment_complete", None) is True:
        return "payment_complete is set"
    status = (getattr(registration, "payment_status", None) or "").lower()
    if status in PAID_STATUSES:
        return f"payment_status is '{status}'"
    amount = getattr(registration, "amount_paid", None)
    if amount is not None and amount > 0:
        return f"amount_paid is {amount:g}"
    return None


def _registrations(team: Any) -> List[Any]:
    return list(getattr(team, "registrations", None) or [])


def _tournament_scoped(team: Any, context: Optional[TournamentContext]) -> Optional[str]:
    if context is None:
        return None
    for registration in _registrations(team):
        if registration.tournament == context.name and registration.year == context.year:
            reason = registration_payment_reason(registration)
            if reason:
                return f"{context.name} {context.year} registration: {reason}"
            return None
    return None


def _root_level(team: Any, context: Optional[TournamentContext]) -> Optional[str]:
    if getattr(team, "payment_complete", None) is True:
        return "root-level payment_complete is set"
    status = (getattr(team, "payment_status", None) or "").lower()
    if status in PAID_STATUSES:
        return f"root-level payment_status is '{status}'"
    return None


def _context_free(team: Any, context: Optional[TournamentContext]) -> Optional[str]:
    if context is not None:
        return None
    for registration in _registrations(team):
        reason = registration_payment_reason(registration)
        if reason:
            return f"{registration.tournament} {registration.year} registration: {reason}"
    return None


ELIGIBILITY_RULES: Tuple[Tuple[EligibilityRule, Callable[[Any, Optional[TournamentContext]], Optional[str]]], ...] = (
    (EligibilityRule.tournament_registration, _tournament_scoped),
    (EligibilityRule.root_level, _root_level),
    (EligibilityRule.any_registration, _context_free),
)


def evaluate_eligibility(team: Any, context: Optional[TournamentContext] = None) -> EligibilityDecision:
    """Walk the precedence list and report the first rule that proves payment."""
    for rule, check in ELIGIBILITY_RULES:
        reason = check(team, context)
        if reason:
            logger.debug("Team %s eligible via %s: %s", getattr(team, "id", None), rule.value, reason)
            return EligibilityDecision(
                team_id=getattr(team, "id", None),
                team_name=team.name,
                eligible=True,
                rule=rule,
                reason=reason,
            )
    return EligibilityDecision(
        team_id=getattr(team, "id", None),
        team_name=team.name,
        eligible=False,
        rule=None,
        reason="no payment found",
    )


def is_eligible(team: Any, context: Optional[TournamentContext] = None) -> bool:
    return evaluate_eligibility(team, context).eligible


def filter_eligible(teams: Iterable[Any], context: Optional[TournamentContext] = None) -> List[Any]:
    """Teams that satisfy the payment predicate, in their original order."""
    return [team for team in teams if is_eligible(team, context)]


def explain_eligibility(
    teams: Iterable[Any], context: Optional[TournamentContext] = None
) -> List[EligibilityDecision]:
    return [evaluate_eligibility(team, context) for team in teams]


def require_bracket_field(
    teams: Sequence[Any],
    context: Optional[TournamentContext] = None,
    minimum: int = MIN_BRACKET_TEAMS,
) -> List[Any]:
    """
    Eligible teams for building or advancing a bracket.

    Raises InsufficientTeamsError when fewer than `minimum` teams qualify
    instead of producing a degenerate bracket.
    """
    eligible = filter_eligible(teams, context)
    minimum = max(minimum, MIN_BRACKET_TEAMS)
    if len(eligible) < minimum:
        logger.warning(
            "Insufficient eligible teams: %d of %d registered (minimum %d)", len(eligible), len(teams), minimum
        )
        raise InsufficientTeamsError(
            f"At least {minimum} eligible teams are required; found {len(eligible)}",
            details={
                "eligible_count": len(eligible),
                "registered_count": len(teams),
                "minimum": minimum,
                "ineligible": [d.to_dict() for d in explain_eligibility(teams, context) if not d.eligible],
            },
        )
    return eligible
