"""
Bracket Lifecycle: the one-way latch guarding destructive bracket rebuilds.

    NOT_GENERATED -> GENERATED (bracket_started=False) -> STARTED (bracket_started=True)

GENERATED -> STARTED fires the first time a bracket match goes live or gets a
score or winner. The latch is never reset automatically. Rebuild is allowed in
NOT_GENERATED and GENERATED only; in STARTED it fails with RebuildBlockedError
before anything is mutated.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Session, func, select

from app.models.match import MATCH_TYPE_BRACKET, Match
from app.models.tournament import Tournament
from app.services.bracket_builder import (
    BracketPlan,
    apply_bracket_plan,
    check_bracket_prerequisites,
    plan_bracket,
)
from app.services.engine_errors import BracketExistsError, PrerequisitesNotMet, RebuildBlockedError

logger = logging.getLogger(__name__)


class BracketState(str, Enum):
    NOT_GENERATED = "not_generated"
    GENERATED = "generated"
    STARTED = "started"


class BracketLifecycle:
    """State machine view over a tournament's bracket fields."""

    def __init__(self, tournament: Tournament, bracket_match_count: int):
        self.tournament = tournament
        self.bracket_match_count = bracket_match_count

    @property
    def state(self) -> BracketState:
        if self.tournament.bracket_started:
            return BracketState.STARTED
        if self.bracket_match_count > 0 or self.tournament.bracket_generated_at is not None:
            return BracketState.GENERATED
        return BracketState.NOT_GENERATED

    @property
    def can_rebuild(self) -> bool:
        return self.state != BracketState.STARTED

    def ensure_rebuild_allowed(self) -> None:
        if not self.can_rebuild:
            raise RebuildBlockedError(
                "Bracket play has started; the bracket can no longer be rebuilt.",
                {"tournament_id": self.tournament.id, "state": self.state.value},
            )

    def mark_started(self) -> bool:
        """Fire the latch. Returns True only on the transition itself."""
        if self.tournament.bracket_started:
            return False
        self.tournament.bracket_started = True
        logger.info("Bracket play started for tournament %d; rebuild is now locked", self.tournament.id)
        return True


def count_bracket_matches(session: Session, tournament_id: int) -> int:
    return session.exec(
        select(func.count(Match.id)).where(Match.tournament_id == tournament_id, Match.match_type == MATCH_TYPE_BRACKET)
    ).one()


def load_lifecycle(session: Session, tournament: Tournament) -> BracketLifecycle:
    return BracketLifecycle(tournament, count_bracket_matches(session, tournament.id))


def is_bracket_activity(match: Match) -> bool:
    """
    Going live, holding any score, or a recorded winner between two teams
    counts as bracket play. A bye's planned winner does not.
    """
    if match.match_type != MATCH_TYPE_BRACKET:
        return False
    played_winner = (
        match.winner_team_id is not None and match.team_a_id is not None and match.team_b_id is not None
    )
    return match.is_live or match.score_a is not None or match.score_b is not None or played_winner


def _build_from_standings(session: Session, tournament: Tournament) -> BracketPlan:
    report = check_bracket_prerequisites(session, tournament)
    if not report.ok:
        raise PrerequisitesNotMet(f"Bracket prerequisites not met ({len(report.errors)} error(s)).", report)
    return plan_bracket(tournament.id, [a.team_id for a in report.advancers])


def generate_bracket(session: Session, tournament: Tournament, now: Optional[datetime] = None) -> BracketPlan:
    """
    First-time bracket generation from current standings.

    Fails with BracketExistsError when bracket matches exist (use rebuild) and
    PrerequisitesNotMet when pool play is incomplete.
    """
    lifecycle = load_lifecycle(session, tournament)
    lifecycle.ensure_rebuild_allowed()
    if lifecycle.bracket_match_count > 0:
        raise BracketExistsError(
            "Bracket already exists. Use rebuild to regenerate it while allowed.",
            {"existing_matches": lifecycle.bracket_match_count, "state": lifecycle.state.value},
        )

    plan = _build_from_standings(session, tournament)
    try:
        apply_bracket_plan(session, tournament, plan, now or datetime.utcnow())
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Generated bracket for tournament %d: size=%d rounds=%d byes=%s",
        tournament.id,
        plan.size,
        plan.rounds,
        plan.bye_seeds,
    )
    return plan


def rebuild_bracket(session: Session, tournament: Tournament, now: Optional[datetime] = None) -> BracketPlan:
    """
    Delete every bracket match and rebuild from current standings.

    Guarded by the latch: in STARTED raises RebuildBlockedError without any
    mutation. Prerequisites are checked before the delete as well.
    """
    lifecycle = load_lifecycle(session, tournament)
    lifecycle.ensure_rebuild_allowed()

    plan = _build_from_standings(session, tournament)
    existing = session.exec(
        select(Match).where(Match.tournament_id == tournament.id, Match.match_type == MATCH_TYPE_BRACKET)
    ).all()
    try:
        for match in existing:
            session.delete(match)
        session.flush()
        apply_bracket_plan(session, tournament, plan, now or datetime.utcnow())
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Rebuilt bracket for tournament %d: deleted %d matches, size=%d byes=%s",
        tournament.id,
        len(existing),
        plan.size,
        plan.bye_seeds,
    )
    return plan
