"""
Bracket Advancement: when a bracket match has a winner, fill the downstream slot.

Round r match i feeds round r+1 match i // 2 (side A for even i, side B for odd i).
Only team_a_id/team_b_id on the next-round match are written; a slot already
holding a different team is never overwritten. A winner on the final match
completes the tournament. The caller commits.
"""
import logging
from typing import Optional

from sqlmodel import Session, select

from app.models.match import MATCH_TYPE_BRACKET, Match
from app.models.tournament import Tournament
from app.services.bracket_builder import SIDE_A, next_slot
from app.services.engine_errors import InvalidMatchResult

logger = logging.getLogger(__name__)


def find_next_match(session: Session, match: Match) -> Optional[Match]:
    target_round, target_index, _ = next_slot(match.bracket_round, match.bracket_match_index)
    return session.exec(
        select(Match).where(
            Match.tournament_id == match.tournament_id,
            Match.match_type == MATCH_TYPE_BRACKET,
            Match.bracket_round == target_round,
            Match.bracket_match_index == target_index,
        )
    ).first()


def ensure_winner_not_advanced(session: Session, match: Match, previous_winner_id: int) -> None:
    """
    Refuse to change a bracket result whose winner already sits in the next round.

    Raises InvalidMatchResult naming the downstream match.
    """
    down = find_next_match(session, match)
    if down is None:
        return
    _, _, side = next_slot(match.bracket_round, match.bracket_match_index)
    field_name = "team_a_id" if side == SIDE_A else "team_b_id"
    if getattr(down, field_name) == previous_winner_id:
        raise InvalidMatchResult(
            f"Team {previous_winner_id} has already advanced to match {down.id}; "
            "the winner of this match can no longer change.",
            {
                "match_id": match.id,
                "downstream_match_id": down.id,
                "advanced_team_id": previous_winner_id,
            },
        )


def apply_advancement_for_bracket_match(session: Session, match: Match) -> int:
    """
    Move the match winner into the next round.

    Returns count of downstream slots updated (0 or 1).
    Idempotent: calling twice produces the same state.
    """
    if match.match_type != MATCH_TYPE_BRACKET or match.bracket_round is None or match.bracket_match_index is None:
        return 0
    winner_id = match.winner_team_id
    if winner_id is None:
        return 0

    down = find_next_match(session, match)
    if down is None:
        # Final: no downstream match
        tournament = session.get(Tournament, match.tournament_id)
        if tournament is not None and tournament.status != "completed":
            tournament.status = "completed"
            session.add(tournament)
            logger.info("Tournament %d completed; champion team %d", tournament.id, winner_id)
        return 0

    _, _, side = next_slot(match.bracket_round, match.bracket_match_index)
    field_name = "team_a_id" if side == SIDE_A else "team_b_id"
    current = getattr(down, field_name)
    if current == winner_id:
        return 0
    if current is not None:
        logger.warning(
            "Not advancing team %d into match %s: slot %s already holds team %d",
            winner_id,
            down.id,
            field_name,
            current,
        )
        return 0

    setattr(down, field_name, winner_id)
    session.add(down)
    return 1
