"""
Runtime: live flag and score entry for pool and bracket matches.
The first bracket match going live or receiving a result fires the bracket_started latch.
When a bracket match gets a winner, advancement fills the next-round slot.
"""
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.match import MATCH_TYPE_BRACKET, MATCH_TYPE_POOL, Match
from app.services.advancement_service import apply_advancement_for_bracket_match, ensure_winner_not_advanced
from app.services.bracket_lifecycle import is_bracket_activity, load_lifecycle
from app.services.engine_errors import EngineError, InvalidMatchResult
from app.utils.guards import engine_error_to_http, get_match_or_404, get_tournament_or_404

router = APIRouter()


class MatchRuntimeUpdate(BaseModel):
    is_live: Optional[bool] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    winner_team_id: Optional[int] = None


class MatchRuntimeState(BaseModel):
    id: int
    tournament_id: int
    pool_id: Optional[int] = None
    match_type: str
    round_number: Optional[int] = None
    bracket_round: Optional[int] = None
    bracket_match_index: Optional[int] = None
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    ref_team_id: Optional[int] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    winner_team_id: Optional[int] = None
    is_live: bool

    class Config:
        from_attributes = True


class MatchRuntimeUpdateResponse(BaseModel):
    match: MatchRuntimeState
    advanced_count: int = 0
    bracket_started: bool
    tournament_status: str


def _resolve_result(match: Match, payload: MatchRuntimeUpdate) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """
    New (score_a, score_b, winner) for the match after applying the payload.

    Raises InvalidMatchResult for negative scores, a winner that is not in the
    match, a winner contradicting the scores, or tied scores with no winner.
    """
    score_a = payload.score_a if payload.score_a is not None else match.score_a
    score_b = payload.score_b if payload.score_b is not None else match.score_b
    for label, value in (("score_a", score_a), ("score_b", score_b)):
        if value is not None and value < 0:
            raise InvalidMatchResult(f"{label} must be >= 0, got {value}.", {"match_id": match.id})

    scores_changed = payload.score_a is not None or payload.score_b is not None
    touches_play = scores_changed or payload.winner_team_id is not None or payload.is_live is True
    if touches_play and (match.team_a_id is None or match.team_b_id is None):
        raise InvalidMatchResult(
            "Both teams must be set before the match can go live or be scored.",
            {"match_id": match.id, "team_a_id": match.team_a_id, "team_b_id": match.team_b_id},
        )

    winner = payload.winner_team_id
    if winner is not None and not match.has_team(winner):
        raise InvalidMatchResult(
            f"Team {winner} is not playing in match {match.id}.",
            {"match_id": match.id, "winner_team_id": winner},
        )
    if winner is None and not scores_changed:
        winner = match.winner_team_id

    if score_a is not None and score_b is not None:
        if winner is None:
            if score_a == score_b:
                raise InvalidMatchResult(
                    "Scores are tied; a winner must be given.",
                    {"match_id": match.id, "score_a": score_a, "score_b": score_b},
                )
            winner = match.team_a_id if score_a > score_b else match.team_b_id
        elif score_a != score_b:
            leader = match.team_a_id if score_a > score_b else match.team_b_id
            if winner != leader:
                raise InvalidMatchResult(
                    f"Winner {winner} contradicts the score {score_a}-{score_b}.",
                    {"match_id": match.id, "winner_team_id": winner},
                )
    return score_a, score_b, winner


@router.patch(
    "/tournaments/{tournament_id}/runtime/matches/{match_id}",
    response_model=MatchRuntimeUpdateResponse,
)
def update_match_runtime(
    tournament_id: int,
    match_id: int,
    payload: MatchRuntimeUpdate,
    session: Session = Depends(get_session),
) -> MatchRuntimeUpdateResponse:
    """Update live flag, scores or winner. Match must belong to tournament."""
    tournament = get_tournament_or_404(session, tournament_id)
    match = get_match_or_404(session, match_id, tournament_id)

    previous_winner = match.winner_team_id
    try:
        score_a, score_b, winner = _resolve_result(match, payload)
        if match.match_type == MATCH_TYPE_BRACKET and previous_winner is not None and winner != previous_winner:
            ensure_winner_not_advanced(session, match, previous_winner)
    except EngineError as exc:
        raise engine_error_to_http(exc)

    match.score_a = score_a
    match.score_b = score_b
    match.winner_team_id = winner
    if payload.is_live is not None:
        match.is_live = payload.is_live
    if match.is_complete and winner is not None:
        match.is_live = False
    session.add(match)

    # Latch must fire in the same commit as the score that triggers it
    if is_bracket_activity(match):
        if load_lifecycle(session, tournament).mark_started():
            session.add(tournament)

    advanced_count = 0
    if match.match_type == MATCH_TYPE_BRACKET and match.is_complete and winner is not None:
        advanced_count = apply_advancement_for_bracket_match(session, match)

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(match)
    session.refresh(tournament)

    return MatchRuntimeUpdateResponse(
        match=MatchRuntimeState.model_validate(match),
        advanced_count=advanced_count,
        bracket_started=tournament.bracket_started,
        tournament_status=tournament.status,
    )


@router.get(
    "/tournaments/{tournament_id}/runtime/matches",
    response_model=List[MatchRuntimeState],
)
def list_runtime_matches(
    tournament_id: int,
    match_type: Optional[str] = None,
    session: Session = Depends(get_session),
) -> List[MatchRuntimeState]:
    """List matches in stable order: pool matches by pool and round, then bracket by round and index."""
    get_tournament_or_404(session, tournament_id)
    query = select(Match).where(Match.tournament_id == tournament_id)
    if match_type in (MATCH_TYPE_POOL, MATCH_TYPE_BRACKET):
        query = query.where(Match.match_type == match_type)
    matches = session.exec(
        query.order_by(
            Match.match_type.desc(),
            Match.pool_id,
            Match.round_number,
            Match.bracket_round,
            Match.bracket_match_index,
            Match.id,
        )
    ).all()
    return [MatchRuntimeState.model_validate(m) for m in matches]
