"""
Bracket endpoints: prerequisites, first-time generation, guarded rebuild, and
the bracket view with lifecycle state.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.match import MATCH_TYPE_BRACKET, Match
from app.models.team import Team
from app.services.bracket_builder import BracketPlan, check_bracket_prerequisites, feeder_indexes
from app.services.bracket_lifecycle import generate_bracket, load_lifecycle, rebuild_bracket
from app.services.engine_errors import EngineError
from app.utils.guards import engine_error_to_http, get_tournament_or_404

router = APIRouter()


class BracketBuildResponse(BaseModel):
    size: int
    rounds: int
    bye_seeds: List[int]
    match_count: int
    state: str


class BracketMatchView(BaseModel):
    id: int
    bracket_round: int
    bracket_match_index: int
    team_a_id: Optional[int] = None
    team_a_name: Optional[str] = None
    team_b_id: Optional[int] = None
    team_b_name: Optional[str] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    winner_team_id: Optional[int] = None
    is_live: bool
    # Previous-round indexes feeding side A / side B (None in round 1)
    feeders: Optional[List[int]] = None


class BracketView(BaseModel):
    tournament_id: int
    state: str
    bracket_started: bool
    can_rebuild: bool
    bracket_generated_at: Optional[datetime] = None
    rounds: int
    matches: List[BracketMatchView]


def _build_response(plan: BracketPlan, state: str) -> BracketBuildResponse:
    return BracketBuildResponse(
        size=plan.size,
        rounds=plan.rounds,
        bye_seeds=plan.bye_seeds,
        match_count=len(plan.matches),
        state=state,
    )


@router.get("/tournaments/{tournament_id}/bracket/prerequisites")
def get_bracket_prerequisites(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """What blocks bracket generation, plus the advancer seed list once pool play is complete."""
    tournament = get_tournament_or_404(session, tournament_id)
    report = check_bracket_prerequisites(session, tournament)
    data = report.to_dict()
    data["advancers"] = [
        {"seed": a.seed, "team_id": a.team_id, "team_name": a.team_name, "pool_name": a.pool_name, "finish": a.finish}
        for a in report.advancers
    ]
    return data


@router.post("/tournaments/{tournament_id}/bracket/generate", response_model=BracketBuildResponse, status_code=201)
def post_generate_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """
    Generate the bracket from pool standings.

    409 if a bracket already exists (use rebuild) or play has started; 422 when
    pool play is incomplete.
    """
    tournament = get_tournament_or_404(session, tournament_id)
    try:
        plan = generate_bracket(session, tournament)
    except EngineError as exc:
        raise engine_error_to_http(exc)
    return _build_response(plan, load_lifecycle(session, tournament).state.value)


@router.post("/tournaments/{tournament_id}/bracket/rebuild", response_model=BracketBuildResponse)
def post_rebuild_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """Delete and regenerate the bracket. 409 once any bracket match is live or scored."""
    tournament = get_tournament_or_404(session, tournament_id)
    try:
        plan = rebuild_bracket(session, tournament)
    except EngineError as exc:
        raise engine_error_to_http(exc)
    return _build_response(plan, load_lifecycle(session, tournament).state.value)


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketView)
def get_bracket(tournament_id: int, session: Session = Depends(get_session)):
    tournament = get_tournament_or_404(session, tournament_id)
    lifecycle = load_lifecycle(session, tournament)

    matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id, Match.match_type == MATCH_TYPE_BRACKET)
        .order_by(Match.bracket_round, Match.bracket_match_index)
    ).all()
    names = {t.id: t.name for t in session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()}

    views = []
    for m in matches:
        views.append(
            BracketMatchView(
                id=m.id,
                bracket_round=m.bracket_round,
                bracket_match_index=m.bracket_match_index,
                team_a_id=m.team_a_id,
                team_a_name=names.get(m.team_a_id),
                team_b_id=m.team_b_id,
                team_b_name=names.get(m.team_b_id),
                score_a=m.score_a,
                score_b=m.score_b,
                winner_team_id=m.winner_team_id,
                is_live=m.is_live,
                feeders=list(feeder_indexes(m.bracket_match_index)) if m.bracket_round > 1 else None,
            )
        )

    return BracketView(
        tournament_id=tournament_id,
        state=lifecycle.state.value,
        bracket_started=tournament.bracket_started,
        can_rebuild=lifecycle.can_rebuild,
        bracket_generated_at=tournament.bracket_generated_at,
        rounds=max((m.bracket_round for m in matches), default=0),
        matches=views,
    )
