"""
Pool schedule endpoints: templates, seeding, prerequisites and generation.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.schedule_template import ScheduleTemplate
from app.models.team import Team
from app.services.engine_errors import EngineError, InvalidSeedAssignment
from app.services.round_templates import parse_template_data, resolve_template, template_to_data, validate_template
from app.services.schedule_generator import (
    check_schedule_prerequisites,
    generate_schedule,
    load_template_overrides,
    validate_pool_seeds,
)
from app.utils.guards import engine_error_to_http, get_pool_or_404, get_tournament_or_404

router = APIRouter()


class TemplateUpsert(BaseModel):
    rounds: List[Dict[str, Any]]


class TemplateResponse(BaseModel):
    pool_size: int
    source: str  # "tournament" | "default"
    rounds: List[Dict[str, Any]]


class SeedAssignment(BaseModel):
    seeds: Dict[int, int]  # team_id -> seed_in_pool


class SeededTeam(BaseModel):
    team_id: int
    name: str
    seed_in_pool: Optional[int]


class ScheduleGenerateRequest(BaseModel):
    overwrite: bool = False


class ScheduleGenerateResponse(BaseModel):
    inserted: int
    deleted: int
    matches_by_pool: Dict[int, int]
    tournament_status: str


@router.get("/tournaments/{tournament_id}/templates/{pool_size}", response_model=TemplateResponse)
def get_template(tournament_id: int, pool_size: int, session: Session = Depends(get_session)):
    """Resolved template for a pool size (tournament template wins over the built-in default)."""
    get_tournament_or_404(session, tournament_id)
    try:
        overrides = load_template_overrides(session, tournament_id)
        rounds = resolve_template(pool_size, overrides)
    except EngineError as exc:
        raise engine_error_to_http(exc)
    source = "tournament" if pool_size in overrides else "default"
    return TemplateResponse(pool_size=pool_size, source=source, rounds=template_to_data(rounds))


@router.put("/tournaments/{tournament_id}/templates/{pool_size}", response_model=TemplateResponse)
def upsert_template(
    tournament_id: int,
    pool_size: int,
    payload: TemplateUpsert,
    session: Session = Depends(get_session),
):
    """Store a tournament-specific template. Rejected (422) if it fails validation."""
    get_tournament_or_404(session, tournament_id)
    try:
        rounds = parse_template_data(payload.rounds)
        validate_template(pool_size, rounds)
    except EngineError as exc:
        raise engine_error_to_http(exc)

    data = template_to_data(rounds)
    row = session.exec(
        select(ScheduleTemplate).where(
            ScheduleTemplate.tournament_id == tournament_id,
            ScheduleTemplate.pool_size == pool_size,
        )
    ).first()
    if row is None:
        row = ScheduleTemplate(tournament_id=tournament_id, pool_size=pool_size, template_data=data)
    else:
        row.template_data = data
    session.add(row)
    session.commit()
    return TemplateResponse(pool_size=pool_size, source="tournament", rounds=data)


@router.put("/pools/{pool_id}/seeds", response_model=List[SeededTeam])
def assign_seeds(pool_id: int, payload: SeedAssignment, session: Session = Depends(get_session)):
    """
    Assign seed_in_pool for teams of a pool.

    Teams outside the pool, non-positive seeds, or a resulting duplicate seed
    are rejected (422) before anything is written.
    """
    pool = get_pool_or_404(session, pool_id)
    teams = session.exec(select(Team).where(Team.pool_id == pool_id).order_by(Team.id)).all()
    by_id = {t.id: t for t in teams}

    try:
        foreign = sorted(tid for tid in payload.seeds if tid not in by_id)
        if foreign:
            raise InvalidSeedAssignment(
                f"Teams {foreign} are not in pool '{pool.name}'.",
                {"pool_id": pool_id, "team_ids": foreign},
            )
        projected = [
            Team(
                id=t.id,
                tournament_id=t.tournament_id,
                pool_id=t.pool_id,
                name=t.name,
                seed_in_pool=payload.seeds.get(t.id, t.seed_in_pool),
            )
            for t in teams
        ]
        validate_pool_seeds(pool, projected)
    except EngineError as exc:
        raise engine_error_to_http(exc)

    # Clear first so swapped seeds never collide on the unique constraint mid-flush
    for team_id in payload.seeds:
        by_id[team_id].seed_in_pool = None
        session.add(by_id[team_id])
    session.flush()
    for team_id, seed in payload.seeds.items():
        by_id[team_id].seed_in_pool = seed
        session.add(by_id[team_id])
    session.commit()

    return [SeededTeam(team_id=t.id, name=t.name, seed_in_pool=t.seed_in_pool) for t in teams]


@router.get("/tournaments/{tournament_id}/schedule/prerequisites")
def get_schedule_prerequisites(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Structured report of what blocks pool schedule generation (empty issues = ready)."""
    get_tournament_or_404(session, tournament_id)
    return check_schedule_prerequisites(session, tournament_id).to_dict()


@router.post("/tournaments/{tournament_id}/schedule/generate", response_model=ScheduleGenerateResponse)
def post_generate_schedule(
    tournament_id: int,
    request: Optional[ScheduleGenerateRequest] = None,
    session: Session = Depends(get_session),
):
    """
    Generate pool matches from templates.

    Returns 422 when prerequisites are not met or seeds are invalid, 409 when a
    pool schedule already exists and overwrite is not set.
    """
    tournament = get_tournament_or_404(session, tournament_id)
    overwrite = request.overwrite if request else False
    try:
        result = generate_schedule(session, tournament, overwrite=overwrite)
    except EngineError as exc:
        raise engine_error_to_http(exc)
    session.refresh(tournament)
    return ScheduleGenerateResponse(
        inserted=len(result.matches),
        deleted=result.deleted_count,
        matches_by_pool=result.matches_by_pool,
        tournament_status=tournament.status,
    )
