"""
Pool and Team Management API Routes
Pools are created per tournament; teams are registered and optionally placed into a pool.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, model_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.database import get_session
from app.models.pool import Pool
from app.models.team import Team
from app.utils.guards import get_pool_or_404, get_tournament_or_404

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class PoolCreateRequest(BaseModel):
    name: str
    target_size: Optional[int] = None
    court_assignment: Optional[str] = None


class PoolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    target_size: Optional[int] = None
    court_assignment: Optional[str] = None


class TeamCreateRequest(BaseModel):
    name: Optional[str] = None
    seeded_player_name: Optional[str] = None
    partner_name: Optional[str] = None
    pool_id: Optional[int] = None
    seed_in_pool: Optional[int] = None
    seed_global: Optional[int] = None

    @model_validator(mode="after")
    def require_name(self):
        if not (self.name or self.seeded_player_name):
            raise ValueError("name or seeded_player_name is required")
        return self

    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.partner_name:
            return f"{self.seeded_player_name} + {self.partner_name}"
        return self.seeded_player_name


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    pool_id: Optional[int] = None
    name: str
    seeded_player_name: Optional[str] = None
    partner_name: Optional[str] = None
    seed_in_pool: Optional[int] = None
    seed_global: Optional[int] = None


# ============================================================================
# Pool Endpoints
# ============================================================================


@router.get("/tournaments/{tournament_id}/pools", response_model=List[PoolResponse])
def get_pools(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(select(Pool).where(Pool.tournament_id == tournament_id).order_by(Pool.id)).all()


@router.post("/tournaments/{tournament_id}/pools", response_model=PoolResponse, status_code=201)
def create_pool(tournament_id: int, request: PoolCreateRequest, session: Session = Depends(get_session)):
    """
    Create a pool.

    Constraints:
    - (tournament_id, name) must be unique
    """
    get_tournament_or_404(session, tournament_id)
    pool = Pool(tournament_id=tournament_id, **request.model_dump())
    try:
        session.add(pool)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Pool '{request.name}' already exists for this tournament")
    session.refresh(pool)
    return pool


# ============================================================================
# Team Endpoints
# ============================================================================


@router.get("/tournaments/{tournament_id}/teams", response_model=List[TeamResponse])
def get_teams(tournament_id: int, session: Session = Depends(get_session)):
    """
    Get all teams for a tournament.

    Deterministic order: pool (unassigned last), seed_in_pool (nulls last), id.
    """
    get_tournament_or_404(session, tournament_id)
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()

    def sort_key(team: Team):
        return (
            (team.pool_id is None, team.pool_id or 0),
            (team.seed_in_pool is None, team.seed_in_pool or 0),
            team.id,
        )

    return sorted(teams, key=sort_key)


@router.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def create_team(tournament_id: int, request: TeamCreateRequest, session: Session = Depends(get_session)):
    """
    Register a team.

    Constraints:
    - pool_id must belong to the tournament
    - (pool_id, seed_in_pool) and (tournament_id, seed_global) must be unique if set
    """
    get_tournament_or_404(session, tournament_id)
    if request.pool_id is not None:
        pool = get_pool_or_404(session, request.pool_id)
        if pool.tournament_id != tournament_id:
            raise HTTPException(status_code=422, detail="Pool belongs to another tournament")
    for label, value in (("seed_in_pool", request.seed_in_pool), ("seed_global", request.seed_global)):
        if value is not None and value < 1:
            raise HTTPException(status_code=422, detail=f"{label} must be >= 1")

    team = Team(
        tournament_id=tournament_id,
        pool_id=request.pool_id,
        name=request.display_name(),
        seeded_player_name=request.seeded_player_name,
        partner_name=request.partner_name,
        seed_in_pool=request.seed_in_pool,
        seed_global=request.seed_global,
    )
    try:
        session.add(team)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Seed already taken in this pool or tournament")
    session.refresh(team)
    return team
