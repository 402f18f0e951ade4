from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.pool import Pool
from app.services.advancer_selector import select_advancers
from app.services.standings import PoolStandingEntry, compute_all_standings, compute_pool_standings
from app.utils.guards import get_pool_or_404, get_tournament_or_404

router = APIRouter()


class StandingRow(BaseModel):
    rank: int
    team_id: int
    team_name: str
    seed_in_pool: Optional[int]
    wins: int
    losses: int
    sets_won: int
    sets_lost: int
    set_ratio: Optional[float]
    points_for: int
    points_against: int
    point_diff: int
    decided_by: Optional[str]


class AdvancerRow(BaseModel):
    seed: int
    team_id: int
    team_name: str
    pool_id: int
    pool_name: str
    finish: int
    wins: int
    point_diff: int


def _standing_row(entry: PoolStandingEntry) -> StandingRow:
    ratio = entry.set_ratio
    return StandingRow(
        rank=entry.rank,
        team_id=entry.team_id,
        team_name=entry.team_name,
        seed_in_pool=entry.seed_in_pool,
        wins=entry.wins,
        losses=entry.losses,
        sets_won=entry.sets_won,
        sets_lost=entry.sets_lost,
        set_ratio=float(ratio) if ratio is not None else None,
        points_for=entry.points_for,
        points_against=entry.points_against,
        point_diff=entry.point_diff,
        decided_by=entry.decided_by,
    )


@router.get("/pools/{pool_id}/standings", response_model=List[StandingRow])
def get_pool_standings(pool_id: int, session: Session = Depends(get_session)):
    """Ranked standings for one pool from its scored matches."""
    pool = get_pool_or_404(session, pool_id)
    tournament = get_tournament_or_404(session, pool.tournament_id)
    return [_standing_row(e) for e in compute_pool_standings(session, tournament, pool)]


@router.get("/tournaments/{tournament_id}/advancers", response_model=List[AdvancerRow])
def get_advancers(tournament_id: int, session: Session = Depends(get_session)):
    """
    Current advancer list in bracket seed order.

    Computed from whatever is scored so far; the bracket prerequisites
    endpoint says whether it is final.
    """
    tournament = get_tournament_or_404(session, tournament_id)
    pools = session.exec(select(Pool).where(Pool.tournament_id == tournament_id).order_by(Pool.id)).all()
    advancers = select_advancers(pools, compute_all_standings(session, tournament))
    return [
        AdvancerRow(
            seed=a.seed,
            team_id=a.team_id,
            team_name=a.team_name,
            pool_id=a.pool_id,
            pool_name=a.pool_name,
            finish=a.finish,
            wins=a.standing.wins,
            point_diff=a.standing.point_diff,
        )
        for a in advancers
    ]
