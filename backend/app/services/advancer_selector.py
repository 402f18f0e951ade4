"""
Advancer Selection: who leaves pool play and in what bracket seed order.

Top two per pool advance. Seed list S = all pool winners (best first) followed
by all runners-up (best first). Within a finish position, teams from different
pools are compared on standing quality (wins, set ratio, point diff; no
head-to-head across pools), then seed_global ascending (unseeded last).
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, List, Mapping, Sequence, Tuple

from app.models.pool import Pool
from app.services.standings import ADVANCERS_PER_POOL, PoolStandingEntry

FINISH_WINNER = 1
FINISH_RUNNER_UP = 2


@dataclass
class Advancer:
    seed: int  # 1-based bracket seed
    team_id: int
    team_name: str
    pool_id: int
    pool_name: str
    finish: int  # 1 = pool winner, 2 = runner-up
    standing: PoolStandingEntry


def _quality_key(entry: PoolStandingEntry) -> tuple:
    """Lower sorts first (stronger)."""
    ratio = entry.set_ratio
    return (
        -entry.wins,
        0 if ratio is not None else 1,
        -(ratio if ratio is not None else Fraction(0)),
        -entry.point_diff,
        0 if entry.seed_global is not None else 1,
        entry.seed_global or 0,
        entry.team_id,
    )


def select_advancers(
    pools: Sequence[Pool],
    standings_by_pool: Mapping[int, Sequence[PoolStandingEntry]],
    advancers_per_pool: int = ADVANCERS_PER_POOL,
) -> List[Advancer]:
    """
    Build the ordered advancer list fed to the bracket builder.

    ``standings_by_pool`` maps pool id to that pool's ranked standings. A pool
    with fewer ranked teams than ``advancers_per_pool`` contributes what it has.
    """
    pool_names: Dict[int, str] = {p.id: p.name for p in pools}
    buckets: List[List[Tuple[int, PoolStandingEntry]]] = [[] for _ in range(advancers_per_pool)]

    for pool in pools:
        ranked = sorted(standings_by_pool.get(pool.id, []), key=lambda e: e.rank)
        for position, entry in enumerate(ranked[:advancers_per_pool]):
            buckets[position].append((pool.id, entry))

    advancers: List[Advancer] = []
    for position, bucket in enumerate(buckets, start=1):
        for pool_id, entry in sorted(bucket, key=lambda item: _quality_key(item[1])):
            advancers.append(
                Advancer(
                    seed=len(advancers) + 1,
                    team_id=entry.team_id,
                    team_name=entry.team_name,
                    pool_id=pool_id,
                    pool_name=pool_names.get(pool_id, ""),
                    finish=position,
                    standing=entry,
                )
            )
    return advancers


def expected_advancer_count(pool_count: int, advancers_per_pool: int = ADVANCERS_PER_POOL) -> int:
    return pool_count * advancers_per_pool
