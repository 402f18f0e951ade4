"""
Pool Standings: ranked table per pool with a deterministic tiebreak chain.

Ranking:
1. wins (desc)
2. within each group tied on wins, walk the tiebreak chain in order:
   head_to_head -> set_ratio -> point_diff -> random
   Each criterion splits the tied group into sub-groups; only the members that
   are still tied move on to the next criterion. A group settled by an earlier
   criterion is never reopened.

Pool matches are best-of-one: every completed match is one set for each side.
Standings are a read model: recomputed on demand, never persisted.
"""

import hashlib
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from app.models.match import MATCH_TYPE_POOL, Match
from app.models.pool import Pool
from app.models.team import Team
from app.models.tournament import Tournament

logger = logging.getLogger(__name__)

TIEBREAK_HEAD_TO_HEAD = "head_to_head"
TIEBREAK_SET_RATIO = "set_ratio"
TIEBREAK_POINT_DIFF = "point_diff"
TIEBREAK_RANDOM = "random"

KNOWN_TIEBREAKERS = (TIEBREAK_HEAD_TO_HEAD, TIEBREAK_SET_RATIO, TIEBREAK_POINT_DIFF, TIEBREAK_RANDOM)
DEFAULT_TIEBREAKERS: Tuple[str, ...] = KNOWN_TIEBREAKERS

# Top two per pool advance
ADVANCERS_PER_POOL = 2

TIEBREAK_SALT = os.getenv("TIEBREAK_SALT", "")


@dataclass
class AdvancementRules:
    tiebreakers: List[str] = field(default_factory=lambda: list(DEFAULT_TIEBREAKERS))
    advancers_per_pool: int = ADVANCERS_PER_POOL

    @property
    def uses_default_tiebreakers(self) -> bool:
        return tuple(self.tiebreakers) == DEFAULT_TIEBREAKERS

    @classmethod
    def from_tournament(cls, tournament: Tournament) -> "AdvancementRules":
        """Read tiebreaker order from tournament.advancement_rules; unknown names are dropped."""
        raw = (tournament.advancement_rules or {}).get("tiebreakers") or []
        order: List[str] = []
        for name in raw:
            if name in KNOWN_TIEBREAKERS and name not in order:
                order.append(name)
            else:
                logger.warning("Ignoring tiebreaker %r on tournament %s", name, tournament.id)
        if not order:
            return cls()
        return cls(tiebreakers=order)


@dataclass
class PoolStandingEntry:
    team_id: int
    team_name: str
    pool_id: Optional[int] = None
    seed_in_pool: Optional[int] = None
    seed_global: Optional[int] = None
    wins: int = 0
    losses: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    points_for: int = 0
    points_against: int = 0
    rank: int = 0
    decided_by: Optional[str] = None  # criterion that settled this team's place ("wins" if untied)

    @property
    def played(self) -> int:
        return self.wins + self.losses

    @property
    def set_ratio(self) -> Optional[Fraction]:
        sets = self.sets_won + self.sets_lost
        if sets == 0:
            return None
        return Fraction(self.sets_won, sets)

    @property
    def point_diff(self) -> int:
        return self.points_for - self.points_against


@dataclass(frozen=True)
class MatchOutcome:
    team_a_id: int
    team_b_id: int
    score_a: int
    score_b: int
    winner_id: int

    @property
    def loser_id(self) -> int:
        return self.team_b_id if self.winner_id == self.team_a_id else self.team_a_id


# -----------------------------------------------------------------------------
# Random tiebreak strategy
# -----------------------------------------------------------------------------

class TieBreakStrategy(ABC):
    """Last-resort ordering for teams equal on every other criterion."""

    @abstractmethod
    def order(self, team_ids: Sequence[int]) -> List[int]:
        """Return team_ids in final order (best first)."""


class SeededRandomTieBreak(TieBreakStrategy):
    """
    Deterministic pseudo-random order derived from a caller-supplied seed.

    Each team gets a stable hash of (seed, team_id), so the outcome depends
    only on the seed and the set of tied teams, never on input order.
    """

    def __init__(self, seed):
        self.seed = str(seed)

    def _stable_hash(self, team_id: int) -> int:
        s = f"{self.seed}:{team_id}"
        return int(hashlib.sha256(s.encode()).hexdigest()[:12], 16)

    def order(self, team_ids: Sequence[int]) -> List[int]:
        return sorted(team_ids, key=lambda tid: (self._stable_hash(tid), tid))


def tie_breaker_for_pool(tournament_id: int, pool_id: int) -> TieBreakStrategy:
    """Default strategy: reproducible for the same tournament/pool on every recomputation."""
    return SeededRandomTieBreak(f"{TIEBREAK_SALT}:{tournament_id}:{pool_id}")


# -----------------------------------------------------------------------------
# Aggregation
# -----------------------------------------------------------------------------

def match_outcome(match: Match) -> Optional[MatchOutcome]:
    """
    Outcome of a completed match, or None if it cannot count yet.

    The recorded winner wins; without one the higher score wins. A completed
    match with equal scores and no winner is skipped.
    """
    if match.team_a_id is None or match.team_b_id is None or not match.is_complete:
        return None
    winner = match.winner_team_id
    if not match.has_team(winner):
        if match.score_a == match.score_b:
            logger.warning("Skipping match %s: equal scores and no winner recorded", match.id)
            return None
        winner = match.team_a_id if match.score_a > match.score_b else match.team_b_id
    return MatchOutcome(match.team_a_id, match.team_b_id, match.score_a, match.score_b, winner)


def _aggregate(entries: Dict[int, PoolStandingEntry], outcomes: Iterable[MatchOutcome]) -> None:
    for o in outcomes:
        for team_id, scored, allowed in ((o.team_a_id, o.score_a, o.score_b), (o.team_b_id, o.score_b, o.score_a)):
            entry = entries[team_id]
            entry.points_for += scored
            entry.points_against += allowed
            if team_id == o.winner_id:
                entry.wins += 1
                entry.sets_won += 1
            else:
                entry.losses += 1
                entry.sets_lost += 1


# -----------------------------------------------------------------------------
# Tiebreak chain
# -----------------------------------------------------------------------------

def _head_to_head_record(group: Sequence[PoolStandingEntry], outcomes: Sequence[MatchOutcome]) -> Dict[int, int]:
    """Wins minus losses in matches played among the tied subset only."""
    ids = {e.team_id for e in group}
    record = {tid: 0 for tid in ids}
    for o in outcomes:
        if o.team_a_id in ids and o.team_b_id in ids:
            record[o.winner_id] += 1
            record[o.loser_id] -= 1
    return record


def _criterion_keys(
    criterion: str,
    group: Sequence[PoolStandingEntry],
    outcomes: Sequence[MatchOutcome],
) -> Dict[int, tuple]:
    """Sort keys (higher is better) for one criterion over a tied group."""
    if criterion == TIEBREAK_HEAD_TO_HEAD:
        h2h = _head_to_head_record(group, outcomes)
        return {e.team_id: (h2h[e.team_id],) for e in group}
    if criterion == TIEBREAK_SET_RATIO:
        # No sets played sorts last
        return {
            e.team_id: (1, e.set_ratio) if e.set_ratio is not None else (0, Fraction(0))
            for e in group
        }
    if criterion == TIEBREAK_POINT_DIFF:
        return {e.team_id: (e.point_diff,) for e in group}
    raise ValueError(f"Unknown tiebreaker: {criterion}")


def _resolve_tied_group(
    group: List[PoolStandingEntry],
    outcomes: Sequence[MatchOutcome],
    criteria: Sequence[str],
    depth: int,
    tie_breaker: TieBreakStrategy,
) -> List[PoolStandingEntry]:
    if len(group) <= 1:
        return group

    if depth >= len(criteria) or criteria[depth] == TIEBREAK_RANDOM:
        # Chain exhausted (or random reached): strategy decides
        by_id = {e.team_id: e for e in group}
        ordered = [by_id[tid] for tid in tie_breaker.order(list(by_id))]
        for e in ordered:
            e.decided_by = TIEBREAK_RANDOM
        return ordered

    criterion = criteria[depth]
    keys = _criterion_keys(criterion, group, outcomes)
    result: List[PoolStandingEntry] = []
    for key in sorted(set(keys.values()), reverse=True):
        sub = [e for e in group if keys[e.team_id] == key]
        if len(sub) == 1:
            sub[0].decided_by = criterion
        result.extend(_resolve_tied_group(sub, outcomes, criteria, depth + 1, tie_breaker))

    logger.debug(
        "Tiebreak %s over %s -> %s",
        criterion,
        sorted(keys),
        [e.team_id for e in result],
    )
    return result


def compute_standings(
    teams: Sequence[Team],
    matches: Sequence[Match],
    tiebreakers: Optional[Sequence[str]] = None,
    tie_breaker: Optional[TieBreakStrategy] = None,
) -> List[PoolStandingEntry]:
    """
    Rank one pool's teams from its matches (best first, rank 1..n).

    Only completed matches between two teams of ``teams`` count. Idempotent:
    the same teams and matches always give the same table, regardless of
    input order or which side a team was listed on.
    """
    criteria = [c for c in (tiebreakers or DEFAULT_TIEBREAKERS) if c in KNOWN_TIEBREAKERS]
    tie_breaker = tie_breaker or SeededRandomTieBreak(0)

    entries: Dict[int, PoolStandingEntry] = {
        t.id: PoolStandingEntry(
            team_id=t.id,
            team_name=t.name,
            pool_id=t.pool_id,
            seed_in_pool=t.seed_in_pool,
            seed_global=t.seed_global,
        )
        for t in teams
    }

    outcomes = [
        o
        for o in (match_outcome(m) for m in matches)
        if o is not None and o.team_a_id in entries and o.team_b_id in entries
    ]
    _aggregate(entries, outcomes)

    ranked: List[PoolStandingEntry] = []
    for wins in sorted({e.wins for e in entries.values()}, reverse=True):
        group = sorted((e for e in entries.values() if e.wins == wins), key=lambda e: e.team_id)
        if len(group) == 1:
            group[0].decided_by = "wins"
        ranked.extend(_resolve_tied_group(group, outcomes, criteria, 0, tie_breaker))

    for rank, entry in enumerate(ranked, start=1):
        entry.rank = rank
    return ranked


# -----------------------------------------------------------------------------
# Session-level entry points
# -----------------------------------------------------------------------------

def compute_pool_standings(session: Session, tournament: Tournament, pool: Pool) -> List[PoolStandingEntry]:
    teams = session.exec(select(Team).where(Team.pool_id == pool.id)).all()
    matches = session.exec(
        select(Match).where(Match.pool_id == pool.id, Match.match_type == MATCH_TYPE_POOL)
    ).all()
    rules = AdvancementRules.from_tournament(tournament)
    return compute_standings(
        teams,
        matches,
        tiebreakers=rules.tiebreakers,
        tie_breaker=tie_breaker_for_pool(tournament.id, pool.id),
    )


def compute_all_standings(session: Session, tournament: Tournament) -> Dict[int, List[PoolStandingEntry]]:
    pools = session.exec(select(Pool).where(Pool.tournament_id == tournament.id).order_by(Pool.id)).all()
    return {pool.id: compute_pool_standings(session, tournament, pool) for pool in pools}
