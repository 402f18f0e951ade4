"""
Bracket Builder: single-elimination bracket from the ordered advancer list.

Rules:
- Bracket size B = smallest power of two >= N advancers (B in {2, 4, 8}).
- B - N byes go to the top B - N seeds: standard seed slot order places each
  of them opposite an empty slot in round 1.
- Round-1 pairs follow standard bracket seeding (1 vs B, 2 vs B-1, ...) laid
  out so top seeds meet as late as possible.
- Rounds 1..log2(B); bracket_match_index is 0-based within the round. Match i
  of round r is fed by matches 2i (side A) and 2i+1 (side B) of round r-1.
- A round-1 bye match records its lone team as winner and that team is
  pre-filled into round 2.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from app.models.match import MATCH_TYPE_BRACKET, MATCH_TYPE_POOL, Match
from app.models.pool import Pool
from app.models.team import Team
from app.models.tournament import Tournament
from app.services.advancer_selector import Advancer, expected_advancer_count, select_advancers
from app.services.engine_errors import BracketSizeError
from app.services.standings import DEFAULT_TIEBREAKERS, AdvancementRules, compute_all_standings

logger = logging.getLogger(__name__)

MIN_BRACKET_SIZE = 2
MAX_BRACKET_SIZE = 8

SIDE_A = "a"
SIDE_B = "b"


# -----------------------------------------------------------------------------
# Layout helpers
# -----------------------------------------------------------------------------

def bracket_size(advancer_count: int) -> int:
    """Smallest power of two >= advancer_count, within 2..MAX_BRACKET_SIZE."""
    if advancer_count < MIN_BRACKET_SIZE:
        raise BracketSizeError(
            f"At least {MIN_BRACKET_SIZE} advancers are needed for a bracket, got {advancer_count}.",
            {"advancers": advancer_count},
        )
    size = MIN_BRACKET_SIZE
    while size < advancer_count:
        size *= 2
    if size > MAX_BRACKET_SIZE:
        raise BracketSizeError(
            f"{advancer_count} advancers exceed the supported bracket size ({MAX_BRACKET_SIZE}).",
            {"advancers": advancer_count, "max_bracket_size": MAX_BRACKET_SIZE},
        )
    return size


def round_count(size: int) -> int:
    return size.bit_length() - 1


def seed_slot_order(size: int) -> List[int]:
    """
    Seed number for each round-1 slot, top to bottom.

    B=2: [1, 2]
    B=4: [1, 4, 2, 3]
    B=8: [1, 8, 4, 5, 2, 7, 3, 6]
    """
    if size < 2 or size & (size - 1):
        raise BracketSizeError(f"Bracket size must be a power of two, got {size}.", {"size": size})
    if size == 2:
        return [1, 2]
    slots: List[int] = []
    for seed in seed_slot_order(size // 2):
        slots.append(seed)
        slots.append(size + 1 - seed)
    return slots


def next_slot(bracket_round: int, bracket_match_index: int) -> Tuple[int, int, str]:
    """(round, index, side) of the slot a match's winner moves into."""
    side = SIDE_A if bracket_match_index % 2 == 0 else SIDE_B
    return bracket_round + 1, bracket_match_index // 2, side


def feeder_indexes(bracket_match_index: int) -> Tuple[int, int]:
    """Indexes in the previous round feeding side A and side B."""
    return 2 * bracket_match_index, 2 * bracket_match_index + 1


# -----------------------------------------------------------------------------
# Planning (pure)
# -----------------------------------------------------------------------------

@dataclass
class BracketPlan:
    size: int
    rounds: int
    bye_seeds: List[int]
    matches: List[Match]

    def match_at(self, bracket_round: int, bracket_match_index: int) -> Optional[Match]:
        for m in self.matches:
            if m.bracket_round == bracket_round and m.bracket_match_index == bracket_match_index:
                return m
        return None


def plan_bracket(tournament_id: int, advancer_team_ids: Sequence[int]) -> BracketPlan:
    """
    Lay out every bracket match for the ordered advancers (seed 1 first).

    Round 1 always has B/2 matches; a bye match holds one team and an empty
    side. Later rounds start empty except for slots pre-filled by byes.
    """
    n = len(advancer_team_ids)
    size = bracket_size(n)
    rounds = round_count(size)
    slots = [advancer_team_ids[seed - 1] if seed <= n else None for seed in seed_slot_order(size)]

    matches: List[Match] = []
    for bracket_round in range(1, rounds + 1):
        for index in range(size >> bracket_round):
            matches.append(
                Match(
                    tournament_id=tournament_id,
                    pool_id=None,
                    match_type=MATCH_TYPE_BRACKET,
                    bracket_round=bracket_round,
                    bracket_match_index=index,
                )
            )
    plan = BracketPlan(size=size, rounds=rounds, bye_seeds=list(range(1, size - n + 1)), matches=matches)

    for index in range(size // 2):
        match = plan.match_at(1, index)
        match.team_a_id = slots[2 * index]
        match.team_b_id = slots[2 * index + 1]

        lone = [t for t in (match.team_a_id, match.team_b_id) if t is not None]
        if len(lone) == 1:
            match.winner_team_id = lone[0]
            target_round, target_index, side = next_slot(1, index)
            target = plan.match_at(target_round, target_index)
            if target is not None:
                setattr(target, "team_a_id" if side == SIDE_A else "team_b_id", lone[0])

    return plan


def apply_bracket_plan(session: Session, tournament: Tournament, plan: BracketPlan, now: datetime) -> None:
    """Stage bracket matches and tournament fields on the session (caller commits)."""
    for match in plan.matches:
        session.add(match)
    tournament.status = "bracket"
    tournament.bracket_generated_at = now
    session.add(tournament)


# -----------------------------------------------------------------------------
# Prerequisites
# -----------------------------------------------------------------------------

@dataclass
class BracketPrerequisiteReport:
    errors: List[str] = field(default_factory=list)
    infos: List[str] = field(default_factory=list)
    unscored: List[Dict[str, Any]] = field(default_factory=list)
    pool_count: int = 0
    team_count: int = 0
    expected_advancers: int = 0
    actual_advancers: int = 0
    bracket_exists: bool = False
    bracket_size: int = 0
    rounds: int = 0
    advancers: List[Advancer] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("advancers")
        data["ok"] = self.ok
        return data


def check_bracket_prerequisites(session: Session, tournament: Tournament) -> BracketPrerequisiteReport:
    """
    Report what blocks bracket generation. Never raises.

    Errors: pools with < 2 teams, unscored pool matches, advancer count out of
    bracket range. An existing bracket is reported as info (rebuild path).
    """
    report = BracketPrerequisiteReport()

    pools = session.exec(select(Pool).where(Pool.tournament_id == tournament.id).order_by(Pool.id)).all()
    teams = session.exec(select(Team).where(Team.tournament_id == tournament.id)).all()
    report.pool_count = len(pools)
    report.team_count = len(teams)

    if AdvancementRules.from_tournament(tournament).uses_default_tiebreakers:
        report.infos.append(f"Using default tiebreakers: {', '.join(DEFAULT_TIEBREAKERS)}.")

    team_counts: Dict[int, int] = {}
    for t in teams:
        if t.pool_id is not None:
            team_counts[t.pool_id] = team_counts.get(t.pool_id, 0) + 1
    unassigned = sum(1 for t in teams if t.pool_id is None)
    if unassigned:
        report.infos.append(f"{unassigned} team(s) are not assigned to any pool.")

    eligible_pools = 0
    for pool in pools:
        size = team_counts.get(pool.id, 0)
        if size < 2:
            report.errors.append(f"Pool '{pool.name}' has only {size} team(s). Need at least 2 to advance.")
        else:
            eligible_pools += 1
    report.expected_advancers = expected_advancer_count(eligible_pools)

    pool_names = {p.id: p.name for p in pools}
    pool_matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament.id, Match.match_type == MATCH_TYPE_POOL)
        .order_by(Match.id)
    ).all()
    if pools and not pool_matches:
        report.errors.append("No pool matches found. Generate the pool schedule first.")
    for m in pool_matches:
        if m.team_a_id is not None and m.team_b_id is not None and not m.is_complete:
            report.unscored.append({"match_id": m.id, "pool_id": m.pool_id, "pool_name": pool_names.get(m.pool_id)})
    if report.unscored:
        report.errors.append(f"{len(report.unscored)} pool match(es) are missing scores.")

    existing = session.exec(
        select(Match.id).where(Match.tournament_id == tournament.id, Match.match_type == MATCH_TYPE_BRACKET)
    ).first()
    report.bracket_exists = existing is not None
    if report.bracket_exists:
        report.infos.append("Bracket already exists. Use rebuild to regenerate it while allowed.")

    if report.errors:
        return report

    standings = compute_all_standings(session, tournament)
    report.advancers = select_advancers(pools, standings)
    report.actual_advancers = len(report.advancers)
    try:
        report.bracket_size = bracket_size(report.actual_advancers)
        report.rounds = round_count(report.bracket_size)
    except BracketSizeError as exc:
        report.errors.append(exc.reason)

    if report.expected_advancers and report.actual_advancers != report.expected_advancers:
        report.infos.append(
            f"Expected {report.expected_advancers} advancers (2 per pool), computed {report.actual_advancers}."
        )
    return report
