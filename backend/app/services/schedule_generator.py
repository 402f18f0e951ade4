"""
Schedule Generator: turns seeded pool rosters + round templates into pool matches.

Pure helpers (check_prerequisites, plan_pool_matches) work on model instances
as in-memory snapshots. The session-level entry points load the snapshot,
run the guards before touching anything, then apply all writes in one commit.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from sqlmodel import Session, select

from app.models.match import MATCH_TYPE_POOL, Match
from app.models.pool import Pool
from app.models.schedule_template import ScheduleTemplate
from app.models.team import Team
from app.models.tournament import Tournament
from app.services.engine_errors import (
    DuplicateScheduleError,
    InvalidSeedAssignment,
    PrerequisitesNotMet,
)
from app.services.round_templates import (
    RoundDefinition,
    has_template,
    parse_template_data,
    resolve_template,
)

logger = logging.getLogger(__name__)

MIN_POOL_SIZE = 2

# Issue codes
ISSUE_TEMPLATE_MISSING = "TEMPLATE_MISSING"
ISSUE_SEED_MISSING = "SEED_MISSING"
ISSUE_SEED_DUPLICATE = "SEED_DUPLICATE"
ISSUE_SEED_OUT_OF_RANGE = "SEED_OUT_OF_RANGE"
ISSUE_PARTNER_MISSING = "PARTNER_MISSING"


@dataclass
class PrerequisiteIssue:
    pool_id: Optional[int]
    pool_name: Optional[str]
    code: str
    reason: str


@dataclass
class PrerequisiteReport:
    issues: List[PrerequisiteIssue] = field(default_factory=list)
    infos: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict:
        return {
            "ok": self.ok,
            "issues": [asdict(i) for i in self.issues],
            "infos": list(self.infos),
        }


@dataclass
class ScheduleResult:
    matches: List[Match]
    deleted_count: int
    matches_by_pool: Dict[int, int]


# -----------------------------------------------------------------------------
# Pure helpers
# -----------------------------------------------------------------------------

def group_teams_by_pool(teams: Sequence[Team]) -> Dict[int, List[Team]]:
    grouped: Dict[int, List[Team]] = defaultdict(list)
    for team in teams:
        if team.pool_id is not None:
            grouped[team.pool_id].append(team)
    return grouped


def duplicate_seeds(teams: Sequence[Team]) -> List[int]:
    counts = Counter(t.seed_in_pool for t in teams if t.seed_in_pool is not None)
    return sorted(seed for seed, n in counts.items() if n > 1)


def validate_pool_seeds(pool: Pool, teams: Sequence[Team]) -> None:
    """Reject duplicate or non-positive seed_in_pool values within one pool."""
    dupes = duplicate_seeds(teams)
    if dupes:
        raise InvalidSeedAssignment(
            f"Pool '{pool.name}' has duplicate seeds: {dupes}",
            {"pool_id": pool.id, "duplicate_seeds": dupes},
        )
    bad = sorted(t.seed_in_pool for t in teams if t.seed_in_pool is not None and t.seed_in_pool < 1)
    if bad:
        raise InvalidSeedAssignment(
            f"Pool '{pool.name}' has non-positive seeds: {bad}",
            {"pool_id": pool.id, "invalid_seeds": bad},
        )


def _partner_missing(team: Team) -> bool:
    return team.partner_name is None or not team.partner_name.strip() or not (team.name or "").strip()


def check_prerequisites(
    pools: Sequence[Pool],
    teams: Sequence[Team],
    template_overrides: Optional[Mapping[int, Sequence[RoundDefinition]]] = None,
) -> PrerequisiteReport:
    """
    Report everything that blocks pool schedule generation. Never raises.

    Per pool: a template exists for its team count, every team has a
    seed_in_pool (unique, within 1..size), and every team has its partner
    assigned. Pools with fewer than 2 teams are skipped (reported as info).
    """
    report = PrerequisiteReport()
    by_pool = group_teams_by_pool(teams)

    unassigned = sum(1 for t in teams if t.pool_id is None)
    if unassigned:
        report.infos.append(f"{unassigned} team(s) are not assigned to any pool.")

    for pool in sorted(pools, key=lambda p: (p.name, p.id or 0)):
        pool_teams = by_pool.get(pool.id, [])
        size = len(pool_teams)

        def issue(code: str, reason: str) -> None:
            report.issues.append(PrerequisiteIssue(pool.id, pool.name, code, reason))

        if size < MIN_POOL_SIZE:
            report.infos.append(f"Pool '{pool.name}' has {size} team(s); it will be skipped.")
            continue

        if not has_template(size, template_overrides):
            issue(ISSUE_TEMPLATE_MISSING, f"Missing schedule template for pool size {size}.")

        unseeded = [t for t in pool_teams if t.seed_in_pool is None]
        if unseeded:
            issue(ISSUE_SEED_MISSING, f"{len(unseeded)} team(s) have no seed in pool.")

        dupes = duplicate_seeds(pool_teams)
        if dupes:
            issue(ISSUE_SEED_DUPLICATE, f"Duplicate seeds in pool: {dupes}.")

        out_of_range = sorted(
            t.seed_in_pool for t in pool_teams if t.seed_in_pool is not None and not 1 <= t.seed_in_pool <= size
        )
        if out_of_range:
            issue(ISSUE_SEED_OUT_OF_RANGE, f"Seeds {out_of_range} are outside 1..{size}.")

        missing_partners = [t for t in pool_teams if _partner_missing(t)]
        if missing_partners:
            issue(
                ISSUE_PARTNER_MISSING,
                f"Partner assignment incomplete: {len(missing_partners)} team(s) missing partner.",
            )

    return report


def plan_pool_matches(
    tournament_id: int,
    pool: Pool,
    teams: Sequence[Team],
    rounds: Sequence[RoundDefinition],
) -> List[Match]:
    """
    Map each template triple to concrete teams by seed_in_pool.

    One Match per triple; round_number is the round's position in the template.
    Assumes prerequisites passed (every slot resolves to a team).
    """
    by_seed = {t.seed_in_pool: t for t in teams if t.seed_in_pool is not None}
    matches: List[Match] = []
    for rnd in rounds:
        for triple in rnd.pairings:
            team_a = by_seed.get(triple.slot_a)
            team_b = by_seed.get(triple.slot_b)
            ref = by_seed.get(triple.ref_slot) if triple.ref_slot is not None else None
            matches.append(
                Match(
                    tournament_id=tournament_id,
                    pool_id=pool.id,
                    match_type=MATCH_TYPE_POOL,
                    round_number=rnd.round_number,
                    team_a_id=team_a.id if team_a else None,
                    team_b_id=team_b.id if team_b else None,
                    ref_team_id=ref.id if ref else None,
                )
            )
    return matches


# -----------------------------------------------------------------------------
# Session-level entry points
# -----------------------------------------------------------------------------

def load_template_overrides(session: Session, tournament_id: int) -> Dict[int, List[RoundDefinition]]:
    rows = session.exec(select(ScheduleTemplate).where(ScheduleTemplate.tournament_id == tournament_id)).all()
    return {row.pool_size: parse_template_data(row.template_data) for row in rows}


def _load_roster(session: Session, tournament_id: int):
    pools = session.exec(select(Pool).where(Pool.tournament_id == tournament_id).order_by(Pool.id)).all()
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id).order_by(Team.id)).all()
    return list(pools), list(teams)


def check_schedule_prerequisites(session: Session, tournament_id: int) -> PrerequisiteReport:
    pools, teams = _load_roster(session, tournament_id)
    return check_prerequisites(pools, teams, load_template_overrides(session, tournament_id))


def generate_schedule(session: Session, tournament: Tournament, overwrite: bool = False) -> ScheduleResult:
    """
    Materialize pool matches for every pool of the tournament.

    Guards (all checked before any write):
    - duplicate seeds -> InvalidSeedAssignment
    - any prerequisite issue -> PrerequisitesNotMet (carries the report)
    - existing pool matches without overwrite -> DuplicateScheduleError

    With overwrite=True prior pool matches are deleted first. Bracket matches
    are never touched. A draft/setup tournament moves to pool_play.
    """
    pools, teams = _load_roster(session, tournament.id)
    overrides = load_template_overrides(session, tournament.id)
    by_pool = group_teams_by_pool(teams)

    for pool in pools:
        validate_pool_seeds(pool, by_pool.get(pool.id, []))

    report = check_prerequisites(pools, teams, overrides)
    if not report.ok:
        raise PrerequisitesNotMet(
            f"Schedule prerequisites not met ({len(report.issues)} issue(s)).", report
        )

    existing = session.exec(
        select(Match).where(Match.tournament_id == tournament.id, Match.match_type == MATCH_TYPE_POOL)
    ).all()
    if existing and not overwrite:
        raise DuplicateScheduleError(
            f"Pool schedule already exists ({len(existing)} matches). Pass overwrite to regenerate.",
            {"existing_matches": len(existing)},
        )

    try:
        for match in existing:
            session.delete(match)

        created: List[Match] = []
        matches_by_pool: Dict[int, int] = {}
        for pool in pools:
            pool_teams = by_pool.get(pool.id, [])
            if len(pool_teams) < MIN_POOL_SIZE:
                continue
            rounds = resolve_template(len(pool_teams), overrides)
            pool_matches = plan_pool_matches(tournament.id, pool, pool_teams, rounds)
            for match in pool_matches:
                session.add(match)
            created.extend(pool_matches)
            matches_by_pool[pool.id] = len(pool_matches)

        if tournament.status in ("draft", "setup"):
            tournament.status = "pool_play"
            session.add(tournament)

        session.commit()
    except Exception:
        session.rollback()
        raise

    for match in created:
        session.refresh(match)

    logger.info(
        "Generated pool schedule for tournament %d: %d matches across %d pools (deleted %d)",
        tournament.id,
        len(created),
        len(matches_by_pool),
        len(existing),
    )
    return ScheduleResult(matches=created, deleted_count=len(existing), matches_by_pool=matches_by_pool)
