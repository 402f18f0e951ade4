from datetime import date
from typing import List, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from app.database import get_session
from app.main import app
from app.models.match import MATCH_TYPE_POOL, Match
from app.models.pool import Pool
from app.models.team import Team
from app.models.tournament import Tournament

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables dropped after every test so ids and rows never leak between tests
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on fresh tables."""
    # Match, Pool, Team, Tournament are imported at module level
    from app.models.schedule_template import ScheduleTemplate  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override is set BEFORE TestClient() and stays in place for the entire
    duration, so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Roster builders
# ============================================================================


def make_tournament(session: Session, name: str = "Grab Bag Saturday", **kwargs) -> Tournament:
    tournament = Tournament(name=name, tournament_date=date(2026, 6, 13), **kwargs)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


def make_pools(session: Session, tournament: Tournament, sizes: Sequence[int]) -> List[Tuple[Pool, List[Team]]]:
    """
    Create one pool per entry in ``sizes`` with that many seeded teams.

    Teams are named "<pool letter><seed>" (A1, A2, ...) and get seed_global
    in creation order.
    """
    roster: List[Tuple[Pool, List[Team]]] = []
    seed_global = 1
    for pool_index, size in enumerate(sizes):
        letter = chr(ord("A") + pool_index)
        pool = Pool(tournament_id=tournament.id, name=f"Pool {letter}", target_size=size)
        session.add(pool)
        session.commit()
        session.refresh(pool)
        teams = []
        for seed in range(1, size + 1):
            team = Team(
                tournament_id=tournament.id,
                pool_id=pool.id,
                name=f"{letter}{seed}",
                seeded_player_name=f"Player {letter}{seed}",
                partner_name=f"Partner {letter}{seed}",
                seed_in_pool=seed,
                seed_global=seed_global,
            )
            seed_global += 1
            session.add(team)
            teams.append(team)
        session.commit()
        for team in teams:
            session.refresh(team)
        roster.append((pool, teams))
    return roster


def play_pool_matches(session: Session, tournament: Tournament, winning_points: int = 21, losing_points: int = 15) -> int:
    """Score every pool match so the better seed_in_pool wins. Returns matches scored."""
    seeds = {t.id: t.seed_in_pool for t in session.exec(select(Team).where(Team.tournament_id == tournament.id))}
    matches = session.exec(
        select(Match).where(Match.tournament_id == tournament.id, Match.match_type == MATCH_TYPE_POOL)
    ).all()
    for m in matches:
        a_wins = seeds[m.team_a_id] < seeds[m.team_b_id]
        m.score_a = winning_points if a_wins else losing_points
        m.score_b = losing_points if a_wins else winning_points
        m.winner_team_id = m.team_a_id if a_wins else m.team_b_id
        session.add(m)
    session.commit()
    return len(matches)


@pytest.fixture(name="tournament")
def tournament_fixture(session: Session) -> Tournament:
    return make_tournament(session)


@pytest.fixture(name="build_pools")
def build_pools_fixture(session: Session):
    """Factory: build_pools(tournament, [4, 4]) -> [(pool, [teams by seed]), ...]"""

    def _build(tournament: Tournament, sizes: Sequence[int]) -> List[Tuple[Pool, List[Team]]]:
        return make_pools(session, tournament, sizes)

    return _build


@pytest.fixture(name="play_pools")
def play_pools_fixture(session: Session):
    """Factory: play_pools(tournament) scores every pool match, better seed winning."""

    def _play(tournament: Tournament, **kwargs) -> int:
        return play_pool_matches(session, tournament, **kwargs)

    return _play
