"""Bracket lifecycle: generate once, rebuild while allowed, latch blocks rebuild with no mutation."""
from datetime import datetime

import pytest
from sqlmodel import Session, select

from app.models.match import MATCH_TYPE_BRACKET, Match
from app.services.bracket_lifecycle import (
    BracketLifecycle,
    BracketState,
    generate_bracket,
    is_bracket_activity,
    load_lifecycle,
    rebuild_bracket,
)
from app.services.engine_errors import BracketExistsError, PrerequisitesNotMet, RebuildBlockedError
from app.services.schedule_generator import generate_schedule


def _bracket_rows(session: Session, tournament_id: int):
    matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id, Match.match_type == MATCH_TYPE_BRACKET)
        .order_by(Match.bracket_round, Match.bracket_match_index)
    ).all()
    return [(m.id, m.bracket_round, m.bracket_match_index, m.team_a_id, m.team_b_id) for m in matches]


@pytest.fixture
def ready_tournament(session: Session, tournament, build_pools, play_pools):
    """Two pools of four, schedule generated and fully scored."""
    build_pools(tournament, [4, 4])
    generate_schedule(session, tournament)
    play_pools(tournament)
    session.refresh(tournament)
    return tournament


def test_state_machine_transitions(session: Session, ready_tournament):
    assert load_lifecycle(session, ready_tournament).state == BracketState.NOT_GENERATED

    generate_bracket(session, ready_tournament, now=datetime(2026, 6, 13, 15, 0))
    lifecycle = load_lifecycle(session, ready_tournament)
    assert lifecycle.state == BracketState.GENERATED
    assert lifecycle.can_rebuild

    assert lifecycle.mark_started() is True
    assert lifecycle.mark_started() is False
    assert lifecycle.state == BracketState.STARTED
    assert not lifecycle.can_rebuild


def test_generate_sets_status_and_timestamp(session: Session, ready_tournament):
    now = datetime(2026, 6, 13, 15, 0)
    plan = generate_bracket(session, ready_tournament, now=now)
    session.refresh(ready_tournament)

    assert (plan.size, plan.rounds) == (4, 2)
    assert ready_tournament.status == "bracket"
    assert ready_tournament.bracket_generated_at == now
    assert ready_tournament.bracket_started is False
    assert len(_bracket_rows(session, ready_tournament.id)) == 3


def test_second_generate_requires_rebuild(session: Session, ready_tournament):
    generate_bracket(session, ready_tournament)
    with pytest.raises(BracketExistsError) as exc_info:
        generate_bracket(session, ready_tournament)
    assert exc_info.value.details["existing_matches"] == 3


def test_rebuild_before_start_replaces_matches(session: Session, ready_tournament):
    generate_bracket(session, ready_tournament)
    before = _bracket_rows(session, ready_tournament.id)

    plan = rebuild_bracket(session, ready_tournament)
    after = _bracket_rows(session, ready_tournament.id)

    assert plan.size == 4
    assert len(after) == len(before)
    assert [row[1:] for row in after] == [row[1:] for row in before]


def test_rebuild_after_start_is_blocked_without_mutation(session: Session, ready_tournament):
    generate_bracket(session, ready_tournament)
    first = session.exec(
        select(Match).where(
            Match.tournament_id == ready_tournament.id,
            Match.match_type == MATCH_TYPE_BRACKET,
            Match.bracket_round == 1,
        )
    ).first()
    first.is_live = True
    session.add(first)
    assert is_bracket_activity(first)
    load_lifecycle(session, ready_tournament).mark_started()
    session.add(ready_tournament)
    session.commit()

    before = _bracket_rows(session, ready_tournament.id)
    with pytest.raises(RebuildBlockedError) as exc_info:
        rebuild_bracket(session, ready_tournament)

    assert exc_info.value.status_code == 409
    assert _bracket_rows(session, ready_tournament.id) == before
    session.refresh(ready_tournament)
    assert ready_tournament.bracket_started is True


def test_rebuild_with_failing_prerequisites_keeps_bracket(session: Session, ready_tournament):
    generate_bracket(session, ready_tournament)
    before = _bracket_rows(session, ready_tournament.id)

    pool_match = session.exec(select(Match).where(Match.tournament_id == ready_tournament.id, Match.pool_id.is_not(None))).first()
    pool_match.score_a = None
    pool_match.score_b = None
    pool_match.winner_team_id = None
    session.add(pool_match)
    session.commit()

    with pytest.raises(PrerequisitesNotMet):
        rebuild_bracket(session, ready_tournament)
    assert _bracket_rows(session, ready_tournament.id) == before


def test_activity_detection():
    bracket = Match(tournament_id=1, match_type=MATCH_TYPE_BRACKET, bracket_round=1, bracket_match_index=0)
    assert not is_bracket_activity(bracket)
    bracket.score_a = 0
    assert is_bracket_activity(bracket)

    pool = Match(tournament_id=1, match_type="pool", is_live=True, score_a=21)
    assert not is_bracket_activity(pool)


def test_lifecycle_without_matches_but_timestamp_is_generated():
    from app.models.tournament import Tournament

    t = Tournament(id=1, name="x", bracket_generated_at=datetime(2026, 1, 1))
    assert BracketLifecycle(t, 0).state == BracketState.GENERATED


def test_recorded_winner_counts_as_activity_but_bye_does_not():
    played = Match(
        tournament_id=1,
        match_type=MATCH_TYPE_BRACKET,
        bracket_round=1,
        bracket_match_index=0,
        team_a_id=1,
        team_b_id=2,
        winner_team_id=2,
    )
    assert is_bracket_activity(played)

    bye = Match(
        tournament_id=1,
        match_type=MATCH_TYPE_BRACKET,
        bracket_round=1,
        bracket_match_index=1,
        team_a_id=3,
        winner_team_id=3,
    )
    assert not is_bracket_activity(bye)
