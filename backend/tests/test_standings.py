"""Pool standings: aggregation, tiebreak chain, determinism."""
import random

import pytest

from app.models.match import MATCH_TYPE_POOL, Match
from app.models.team import Team
from app.services.standings import (
    TIEBREAK_HEAD_TO_HEAD,
    TIEBREAK_POINT_DIFF,
    TIEBREAK_RANDOM,
    SeededRandomTieBreak,
    TieBreakStrategy,
    compute_standings,
    match_outcome,
)


class FixedOrder(TieBreakStrategy):
    """Test strategy: ascending team id."""

    def __init__(self):
        self.calls = []

    def order(self, team_ids):
        self.calls.append(sorted(team_ids))
        return sorted(team_ids)


def _teams(n):
    return [Team(id=i, tournament_id=1, pool_id=1, name=f"T{i}", seed_in_pool=i) for i in range(1, n + 1)]


def _m(a, b, sa, sb, winner=None):
    return Match(
        tournament_id=1,
        pool_id=1,
        match_type=MATCH_TYPE_POOL,
        team_a_id=a,
        team_b_id=b,
        score_a=sa,
        score_b=sb,
        winner_team_id=winner,
    )


def _table(entries):
    return [(e.team_id, e.rank, e.wins, e.losses, e.points_for, e.points_against, e.decided_by) for e in entries]


def test_aggregates_wins_sets_and_points():
    matches = [_m(1, 2, 21, 15), _m(1, 3, 21, 19), _m(2, 3, 21, 10)]
    table = compute_standings(_teams(3), matches)

    assert [e.team_id for e in table] == [1, 2, 3]
    first = table[0]
    assert (first.wins, first.losses, first.sets_won, first.sets_lost) == (2, 0, 2, 0)
    assert (first.points_for, first.points_against, first.point_diff) == (42, 34, 8)
    assert first.decided_by == "wins"
    assert table[2].set_ratio == 0


def test_unscored_and_foreign_matches_do_not_count():
    matches = [_m(1, 2, 21, 15), _m(1, 3, None, None), _m(2, 99, 21, 3)]
    table = compute_standings(_teams(3), matches)
    by_id = {e.team_id: e for e in table}

    assert by_id[1].played == 1
    assert by_id[2].played == 1
    assert by_id[3].played == 0
    assert by_id[3].set_ratio is None


def test_recorded_winner_overrides_scores_and_tie_without_winner_is_skipped():
    assert match_outcome(_m(1, 2, 15, 21, winner=1)).winner_id == 1
    assert match_outcome(_m(1, 2, 20, 20)) is None
    assert match_outcome(_m(1, 2, 20, 20, winner=2)).winner_id == 2


def test_head_to_head_breaks_two_way_tie():
    # 1 and 2 both 2-1; 2 beat 1
    matches = [
        _m(1, 2, 15, 21),
        _m(1, 3, 21, 10),
        _m(1, 4, 21, 10),
        _m(2, 3, 21, 19),
        _m(2, 4, 10, 21),
        _m(3, 4, 21, 19),
    ]
    table = compute_standings(_teams(4), matches)
    top_two = [(e.team_id, e.decided_by) for e in table[:2]]
    assert top_two == [(2, TIEBREAK_HEAD_TO_HEAD), (1, TIEBREAK_HEAD_TO_HEAD)]


def test_head_to_head_counts_only_matches_inside_the_tied_group():
    # 1, 2, 3 all 2-1 (cycle among them plus each beats 4); then point diff decides
    matches = [
        _m(1, 2, 21, 19),
        _m(2, 3, 21, 19),
        _m(3, 1, 21, 19),
        _m(1, 4, 21, 5),
        _m(2, 4, 21, 10),
        _m(3, 4, 21, 15),
    ]
    table = compute_standings(_teams(4), matches)
    assert [e.team_id for e in table] == [1, 2, 3, 4]
    assert [e.decided_by for e in table[:3]] == [TIEBREAK_POINT_DIFF] * 3
    assert table[3].decided_by == "wins"


def test_head_to_head_uses_net_record_in_partly_played_group():
    # 1, 2, 3 each 1 win; inside the group 1 is 1-0, 2 is 1-1, 3 is 0-1
    matches = [
        _m(1, 2, 21, 19),
        _m(2, 3, 21, 5),
        _m(3, 4, 21, 19),
    ]
    table = compute_standings(_teams(4), matches)
    assert [e.team_id for e in table] == [1, 2, 3, 4]
    assert [e.decided_by for e in table[:3]] == [TIEBREAK_HEAD_TO_HEAD] * 3


def test_three_way_cycle_falls_through_to_random_strategy():
    # Perfect cycle with identical margins: every criterion ties
    matches = [_m(1, 2, 21, 15), _m(2, 3, 21, 15), _m(3, 1, 21, 15)]
    strategy = FixedOrder()
    table = compute_standings(_teams(3), matches, tie_breaker=strategy)

    assert strategy.calls == [[1, 2, 3]]
    assert [e.team_id for e in table] == [1, 2, 3]
    assert all(e.decided_by == TIEBREAK_RANDOM for e in table)


def test_random_only_applies_to_teams_still_tied():
    # 1 and 2 tied on everything; 3 drops out on head-to-head
    matches = [
        _m(1, 3, 21, 15),
        _m(2, 3, 21, 15),
        _m(1, 4, 15, 21),
        _m(2, 4, 15, 21),
        _m(3, 4, 21, 5),
        _m(1, 2, None, None),
    ]
    strategy = FixedOrder()
    compute_standings(_teams(4), matches, tie_breaker=strategy)
    assert strategy.calls == [[1, 2]]


def test_custom_chain_skips_head_to_head():
    # 1 and 2 finish 2-1; 1 won their match but 2 has the far better point diff
    matches = [
        _m(1, 2, 21, 19),
        _m(3, 1, 21, 5),
        _m(2, 3, 21, 19),
        _m(1, 4, 21, 19),
        _m(2, 4, 21, 5),
        _m(4, 3, 21, 19),
    ]
    default = compute_standings(_teams(4), matches)
    custom = compute_standings(_teams(4), matches, tiebreakers=[TIEBREAK_POINT_DIFF, TIEBREAK_RANDOM])

    assert [e.team_id for e in default[:2]] == [1, 2]
    assert default[0].decided_by == TIEBREAK_HEAD_TO_HEAD
    assert [e.team_id for e in custom[:2]] == [2, 1]
    assert custom[0].decided_by == TIEBREAK_POINT_DIFF


def test_recompute_is_idempotent_and_order_independent():
    matches = [
        _m(1, 2, 21, 15),
        _m(2, 3, 21, 15),
        _m(3, 1, 21, 15),
        _m(4, 1, 21, 18),
        _m(4, 2, 10, 21),
        _m(3, 4, 21, 17),
    ]
    baseline = _table(compute_standings(_teams(4), matches, tie_breaker=SeededRandomTieBreak("t1:p1")))

    shuffled = list(matches)
    random.Random(7).shuffle(shuffled)
    teams = list(reversed(_teams(4)))

    assert _table(compute_standings(_teams(4), matches, tie_breaker=SeededRandomTieBreak("t1:p1"))) == baseline
    assert _table(compute_standings(teams, shuffled, tie_breaker=SeededRandomTieBreak("t1:p1"))) == baseline


def test_swapping_sides_does_not_change_standings():
    matches = [_m(1, 2, 21, 15), _m(2, 3, 21, 19), _m(3, 1, 21, 12)]
    swapped = [_m(m.team_b_id, m.team_a_id, m.score_b, m.score_a) for m in matches]

    assert _table(compute_standings(_teams(3), matches)) == _table(compute_standings(_teams(3), swapped))


@pytest.mark.parametrize("seed", ["a", "b", 42])
def test_seeded_random_is_reproducible(seed):
    ids = [5, 3, 9, 1]
    first = SeededRandomTieBreak(seed).order(ids)
    assert SeededRandomTieBreak(seed).order(list(reversed(ids))) == first
    assert sorted(first) == sorted(ids)
