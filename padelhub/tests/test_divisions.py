"""
Tests for division ranking, promotion/relegation, phase 0 seeding and the phase clock.
Pure functions: no database.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from padelhub.models import LeaguePlayer
from padelhub.services.divisions import (
    advance_phase_clock,
    compute_new_divisions,
    plan_phase_transition,
    rank_within_divisions,
    total_divisions,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _player(pid: str, division: int = 1, points: int = 0, matches_played: int = 0, offset: int = 0) -> LeaguePlayer:
    return LeaguePlayer(
        league_id="L1",
        player_id=pid,
        division=division,
        matches_played=matches_played,
        points=points,
        joined_at=T0 + timedelta(minutes=offset),
    )


def _two_full_divisions() -> list[LeaguePlayer]:
    """Division 1: a..d, division 2: e..h, points so that a and e lead, d and h trail."""
    return [
        _player("a", 1, 9), _player("b", 1, 6), _player("c", 1, 4), _player("d", 1, 1),
        _player("e", 2, 8), _player("f", 2, 5), _player("g", 2, 3), _player("h", 2, 0),
    ]


# ---------- rank_within_divisions ----------


def test_rank_within_divisions_orders_by_points():
    ranked = rank_within_divisions(_two_full_divisions(), {})
    by_id = {r.player_id: r for r in ranked}
    assert [by_id[p].rank for p in "abcd"] == [1, 2, 3, 4]
    assert [by_id[p].rank for p in "efgh"] == [1, 2, 3, 4]
    assert [(r.division, r.rank) for r in ranked] == sorted((r.division, r.rank) for r in ranked)


def test_rank_tie_broken_by_global_points():
    players = [_player("x", 1, 5), _player("y", 1, 5), _player("z", 1, 7)]
    ranked = rank_within_divisions(players, {"x": 10, "y": 200})
    assert [r.player_id for r in ranked] == ["z", "y", "x"]


def test_rank_full_tie_keeps_input_order():
    players = [_player("first", 1, 3, offset=0), _player("second", 1, 3, offset=1)]
    ranked = rank_within_divisions(players, {})
    assert [r.player_id for r in ranked] == ["first", "second"]


def test_total_divisions():
    assert total_divisions(8) == 2
    assert total_divisions(9) == 3
    assert total_divisions(4) == 1
    assert total_divisions(0) == 0


# ---------- steady state ----------


def test_steady_state_promotes_top_and_relegates_bottom():
    ranked = rank_within_divisions(_two_full_divisions(), {})
    new = compute_new_divisions(ranked, current_phase=1)
    assert new["e"] == 1  # top of division 2 goes up
    assert new["d"] == 2  # bottom of division 1 goes down
    for pid in "abc":
        assert new[pid] == 1
    for pid in "fgh":
        assert new[pid] == 2  # bottom division: nobody below


def test_steady_state_division_one_leader_stays():
    ranked = rank_within_divisions(_two_full_divisions(), {})
    new = compute_new_divisions(ranked, current_phase=3)
    assert new["a"] == 1


def test_steady_state_single_division_nobody_moves():
    players = [_player(p, 1, pts) for p, pts in zip("abcd", (9, 6, 3, 0))]
    new = compute_new_divisions(rank_within_divisions(players, {}), current_phase=2)
    assert set(new.values()) == {1}


def test_steady_state_short_last_division_not_relegated_into_nothing():
    """9 players: divisions 4/4/1. The lone player in division 3 is rank 1 and moves up."""
    players = _two_full_divisions() + [_player("i", 3, 2)]
    new = compute_new_divisions(rank_within_divisions(players, {}), current_phase=1)
    assert new["i"] == 2
    assert new["h"] == 3  # bottom of division 2, division 3 exists
    assert new["d"] == 2
    assert min(new.values()) >= 1
    assert max(new.values()) <= total_divisions(9)


def test_steady_state_small_division_bottom_is_not_relegated():
    """A division of 3 has no rank-4 player, so nobody is relegated from it."""
    players = [
        _player("a", 1, 9), _player("b", 1, 6), _player("c", 1, 3),
        _player("d", 2, 5), _player("e", 2, 4), _player("f", 2, 1), _player("g", 2, 0),
    ]
    new = compute_new_divisions(rank_within_divisions(players, {}), current_phase=1)
    assert new["c"] == 1
    assert new["d"] == 1


# ---------- phase 0 seeding ----------


def test_phase_zero_seeds_buckets_of_four():
    players = [_player(f"p{i}", 1, points=i) for i in range(10)]
    new = compute_new_divisions(rank_within_divisions(players, {}), current_phase=0)
    counts: dict[int, int] = {}
    for d in new.values():
        counts[d] = counts.get(d, 0) + 1
    assert counts == {1: 4, 2: 4, 3: 2}
    # Everyone starts in division 1, so the top 4 by points make division 1
    assert {pid for pid, d in new.items() if d == 1} == {"p9", "p8", "p7", "p6"}


def test_phase_zero_ignores_existing_divisions():
    """Ranks from every division interleave: all rank-1 players first, then rank 2, ..."""
    ranked = rank_within_divisions(_two_full_divisions(), {})
    new = compute_new_divisions(ranked, current_phase=0)
    # rank 1s: a(9), e(8); rank 2s: b(6), f(5) -> division 1
    assert {pid for pid, d in new.items() if d == 1} == {"a", "e", "b", "f"}
    assert {pid for pid, d in new.items() if d == 2} == {"c", "g", "d", "h"}


def test_phase_zero_uses_global_points_for_equal_rank_and_points():
    players = [_player(p, 1, 0) for p in "abcde"]
    gp = {"a": 1, "b": 2, "c": 3, "d": 4, "e": 5}
    new = compute_new_divisions(rank_within_divisions(players, gp), current_phase=0)
    assert new["a"] == 2
    assert all(new[p] == 1 for p in "bcde")


# ---------- phase clock ----------


def test_phase_clock_single_step_from_previous_boundary():
    ends = T0
    now = T0 + timedelta(hours=3)
    new_ends, jumps = advance_phase_clock(ends, now)
    assert new_ends == T0 + timedelta(days=14)
    assert jumps == 1


def test_phase_clock_catches_up_dormant_league():
    ends = T0
    now = T0 + timedelta(days=30)
    new_ends, jumps = advance_phase_clock(ends, now)
    assert jumps == 3
    assert new_ends == T0 + timedelta(days=42)
    assert new_ends > now


def test_phase_clock_boundary_equal_to_now_is_skipped():
    now = T0 + timedelta(days=14)
    new_ends, jumps = advance_phase_clock(T0, now)
    assert new_ends == T0 + timedelta(days=28)
    assert jumps == 2


@pytest.mark.parametrize("days_late", [0, 1, 13, 14, 15, 27, 28, 100])
def test_phase_clock_stays_on_grid_and_in_future(days_late):
    now = T0 + timedelta(days=days_late, seconds=1)
    new_ends, jumps = advance_phase_clock(T0, now, length_days=14)
    assert jumps >= 1
    assert new_ends == T0 + timedelta(days=14 * jumps)
    assert new_ends > now
    assert new_ends - timedelta(days=14) <= now


# ---------- full plan ----------


def test_plan_phase_transition_advances_by_jump_count():
    plan = plan_phase_transition(
        _two_full_divisions(), {}, current_phase=2, phase_ends_at=T0, now=T0 + timedelta(days=20),
    )
    assert plan.ended_phase == 2
    assert plan.phases_advanced == 2
    assert plan.new_phase == 4
    assert plan.new_phase_ends_at == T0 + timedelta(days=28)
    assert sorted(plan.moved_player_ids) == ["d", "e"]
