"""
Division ranking and reassignment for divisions-format leagues.

A phase ends every PHASE_LENGTH_DAYS. At the boundary, players are ranked inside their
division (points, then global_points), then moved:

- phase 0 (seeding): existing divisions are ignored; everyone is sorted by
  (rank, -points, -global_points) and cut into buckets of DIVISION_SIZE.
- later phases: rank 1 moves up one division (unless already in division 1); the
  last-ranked player of a full division moves down one (unless in the bottom division).

Pure functions only: no database, no clock. league_service persists the result.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from padelhub.models import LeaguePlayer


@dataclass
class RankedPlayer:
    """A league player with their in-division rank at the end of a phase."""
    player_id: str
    division: int
    rank: int
    points: int
    matches_played: int
    global_points: int


def rank_within_divisions(
    players: list[LeaguePlayer],
    global_points: dict[str, int],
) -> list[RankedPlayer]:
    """
    Group by division and rank 1..N inside each group by points desc, then global_points desc.
    Remaining ties keep input order (sort is stable). Result is ordered by (division, rank).
    """
    by_division: dict[int, list[LeaguePlayer]] = {}
    for p in players:
        by_division.setdefault(p.division, []).append(p)
    ranked: list[RankedPlayer] = []
    for division in sorted(by_division):
        group = sorted(
            by_division[division],
            key=lambda p: (-p.points, -global_points.get(p.player_id, 0)),
        )
        for i, p in enumerate(group):
            ranked.append(
                RankedPlayer(
                    player_id=p.player_id,
                    division=division,
                    rank=i + 1,
                    points=p.points,
                    matches_played=p.matches_played,
                    global_points=global_points.get(p.player_id, 0),
                )
            )
    return ranked


def total_divisions(player_count: int, division_size: int = 4) -> int:
    return math.ceil(player_count / division_size) if player_count > 0 else 0


def seed_divisions(ranked: list[RankedPlayer], division_size: int = 4) -> dict[str, int]:
    """Phase 0: ignore current divisions, bucket the global order into divisions of division_size."""
    ordered = sorted(ranked, key=lambda r: (r.rank, -r.points, -r.global_points))
    return {r.player_id: i // division_size + 1 for i, r in enumerate(ordered)}


def promote_relegate(ranked: list[RankedPlayer], division_size: int = 4) -> dict[str, int]:
    """Steady state: at most one promotion and one relegation per division."""
    n_divisions = total_divisions(len(ranked), division_size)
    group_sizes: dict[int, int] = {}
    for r in ranked:
        group_sizes[r.division] = group_sizes.get(r.division, 0) + 1
    new_divisions: dict[str, int] = {}
    for r in ranked:
        division = r.division
        if r.rank == 1 and r.division > 1:
            division -= 1
        elif r.rank >= division_size and r.rank == group_sizes[r.division] and r.division < n_divisions:
            division += 1
        new_divisions[r.player_id] = division
    return new_divisions


def compute_new_divisions(
    ranked: list[RankedPlayer],
    current_phase: int,
    division_size: int = 4,
) -> dict[str, int]:
    """player_id -> division for the next phase."""
    if current_phase == 0:
        return seed_divisions(ranked, division_size)
    return promote_relegate(ranked, division_size)


def advance_phase_clock(
    phase_ends_at: datetime,
    now: datetime,
    length_days: int = 14,
) -> tuple[datetime, int]:
    """
    Next boundary on the fixed calendar grid: phase_ends_at + k * length_days, with the
    smallest k >= 1 that lands strictly after now. Returns (new_phase_ends_at, k).
    """
    step = timedelta(days=length_days)
    new_ends_at = phase_ends_at + step
    jumps = 1
    while new_ends_at <= now:
        new_ends_at += step
        jumps += 1
    return new_ends_at, jumps


@dataclass
class PhaseTransitionPlan:
    """Everything a phase transition writes, computed before any write happens."""
    ended_phase: int
    new_phase: int
    new_phase_ends_at: datetime
    phases_advanced: int
    ranked: list[RankedPlayer]
    new_divisions: dict[str, int]

    @property
    def moved_player_ids(self) -> list[str]:
        return [r.player_id for r in self.ranked if self.new_divisions[r.player_id] != r.division]


def plan_phase_transition(
    players: list[LeaguePlayer],
    global_points: dict[str, int],
    current_phase: int,
    phase_ends_at: datetime,
    now: datetime,
    length_days: int = 14,
    division_size: int = 4,
) -> PhaseTransitionPlan:
    ranked = rank_within_divisions(players, global_points)
    new_divisions = compute_new_divisions(ranked, current_phase, division_size)
    new_ends_at, jumps = advance_phase_clock(phase_ends_at, now, length_days)
    return PhaseTransitionPlan(
        ended_phase=current_phase,
        new_phase=current_phase + jumps,
        new_phase_ends_at=new_ends_at,
        phases_advanced=jumps,
        ranked=ranked,
        new_divisions=new_divisions,
    )
