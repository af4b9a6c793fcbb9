"""
Tests for league point attribution on confirmed matches:
quota, win/loss points, repeat-pair win in divisions format, guests, best-effort writes.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from padelhub.models import MatchParticipant
from padelhub.persistence.db import get_connection, init_db, set_db_path
from padelhub.persistence.repositories import (
    LeaguePlayerRepository,
    LeagueRepository,
    MatchRepository,
    ProfileRepository,
)
from padelhub.services.league_points import (
    FAILED,
    NOT_IN_LEAGUE,
    UPDATED,
    points_for_result,
    process_league_match_stats,
)

TEAM1 = "team-1"
TEAM2 = "team-2"


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "points_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


def _make_league(conn, format: str = "divisions", quota: int = 2, player_ids=("p1", "p2", "p3", "p4"), status="active"):
    profile_repo = ProfileRepository()
    for pid in player_ids:
        if profile_repo.get(conn, pid) is None:
            profile_repo.create(conn, display_name=pid.upper(), id=pid)
    league_repo = LeagueRepository()
    league = league_repo.create(
        conn, name="Points League", created_by=player_ids[0], invite_code=f"C{format[:3].upper()}{quota}",
        max_matches_per_player=quota, max_players=len(player_ids), duration_weeks=4, format=format,
    )
    now = datetime.now(timezone.utc)
    if status == "active":
        league_repo.activate(conn, league.id, now, now + timedelta(weeks=4), now + timedelta(days=14))
    player_repo = LeaguePlayerRepository()
    for pid in player_ids:
        player_repo.create(conn, league.id, pid)
    return league


def _participants(team1=("p1", "p2"), team2=("p3", "p4")) -> list[MatchParticipant]:
    return [MatchParticipant(match_id="", player_type="user", team=1, user_id=u) for u in team1] + [
        MatchParticipant(match_id="", player_type="user", team=2, user_id=u) for u in team2
    ]


def _confirmed_match(conn, league_id, participants, winner_team_id=TEAM1):
    """Persist a confirmed match the way the confirmation flow leaves it."""
    return MatchRepository().create(
        conn, team1_id=TEAM1, team2_id=TEAM2, winner_team_id=winner_team_id,
        score_team1=2, score_team2=0, created_by="p1", participants=participants,
        league_id=league_id, status="confirmed",
    )


def _play(conn, league_id, participants=None, winner_team_id=TEAM1):
    participants = participants or _participants()
    match = _confirmed_match(conn, league_id, participants, winner_team_id)
    outcomes = process_league_match_stats(
        conn, match.id, league_id, participants, winner_team_id, {"team1_id": TEAM1, "team2_id": TEAM2},
    )
    return {o.player_id: o for o in outcomes}


def _row(conn, league_id, pid):
    return LeaguePlayerRepository().get(conn, league_id, pid)


# ---------- points_for_result ----------


def test_points_for_result_table():
    assert points_for_result(True, True, "classic") == 3
    assert points_for_result(False, True, "classic") == 1
    assert points_for_result(True, True, "divisions") == 3
    assert points_for_result(True, True, "divisions", already_won_together=True) == 2
    assert points_for_result(True, True, "classic", already_won_together=True) == 3
    assert points_for_result(True, False, "divisions") == 0
    assert points_for_result(False, False, "classic") == 0


# ---------- process_league_match_stats ----------


def test_fixed_pair_repeat_wins_then_quota(db_conn):
    """Quota 2, same pair wins three times: +3, then +2, then +0 with matches_played 1, 2, 3."""
    league = _make_league(db_conn, format="divisions", quota=2)

    first = _play(db_conn, league.id)
    assert first["p1"].points_added == 3 and first["p2"].points_added == 3
    assert _row(db_conn, league.id, "p1").matches_played == 1

    second = _play(db_conn, league.id)
    assert second["p1"].points_added == 2 and second["p2"].points_added == 2
    assert _row(db_conn, league.id, "p2").matches_played == 2

    third = _play(db_conn, league.id)
    assert third["p1"].points_added == 0 and third["p2"].points_added == 0
    assert third["p1"].under_quota is False
    for pid in ("p1", "p2"):
        row = _row(db_conn, league.id, pid)
        assert row.matches_played == 3
        assert row.points == 5


def test_losers_get_one_point(db_conn):
    league = _make_league(db_conn, format="classic", quota=5)
    out = _play(db_conn, league.id)
    assert out["p3"].points_added == 1
    assert out["p4"].is_winner is False
    assert _row(db_conn, league.id, "p4").points == 1


def test_classic_repeat_pair_still_gets_three(db_conn):
    league = _make_league(db_conn, format="classic", quota=5)
    _play(db_conn, league.id)
    out = _play(db_conn, league.id)
    assert out["p1"].points_added == 3
    assert _row(db_conn, league.id, "p1").points == 6


def test_new_partner_gets_full_win(db_conn):
    """p1 won with p2 before; winning with p3 is a new pair."""
    league = _make_league(db_conn, format="divisions", quota=5)
    _play(db_conn, league.id)
    out = _play(db_conn, league.id, participants=_participants(("p1", "p3"), ("p2", "p4")))
    assert out["p1"].points_added == 3
    assert out["p3"].points_added == 3


def test_previous_loss_together_does_not_count(db_conn):
    league = _make_league(db_conn, format="divisions", quota=5)
    _play(db_conn, league.id, winner_team_id=TEAM2)  # p1+p2 lose
    out = _play(db_conn, league.id)
    assert out["p1"].points_added == 3


def test_team2_winner(db_conn):
    league = _make_league(db_conn, format="classic", quota=5)
    out = _play(db_conn, league.id, winner_team_id=TEAM2)
    assert out["p3"].is_winner and out["p3"].points_added == 3
    assert out["p1"].points_added == 1


def test_guests_are_skipped(db_conn):
    league = _make_league(db_conn, format="classic", quota=5)
    participants = [
        MatchParticipant(match_id="", player_type="user", team=1, user_id="p1"),
        MatchParticipant(match_id="", player_type="guest", team=1, guest_name="Guest A"),
        MatchParticipant(match_id="", player_type="user", team=2, user_id="p3"),
        MatchParticipant(match_id="", player_type="guest", team=2, guest_name="Guest B"),
    ]
    out = _play(db_conn, league.id, participants=participants)
    assert set(out) == {"p1", "p3"}
    assert out["p1"].points_added == 3


def test_player_outside_league_is_skipped_others_updated(db_conn):
    league = _make_league(db_conn, format="classic", quota=5, player_ids=("p1", "p2", "p3"))
    ProfileRepository().create(db_conn, display_name="Outsider", id="p4")
    out = _play(db_conn, league.id)
    assert out["p4"].status == NOT_IN_LEAGUE
    assert out["p3"].status == UPDATED
    assert _row(db_conn, league.id, "p3").matches_played == 1


def test_inactive_league_is_skipped(db_conn):
    league = _make_league(db_conn, status="pending")
    assert _play(db_conn, league.id) == {}
    assert _row(db_conn, league.id, "p1").matches_played == 0


def test_expired_league_is_skipped(db_conn):
    league = _make_league(db_conn, format="classic", quota=5)
    participants = _participants()
    match = _confirmed_match(db_conn, league.id, participants)
    later = datetime.now(timezone.utc) + timedelta(weeks=5)
    outcomes = process_league_match_stats(
        db_conn, match.id, league.id, participants, TEAM1, {"team1_id": TEAM1, "team2_id": TEAM2}, now=later,
    )
    assert outcomes == []


def test_unknown_league_is_skipped(db_conn):
    assert process_league_match_stats(
        db_conn, "m", "missing", _participants(), TEAM1, {"team1_id": TEAM1, "team2_id": TEAM2},
    ) == []


def test_version_conflict_gives_up_without_touching_row(db_conn, monkeypatch):
    """A row that keeps changing under us is reported failed; the others still update."""
    league = _make_league(db_conn, format="classic", quota=5)
    real_update = LeaguePlayerRepository.update_stats_if_version

    def always_stale_for_p1(self, conn, league_id, player_id, *args, **kwargs):
        if player_id == "p1":
            return False
        return real_update(self, conn, league_id, player_id, *args, **kwargs)

    monkeypatch.setattr(LeaguePlayerRepository, "update_stats_if_version", always_stale_for_p1)
    out = _play(db_conn, league.id)
    assert out["p1"].status == FAILED
    assert out["p2"].status == UPDATED
    assert _row(db_conn, league.id, "p1").matches_played == 0
    assert _row(db_conn, league.id, "p2").points == 3


def test_update_stats_if_version_rejects_stale_version(db_conn):
    league = _make_league(db_conn, format="classic", quota=5)
    repo = LeaguePlayerRepository()
    row = repo.get(db_conn, league.id, "p1")
    assert repo.update_stats_if_version(db_conn, league.id, "p1", row.version, 1, 3) is True
    assert repo.update_stats_if_version(db_conn, league.id, "p1", row.version, 1, 3) is False
    assert repo.get(db_conn, league.id, "p1").points == 3
