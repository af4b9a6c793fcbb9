"""
API integration tests.
Uses TestClient to avoid starting a server.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root on path
import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from padelhub.api import app
from padelhub.persistence.db import get_connection, init_db, set_db_path
from padelhub.persistence.repositories import LeaguePlayerRepository, ProfileRepository


@pytest.fixture(autouse=True)
def isolated_db(tmp_path):
    """Use a temporary DB for each test."""
    db_path = tmp_path / "test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    yield db_path


@pytest.fixture
def client():
    return TestClient(app)


def _signup(client, username: str) -> dict:
    resp = client.post("/api/signup", json={"username": username, "password": "secret123"})
    assert resp.status_code == 200
    data = resp.json()
    return {"id": data["user_id"], "headers": {"Authorization": f"Bearer {data['token']}"}}


@pytest.fixture
def users(client):
    return {name: _signup(client, name) for name in ("alice", "bob", "carol", "dave", "erin")}


def _active_league(client, users, format: str = "classic") -> str:
    resp = client.post(
        "/api/leagues",
        json={"name": "Winter League", "duration_weeks": 4, "max_matches_per_player": 5, "max_players": 4, "format": format},
        headers=users["alice"]["headers"],
    )
    assert resp.status_code == 201
    code = resp.json()["invite_code"]
    for name in ("bob", "carol", "dave"):
        r = client.post("/api/leagues/join", json={"invite_code": code}, headers=users[name]["headers"])
        assert r.status_code == 200
    return resp.json()["league"]["id"]


# ---------- auth ----------


def test_signup_and_login(client):
    _signup(client, "zoe")
    resp = client.post("/api/login", json={"username": "zoe", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["username"] == "zoe"
    bad = client.post("/api/login", json={"username": "zoe", "password": "wrong-password"})
    assert bad.status_code == 401
    dup = client.post("/api/signup", json={"username": "zoe", "password": "secret123"})
    assert dup.status_code == 400


def test_me_requires_token(client):
    assert client.get("/api/me").status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    user = _signup(client, "yann")
    assert client.get("/api/me", headers=user["headers"]).json()["username"] == "yann"


# ---------- leagues ----------


def test_create_league_validation_error(client, users):
    resp = client.post(
        "/api/leagues",
        json={"name": "Bad", "duration_weeks": 9, "max_matches_per_player": 5, "max_players": 4},
        headers=users["alice"]["headers"],
    )
    assert resp.status_code == 400
    assert "detail" in resp.json()


def test_league_detail_auth_membership_and_not_found(client, users):
    league_id = _active_league(client, users)
    assert client.get(f"/api/leagues/{league_id}").status_code == 401
    assert client.get(f"/api/leagues/{league_id}", headers=users["erin"]["headers"]).status_code == 403
    assert client.get("/api/leagues/does-not-exist", headers=users["alice"]["headers"]).status_code == 404

    resp = client.get(f"/api/leagues/{league_id}", headers=users["bob"]["headers"])
    assert resp.status_code == 200
    data = resp.json()
    assert data["league"]["status"] == "active"
    assert data["league"]["remaining_days"] == 28
    assert data["league"]["is_expired"] is False
    assert len(data["standings"]) == 4
    assert sum(1 for s in data["standings"] if s["is_current_user"]) == 1


def test_join_unknown_code_and_full_league(client, users):
    resp = client.post("/api/leagues/join", json={"invite_code": "NOPE42"}, headers=users["bob"]["headers"])
    assert resp.status_code == 404
    league_id = _active_league(client, users)
    code = client.get(f"/api/leagues/{league_id}", headers=users["alice"]["headers"]).json()["league"]["invite_code"]
    resp = client.post("/api/leagues/join", json={"invite_code": code}, headers=users["erin"]["headers"])
    assert resp.status_code == 400


def test_my_leagues(client, users):
    league_id = _active_league(client, users)
    resp = client.get("/api/leagues/mine", headers=users["alice"]["headers"])
    assert resp.status_code == 200
    leagues = resp.json()["leagues"]
    assert [l["id"] for l in leagues] == [league_id]
    assert leagues[0]["is_creator"] is True


def test_history_requires_phase(client, users):
    league_id = _active_league(client, users, format="divisions")
    resp = client.get(f"/api/leagues/{league_id}/history", headers=users["alice"]["headers"])
    assert resp.status_code == 400
    resp = client.get(f"/api/leagues/{league_id}/history?phase=0", headers=users["alice"]["headers"])
    assert resp.status_code == 200
    assert resp.json()["standings"] == []
    assert resp.json()["available_phases"] == []
    resp = client.get(f"/api/leagues/{league_id}/history?phase=0", headers=users["erin"]["headers"])
    assert resp.status_code == 403


# ---------- matches ----------


def _doubles(users, league_id=None):
    body = {
        "players": [{"player_type": "user", "user_id": users[n]["id"]} for n in ("alice", "bob", "carol", "dave")],
        "winner": 1,
        "sets": [{"team1_score": 6, "team2_score": 3}, {"team1_score": 6, "team2_score": 4}],
    }
    if league_id:
        body["league_id"] = league_id
    return body


def test_league_match_confirmation_awards_points(client, users):
    league_id = _active_league(client, users)
    resp = client.post("/api/matches", json=_doubles(users, league_id), headers=users["alice"]["headers"])
    assert resp.status_code == 201
    match = resp.json()["match"]
    assert match["status"] == "pending"
    assert match["score_team1"] == 2 and match["score_team2"] == 0
    assert match["winner_team_id"] == match["team1_id"]

    pending = client.get("/api/matches/pending", headers=users["carol"]["headers"]).json()["matches"]
    assert [m["id"] for m in pending] == [match["id"]]

    # not a participant
    resp = client.post(f"/api/matches/{match['id']}/confirm", json={"action": "confirm"}, headers=users["erin"]["headers"])
    assert resp.status_code == 403

    resp = client.post(f"/api/matches/{match['id']}/confirm", json={"action": "confirm"}, headers=users["carol"]["headers"])
    assert resp.status_code == 200
    data = resp.json()
    assert data["match"]["status"] == "confirmed"
    points = {o["player_id"]: o["points_added"] for o in data["league_points"]}
    assert points == {users["alice"]["id"]: 3, users["bob"]["id"]: 3, users["carol"]["id"]: 1, users["dave"]["id"]: 1}

    standings = client.get(f"/api/leagues/{league_id}", headers=users["alice"]["headers"]).json()["standings"]
    assert standings[0]["points"] == 3
    assert all(s["matches_played"] == 1 for s in standings)

    with get_connection() as conn:
        profiles = ProfileRepository().get_many(conn, [u["id"] for u in users.values()])
    assert profiles[users["alice"]["id"]].global_points == 10
    assert profiles[users["dave"]["id"]].global_points == 3
    assert profiles[users["erin"]["id"]].global_points == 0


def test_rejected_match_awards_nothing(client, users):
    league_id = _active_league(client, users)
    match = client.post("/api/matches", json=_doubles(users, league_id), headers=users["alice"]["headers"]).json()["match"]
    resp = client.post(f"/api/matches/{match['id']}/confirm", json={"action": "reject"}, headers=users["dave"]["headers"])
    assert resp.status_code == 200
    assert resp.json()["match"]["status"] == "rejected"
    with get_connection() as conn:
        assert LeaguePlayerRepository().get(conn, league_id, users["alice"]["id"]).matches_played == 0
    again = client.post(f"/api/matches/{match['id']}/confirm", json={"action": "confirm"}, headers=users["bob"]["headers"])
    assert again.status_code == 400


def test_submit_match_validation(client, users):
    body = _doubles(users)
    body["sets"] = body["sets"][:1]
    assert client.post("/api/matches", json=body, headers=users["alice"]["headers"]).status_code == 400
    assert client.post("/api/matches", json=_doubles(users), headers=users["erin"]["headers"]).status_code == 403
    body = _doubles(users, league_id="missing-league")
    assert client.post("/api/matches", json=body, headers=users["alice"]["headers"]).status_code == 404


def test_friendly_match_against_guest_confirms_immediately(client, users):
    body = {
        "players": [
            {"player_type": "user", "user_id": users["alice"]["id"]},
            {"player_type": "guest", "guest_name": "Visitor"},
        ],
        "winner": 2,
        "sets": [{"team1_score": 3, "team2_score": 6}, {"team1_score": 4, "team2_score": 6}],
    }
    resp = client.post("/api/matches", json=body, headers=users["alice"]["headers"])
    assert resp.status_code == 201
    assert resp.json()["match"]["status"] == "confirmed"
    me = client.get("/api/me", headers=users["alice"]["headers"]).json()
    assert me["global_points"] == 3


# ---------- tournaments ----------

LAST_ROUND = [
    ("principal", "final", 1),
    ("principal", "third_place", 2),
    ("places_5_8", "classification", 1),
    ("places_5_8", "classification", 2),
    ("places_9_12", "classification", 1),
    ("places_9_12", "classification", 2),
    ("places_13_16", "classification", 1),
    ("places_13_16", "classification", 2),
]


def _tournament_with_pairs(client, admin, n=16):
    club = client.post("/api/clubs", json={"name": "Padel Club"}, headers=admin["headers"]).json()["club"]
    tournament = client.post(
        "/api/tournaments", json={"club_id": club["id"], "name": "TMC"}, headers=admin["headers"],
    ).json()["tournament"]
    regs = []
    for i in range(n):
        r = client.post(
            f"/api/tournaments/{tournament['id']}/registrations",
            json={"player1_id": f"p{i}a", "player2_id": f"p{i}b"},
            headers=admin["headers"],
        )
        assert r.status_code == 201
        regs.append(r.json()["registration"]["id"])
    return tournament["id"], regs


def test_calculate_final_ranking_endpoint(client, users):
    admin = users["alice"]
    tid, regs = _tournament_with_pairs(client, admin)
    url = f"/api/tournaments/{tid}/calculate-final-ranking"

    assert client.post(url).status_code == 401
    assert client.post(url, headers=users["bob"]["headers"]).status_code == 403
    assert client.post("/api/tournaments/missing/calculate-final-ranking", headers=admin["headers"]).status_code == 404

    for k, (tableau, round_type, order) in enumerate(LAST_ROUND):
        winner = regs[2 * k] if k != 7 else None
        r = client.post(
            f"/api/tournaments/{tid}/matches",
            json={
                "round_number": 4, "round_type": round_type, "tableau": tableau, "match_order": order,
                "team1_registration_id": regs[2 * k], "team2_registration_id": regs[2 * k + 1],
                "winner_registration_id": winner,
            },
            headers=admin["headers"],
        )
        assert r.status_code == 201

    # last 13-16 match has no winner yet
    resp = client.post(url, headers=admin["headers"])
    assert resp.status_code == 400
    assert "1 match(es) remaining" in resp.json()["detail"]


def test_calculate_final_ranking_complete_bracket(client, users):
    admin = users["alice"]
    tid, regs = _tournament_with_pairs(client, admin)
    for k, (tableau, round_type, order) in enumerate(LAST_ROUND):
        client.post(
            f"/api/tournaments/{tid}/matches",
            json={
                "round_number": 4, "round_type": round_type, "tableau": tableau, "match_order": order,
                "team1_registration_id": regs[2 * k], "team2_registration_id": regs[2 * k + 1],
                "winner_registration_id": regs[2 * k + 1] if k == 0 else regs[2 * k],
            },
            headers=admin["headers"],
        )
    resp = client.post(f"/api/tournaments/{tid}/calculate-final-ranking", headers=admin["headers"])
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["rankings"][regs[1]] == 1
    assert data["rankings"][regs[0]] == 2
    assert data["rankings"][regs[2]] == 3
    assert data["rankings"][regs[3]] == 4
    assert sorted(data["rankings"].values()) == list(range(1, 17))

    public = client.get(f"/api/tournaments/{tid}/final-rankings").json()["rankings"]
    assert [r["id"] for r in public[:2]] == [regs[1], regs[0]]


def test_record_tournament_match_validation(client, users):
    admin = users["alice"]
    tid, regs = _tournament_with_pairs(client, admin, n=2)
    bad_tableau = client.post(
        f"/api/tournaments/{tid}/matches",
        json={"round_number": 4, "round_type": "final", "tableau": "consolante", "team1_registration_id": regs[0],
              "team2_registration_id": regs[1]},
        headers=admin["headers"],
    )
    assert bad_tableau.status_code == 400
    bad_winner = client.post(
        f"/api/tournaments/{tid}/matches",
        json={"round_number": 4, "round_type": "final", "tableau": "principal", "team1_registration_id": regs[0],
              "team2_registration_id": regs[1], "winner_registration_id": "someone-else"},
        headers=admin["headers"],
    )
    assert bad_winner.status_code == 400
    not_admin = client.post(
        f"/api/tournaments/{tid}/registrations", json={"player1_id": "x"}, headers=users["bob"]["headers"],
    )
    assert not_admin.status_code == 403
