#!/usr/bin/env python3
"""
Vertical slice: Create league → Fill it → Play and confirm matches → Standings → Phase change.
Run from project root: python3 scripts/vertical_slice.py
"""
from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from padelhub.persistence import init_db, get_connection, ProfileRepository, LeagueRepository
from padelhub.persistence.db import set_db_path
from padelhub.services import LeagueService, MatchService

PLAYER_NAMES = ["Alba", "Bruno", "Carla", "Diego", "Elena", "Fabio", "Gala", "Hugo"]
SETS = [{"team1_score": 6, "team2_score": 3}, {"team1_score": 6, "team2_score": 4}]


def main() -> None:
    # Use data/vertical_slice.db for demo (distinct from app.db)
    db_path = PROJECT_ROOT / "data" / "vertical_slice.db"
    if db_path.exists():
        db_path.unlink()
    set_db_path(db_path)
    init_db(db_path=db_path)

    conn = get_connection()
    try:
        profile_repo = ProfileRepository()
        leagues = LeagueService()
        matches = MatchService()

        # 1. Players
        ids = []
        for name in PLAYER_NAMES:
            profile = profile_repo.create(conn, display_name=name, id=f"slice-{name.lower()}")
            ids.append(profile.id)
        print(f"Created {len(ids)} players")

        # 2. Divisions league, filled by invite code
        league = leagues.create_league(
            conn, ids[0], "Slice League", duration_weeks=4, max_matches_per_player=5,
            max_players=len(ids), format="divisions",
        )
        print(f"Created league {league.name} (code={league.invite_code})")
        for pid in ids[1:]:
            league = leagues.join_league(conn, pid, league.invite_code)
        print(f"League status: {league.status}, phase ends {league.phase_ends_at}")

        # 3. Two doubles matches, confirmed by the opposing team
        for team1, team2 in ((ids[0:2], ids[2:4]), (ids[4:6], ids[6:8])):
            players = [{"player_type": "user", "user_id": pid} for pid in team1 + team2]
            match = matches.submit_match(conn, team1[0], players, 1, SETS, league_id=league.id)
            result = matches.respond(conn, match.id, team2[0], "confirm")
            print(f"Match {match.id[:8]}: {result['match']['status']}")

        detail = leagues.get_league_detail(conn, league.id, ids[0])
        print("\nStandings:")
        print(json.dumps(detail["standings"], indent=2))

        # 4. Jump past the phase end and let the next read move players
        later = league.phase_ends_at + timedelta(minutes=1)
        detail = leagues.get_league_detail(conn, league.id, ids[0], now=later)
        league = LeagueRepository().get(conn, league.id)
        print(f"\nPhase now {league.current_phase}; divisions:")
        for row in detail["standings"]:
            print(f"  D{row['division']} #{row['rank']} {row['display_name']}")

        history = leagues.get_phase_history(conn, league.id, ids[0], 1)
        print(f"Phase 1 snapshot rows: {len(history['standings'])}")

        print(f"\nVertical slice complete at {datetime.now(timezone.utc).isoformat()}.")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
