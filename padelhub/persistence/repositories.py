"""
Repository interfaces for club, league, match and tournament data.
No business logic, only read/write operations.

Write methods commit by default. Pass commit=False to group several writes in one
transaction; the caller then owns conn.commit() / conn.rollback().
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable

from padelhub.models import (
    Club,
    League,
    LeaguePhaseHistory,
    LeaguePlayer,
    Match,
    MatchConfirmation,
    MatchParticipant,
    Profile,
    Tournament,
    TournamentMatch,
    TournamentRegistration,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_optional(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


# ---------- ProfileRepository ----------


class ProfileRepository:
    """CRUD for profiles. username, password_hash for auth; global_points for the leaderboard."""

    _COLS = "id, username, password_hash, display_name, first_name, last_name, club_id, global_points, created_at"

    def _row_to_profile(self, r: sqlite3.Row) -> Profile:
        return Profile(
            id=r["id"],
            created_at=_parse_datetime(r["created_at"]),
            username=r["username"],
            password_hash=r["password_hash"],
            display_name=r["display_name"],
            first_name=r["first_name"],
            last_name=r["last_name"],
            club_id=r["club_id"],
            global_points=r["global_points"] or 0,
        )

    def create(
        self,
        conn: sqlite3.Connection,
        display_name: str | None = None,
        id: str | None = None,
        username: str | None = None,
        password_hash: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        club_id: str | None = None,
        global_points: int = 0,
    ) -> Profile:
        pid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            f"INSERT INTO profiles ({self._COLS}) VALUES ({_placeholders(9)})",
            (pid, username, password_hash, display_name, first_name, last_name, club_id, global_points, now.isoformat()),
        )
        conn.commit()
        return Profile(
            id=pid, created_at=now, username=username, password_hash=password_hash,
            display_name=display_name, first_name=first_name, last_name=last_name,
            club_id=club_id, global_points=global_points,
        )

    def get(self, conn: sqlite3.Connection, profile_id: str) -> Profile | None:
        row = conn.execute(f"SELECT {self._COLS} FROM profiles WHERE id = ?", (profile_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> Profile | None:
        row = conn.execute(f"SELECT {self._COLS} FROM profiles WHERE username = ?", (username,)).fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def get_many(self, conn: sqlite3.Connection, profile_ids: Iterable[str]) -> dict[str, Profile]:
        """Profiles keyed by id. Unknown ids are absent from the result."""
        ids = list(dict.fromkeys(profile_ids))
        if not ids:
            return {}
        rows = conn.execute(
            f"SELECT {self._COLS} FROM profiles WHERE id IN ({_placeholders(len(ids))})",
            ids,
        ).fetchall()
        return {r["id"]: self._row_to_profile(r) for r in rows}

    def get_global_points(self, conn: sqlite3.Connection, profile_ids: Iterable[str]) -> dict[str, int]:
        """global_points per id; unknown ids map to 0."""
        ids = list(profile_ids)
        found = self.get_many(conn, ids)
        return {pid: (found[pid].global_points if pid in found else 0) for pid in ids}

    def add_global_points(self, conn: sqlite3.Connection, profile_id: str, delta: int) -> None:
        conn.execute(
            "UPDATE profiles SET global_points = global_points + ? WHERE id = ?",
            (delta, profile_id),
        )
        conn.commit()

    def update_club(self, conn: sqlite3.Connection, profile_id: str, club_id: str | None) -> None:
        conn.execute("UPDATE profiles SET club_id = ? WHERE id = ?", (club_id, profile_id))
        conn.commit()


# ---------- ClubRepository ----------


class ClubRepository:
    """CRUD for clubs and club_admins."""

    def create(self, conn: sqlite3.Connection, name: str, id: str | None = None) -> Club:
        cid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO clubs (id, name, created_at) VALUES (?, ?, ?)",
            (cid, name, now.isoformat()),
        )
        conn.commit()
        return Club(id=cid, name=name, created_at=now)

    def get(self, conn: sqlite3.Connection, club_id: str) -> Club | None:
        row = conn.execute("SELECT id, name, created_at FROM clubs WHERE id = ?", (club_id,)).fetchone()
        if row is None:
            return None
        return Club(id=row["id"], name=row["name"], created_at=_parse_datetime(row["created_at"]))

    def add_admin(self, conn: sqlite3.Connection, club_id: str, user_id: str) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO club_admins (club_id, user_id, created_at) VALUES (?, ?, ?)",
            (club_id, user_id, _now().isoformat()),
        )
        conn.commit()

    def is_admin(self, conn: sqlite3.Connection, club_id: str, user_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM club_admins WHERE club_id = ? AND user_id = ?",
            (club_id, user_id),
        ).fetchone()
        return row is not None


# ---------- LeagueRepository ----------


class LeagueRepository:
    """CRUD for leagues. No business logic."""

    _COLS = (
        "id, name, created_by, invite_code, status, format, max_matches_per_player, max_players, "
        "duration_weeks, starts_at, ends_at, current_phase, phase_ends_at, version, created_at"
    )

    def _row_to_league(self, r: sqlite3.Row) -> League:
        return League(
            id=r["id"],
            name=r["name"],
            created_by=r["created_by"],
            invite_code=r["invite_code"],
            status=r["status"],
            format=r["format"],
            max_matches_per_player=r["max_matches_per_player"],
            max_players=r["max_players"],
            duration_weeks=r["duration_weeks"],
            created_at=_parse_datetime(r["created_at"]),
            starts_at=_parse_optional(r["starts_at"]),
            ends_at=_parse_optional(r["ends_at"]),
            current_phase=r["current_phase"],
            phase_ends_at=_parse_optional(r["phase_ends_at"]),
            version=r["version"],
        )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        created_by: str,
        invite_code: str,
        max_matches_per_player: int,
        max_players: int,
        duration_weeks: int,
        format: str = "classic",
        status: str = "pending",
        id: str | None = None,
    ) -> League:
        lid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO leagues (id, name, created_by, invite_code, status, format, max_matches_per_player, "
            "max_players, duration_weeks, current_phase, version, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?)",
            (lid, name, created_by, invite_code, status, format, max_matches_per_player,
             max_players, duration_weeks, now.isoformat()),
        )
        conn.commit()
        return League(
            id=lid, name=name, created_by=created_by, invite_code=invite_code, status=status,
            format=format, max_matches_per_player=max_matches_per_player, max_players=max_players,
            duration_weeks=duration_weeks, created_at=now,
        )

    def get(self, conn: sqlite3.Connection, league_id: str) -> League | None:
        row = conn.execute(f"SELECT {self._COLS} FROM leagues WHERE id = ?", (league_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_league(row)

    def get_by_invite_code(self, conn: sqlite3.Connection, invite_code: str) -> League | None:
        row = conn.execute(f"SELECT {self._COLS} FROM leagues WHERE invite_code = ?", (invite_code,)).fetchone()
        if row is None:
            return None
        return self._row_to_league(row)

    def list_by_ids(self, conn: sqlite3.Connection, league_ids: list[str]) -> list[League]:
        """Leagues for the given ids, newest first."""
        if not league_ids:
            return []
        rows = conn.execute(
            f"SELECT {self._COLS} FROM leagues WHERE id IN ({_placeholders(len(league_ids))}) ORDER BY created_at DESC",
            league_ids,
        ).fetchall()
        return [self._row_to_league(r) for r in rows]

    def update_status(self, conn: sqlite3.Connection, league_id: str, status: str) -> None:
        conn.execute("UPDATE leagues SET status = ? WHERE id = ?", (status, league_id))
        conn.commit()

    def complete_if_active(self, conn: sqlite3.Connection, league_id: str) -> bool:
        """active -> completed. False when another request already completed the league."""
        cur = conn.execute(
            "UPDATE leagues SET status = 'completed' WHERE id = ? AND status = 'active'",
            (league_id,),
        )
        conn.commit()
        return cur.rowcount == 1

    def activate(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        starts_at: datetime,
        ends_at: datetime,
        phase_ends_at: datetime | None,
    ) -> None:
        """pending -> active: set the calendar. phase_ends_at only for divisions leagues."""
        conn.execute(
            "UPDATE leagues SET status = 'active', starts_at = ?, ends_at = ?, current_phase = 0, "
            "phase_ends_at = ? WHERE id = ?",
            (starts_at.isoformat(), ends_at.isoformat(), _iso(phase_ends_at), league_id),
        )
        conn.commit()

    def advance_phase_if_version(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        expected_version: int,
        current_phase: int,
        phase_ends_at: datetime,
        commit: bool = True,
    ) -> bool:
        """
        Conditional phase advance. Returns False (nothing written) when the row's version
        no longer matches, i.e. another request already advanced this league.
        """
        cur = conn.execute(
            "UPDATE leagues SET current_phase = ?, phase_ends_at = ?, version = version + 1 "
            "WHERE id = ? AND version = ?",
            (current_phase, phase_ends_at.isoformat(), league_id, expected_version),
        )
        if commit:
            conn.commit()
        return cur.rowcount == 1

    def invite_code_exists(self, conn: sqlite3.Connection, invite_code: str) -> bool:
        row = conn.execute("SELECT 1 FROM leagues WHERE invite_code = ?", (invite_code,)).fetchone()
        return row is not None


# ---------- LeaguePlayerRepository ----------


class LeaguePlayerRepository:
    """CRUD for league_players. version guards concurrent point updates."""

    _COLS = "league_id, player_id, division, matches_played, points, version, joined_at"

    def _row_to_player(self, r: sqlite3.Row) -> LeaguePlayer:
        return LeaguePlayer(
            league_id=r["league_id"],
            player_id=r["player_id"],
            division=r["division"],
            matches_played=r["matches_played"] or 0,
            points=r["points"] or 0,
            joined_at=_parse_datetime(r["joined_at"]),
            version=r["version"],
        )

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        player_id: str,
        division: int = 1,
    ) -> LeaguePlayer:
        now = _now()
        conn.execute(
            f"INSERT INTO league_players ({self._COLS}) VALUES (?, ?, ?, 0, 0, 0, ?)",
            (league_id, player_id, division, now.isoformat()),
        )
        conn.commit()
        return LeaguePlayer(
            league_id=league_id, player_id=player_id, division=division,
            matches_played=0, points=0, joined_at=now,
        )

    def get(self, conn: sqlite3.Connection, league_id: str, player_id: str) -> LeaguePlayer | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM league_players WHERE league_id = ? AND player_id = ?",
            (league_id, player_id),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_player(row)

    def list_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[LeaguePlayer]:
        """All players of a league in join order."""
        rows = conn.execute(
            f"SELECT {self._COLS} FROM league_players WHERE league_id = ? ORDER BY joined_at, player_id",
            (league_id,),
        ).fetchall()
        return [self._row_to_player(r) for r in rows]

    def count_by_league(self, conn: sqlite3.Connection, league_id: str) -> int:
        row = conn.execute("SELECT COUNT(*) AS n FROM league_players WHERE league_id = ?", (league_id,)).fetchone()
        return row["n"]

    def list_league_ids_by_player(self, conn: sqlite3.Connection, player_id: str) -> list[str]:
        rows = conn.execute("SELECT league_id FROM league_players WHERE player_id = ?", (player_id,)).fetchall()
        return [r["league_id"] for r in rows]

    def update_stats_if_version(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        player_id: str,
        expected_version: int,
        matches_played: int,
        points: int,
    ) -> bool:
        """Write matches_played/points only if nobody else wrote the row since it was read."""
        cur = conn.execute(
            "UPDATE league_players SET matches_played = ?, points = ?, version = version + 1 "
            "WHERE league_id = ? AND player_id = ? AND version = ?",
            (matches_played, points, league_id, player_id, expected_version),
        )
        conn.commit()
        return cur.rowcount == 1

    def reset_for_new_phase(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        new_divisions: dict[str, int],
        commit: bool = True,
    ) -> None:
        """Set each player's new division and zero their phase counters."""
        conn.executemany(
            "UPDATE league_players SET division = ?, matches_played = 0, points = 0, version = version + 1 "
            "WHERE league_id = ? AND player_id = ?",
            [(division, league_id, pid) for pid, division in new_divisions.items()],
        )
        if commit:
            conn.commit()


# ---------- LeaguePhaseHistoryRepository ----------


class LeaguePhaseHistoryRepository:
    """Append-only phase snapshots. Rows are never updated."""

    def append_many(
        self,
        conn: sqlite3.Connection,
        rows: list[LeaguePhaseHistory],
        commit: bool = True,
    ) -> None:
        now = _now().isoformat()
        conn.executemany(
            "INSERT INTO league_phase_history (league_id, phase_number, player_id, division, rank, "
            "matches_played, points, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (h.league_id, h.phase_number, h.player_id, h.division, h.rank, h.matches_played, h.points, now)
                for h in rows
            ],
        )
        if commit:
            conn.commit()

    def list_for_phase(self, conn: sqlite3.Connection, league_id: str, phase_number: int) -> list[LeaguePhaseHistory]:
        rows = conn.execute(
            "SELECT league_id, phase_number, player_id, division, rank, matches_played, points, created_at "
            "FROM league_phase_history WHERE league_id = ? AND phase_number = ? ORDER BY division, rank",
            (league_id, phase_number),
        ).fetchall()
        return [
            LeaguePhaseHistory(
                league_id=r["league_id"],
                phase_number=r["phase_number"],
                player_id=r["player_id"],
                division=r["division"],
                rank=r["rank"],
                matches_played=r["matches_played"],
                points=r["points"],
                created_at=_parse_datetime(r["created_at"]),
            )
            for r in rows
        ]

    def list_phase_numbers(self, conn: sqlite3.Connection, league_id: str) -> list[int]:
        rows = conn.execute(
            "SELECT DISTINCT phase_number FROM league_phase_history WHERE league_id = ? ORDER BY phase_number",
            (league_id,),
        ).fetchall()
        return [r["phase_number"] for r in rows]


# ---------- MatchRepository ----------


class MatchRepository:
    """CRUD for matches, match_participants and match_confirmations."""

    _COLS = (
        "id, team1_id, team2_id, winner_team_id, score_team1, score_team2, league_id, status, "
        "created_by, played_at, confirmed_at"
    )

    def _row_to_match(self, r: sqlite3.Row) -> Match:
        return Match(
            id=r["id"],
            team1_id=r["team1_id"],
            team2_id=r["team2_id"],
            winner_team_id=r["winner_team_id"],
            score_team1=r["score_team1"],
            score_team2=r["score_team2"],
            status=r["status"],
            created_by=r["created_by"],
            played_at=_parse_datetime(r["played_at"]),
            league_id=r["league_id"],
            confirmed_at=_parse_optional(r["confirmed_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        team1_id: str,
        team2_id: str,
        winner_team_id: str,
        score_team1: int,
        score_team2: int,
        created_by: str,
        participants: list[MatchParticipant],
        league_id: str | None = None,
        status: str = "pending",
        played_at: datetime | None = None,
        id: str | None = None,
    ) -> Match:
        """Insert the match and its participants in one transaction."""
        mid = id or str(uuid.uuid4())
        played = played_at or _now()
        conn.execute(
            f"INSERT INTO matches ({self._COLS}) VALUES ({_placeholders(11)})",
            (mid, team1_id, team2_id, winner_team_id, score_team1, score_team2, league_id, status,
             created_by, played.isoformat(), None),
        )
        conn.executemany(
            "INSERT INTO match_participants (match_id, player_type, user_id, guest_name, team) VALUES (?, ?, ?, ?, ?)",
            [(mid, p.player_type, p.user_id, p.guest_name, p.team) for p in participants],
        )
        conn.commit()
        return Match(
            id=mid, team1_id=team1_id, team2_id=team2_id, winner_team_id=winner_team_id,
            score_team1=score_team1, score_team2=score_team2, status=status,
            created_by=created_by, played_at=played, league_id=league_id,
        )

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute(f"SELECT {self._COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_match(row)

    def get_participants(self, conn: sqlite3.Connection, match_id: str) -> list[MatchParticipant]:
        rows = conn.execute(
            "SELECT match_id, player_type, user_id, guest_name, team FROM match_participants "
            "WHERE match_id = ? ORDER BY team, rowid",
            (match_id,),
        ).fetchall()
        return [
            MatchParticipant(
                match_id=r["match_id"], player_type=r["player_type"], team=r["team"],
                user_id=r["user_id"], guest_name=r["guest_name"],
            )
            for r in rows
        ]

    def update_status_if_pending(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        status: str,
        confirmed_at: datetime | None = None,
    ) -> bool:
        """
        Move a pending match to status. False when the match already left pending,
        so only one request ever confirms or rejects a given match.
        """
        cur = conn.execute(
            "UPDATE matches SET status = ?, confirmed_at = ? WHERE id = ? AND status = 'pending'",
            (status, _iso(confirmed_at), match_id),
        )
        conn.commit()
        return cur.rowcount == 1

    def has_won_together(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        player_id: str,
        partner_id: str,
        exclude_match_id: str | None = None,
    ) -> bool:
        """
        True if player and partner were teammates in a confirmed match of this league
        that their team won. exclude_match_id leaves out the match being scored.
        """
        row = conn.execute(
            """SELECT 1
               FROM matches m
               JOIN match_participants a ON a.match_id = m.id AND a.user_id = ?
               JOIN match_participants b ON b.match_id = m.id AND b.user_id = ? AND b.team = a.team
               WHERE m.league_id = ?
                 AND m.status = 'confirmed'
                 AND m.id != ?
                 AND m.winner_team_id = CASE a.team WHEN 1 THEN m.team1_id ELSE m.team2_id END
               LIMIT 1""",
            (player_id, partner_id, league_id, exclude_match_id or ""),
        ).fetchone()
        return row is not None

    # ---- confirmations ----

    def create_confirmations(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        user_ids: list[str],
        confirmed_user_id: str | None = None,
    ) -> None:
        """One confirmation row per user; confirmed_user_id (the submitter) is pre-confirmed."""
        now = _now().isoformat()
        conn.executemany(
            "INSERT INTO match_confirmations (match_id, user_id, confirmed, confirmed_at) VALUES (?, ?, ?, ?)",
            [
                (match_id, uid, 1 if uid == confirmed_user_id else 0, now if uid == confirmed_user_id else None)
                for uid in user_ids
            ],
        )
        conn.commit()

    def get_confirmation(self, conn: sqlite3.Connection, match_id: str, user_id: str) -> MatchConfirmation | None:
        row = conn.execute(
            "SELECT match_id, user_id, confirmed, confirmed_at FROM match_confirmations WHERE match_id = ? AND user_id = ?",
            (match_id, user_id),
        ).fetchone()
        if row is None:
            return None
        return MatchConfirmation(
            match_id=row["match_id"], user_id=row["user_id"], confirmed=bool(row["confirmed"]),
            confirmed_at=_parse_optional(row["confirmed_at"]),
        )

    def confirm(self, conn: sqlite3.Connection, match_id: str, user_id: str) -> None:
        conn.execute(
            "UPDATE match_confirmations SET confirmed = 1, confirmed_at = ? WHERE match_id = ? AND user_id = ?",
            (_now().isoformat(), match_id, user_id),
        )
        conn.commit()

    def count_confirmed(self, conn: sqlite3.Connection, match_id: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM match_confirmations WHERE match_id = ? AND confirmed = 1",
            (match_id,),
        ).fetchone()
        return row["n"]

    def list_pending_for_user(self, conn: sqlite3.Connection, user_id: str) -> list[Match]:
        """Pending matches still waiting on this user's confirmation."""
        rows = conn.execute(
            f"""SELECT {", ".join("m." + c.strip() for c in self._COLS.split(","))}
                FROM matches m
                JOIN match_confirmations c ON c.match_id = m.id
                WHERE c.user_id = ? AND c.confirmed = 0 AND m.status = 'pending'
                ORDER BY m.played_at DESC""",
            (user_id,),
        ).fetchall()
        return [self._row_to_match(r) for r in rows]


# ---------- TournamentRepository ----------


class TournamentRepository:
    """CRUD for tournaments, registrations and bracket matches."""

    def create(
        self,
        conn: sqlite3.Connection,
        club_id: str,
        name: str,
        tournament_type: str = "tmc",
        id: str | None = None,
    ) -> Tournament:
        tid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO tournaments (id, club_id, name, tournament_type, status, created_at) VALUES (?, ?, ?, ?, 'open', ?)",
            (tid, club_id, name, tournament_type, now.isoformat()),
        )
        conn.commit()
        return Tournament(
            id=tid, club_id=club_id, name=name, tournament_type=tournament_type,
            status="open", created_at=now,
        )

    def get(self, conn: sqlite3.Connection, tournament_id: str) -> Tournament | None:
        row = conn.execute(
            "SELECT id, club_id, name, tournament_type, status, created_at FROM tournaments WHERE id = ?",
            (tournament_id,),
        ).fetchone()
        if row is None:
            return None
        return Tournament(
            id=row["id"], club_id=row["club_id"], name=row["name"],
            tournament_type=row["tournament_type"], status=row["status"],
            created_at=_parse_datetime(row["created_at"]),
        )

    # ---- registrations ----

    def create_registration(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        player1_id: str,
        player2_id: str | None = None,
        id: str | None = None,
    ) -> TournamentRegistration:
        rid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO tournament_registrations (id, tournament_id, player1_id, player2_id, final_ranking, created_at) "
            "VALUES (?, ?, ?, ?, NULL, ?)",
            (rid, tournament_id, player1_id, player2_id, _now().isoformat()),
        )
        conn.commit()
        return TournamentRegistration(id=rid, tournament_id=tournament_id, player1_id=player1_id, player2_id=player2_id)

    def list_registrations(self, conn: sqlite3.Connection, tournament_id: str) -> list[TournamentRegistration]:
        rows = conn.execute(
            "SELECT id, tournament_id, player1_id, player2_id, final_ranking FROM tournament_registrations "
            "WHERE tournament_id = ? ORDER BY created_at, id",
            (tournament_id,),
        ).fetchall()
        return [
            TournamentRegistration(
                id=r["id"], tournament_id=r["tournament_id"], player1_id=r["player1_id"],
                player2_id=r["player2_id"], final_ranking=r["final_ranking"],
            )
            for r in rows
        ]

    def update_final_ranking(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        registration_id: str,
        rank: int,
    ) -> bool:
        """Returns False when no registration of this tournament has that id."""
        cur = conn.execute(
            "UPDATE tournament_registrations SET final_ranking = ? WHERE id = ? AND tournament_id = ?",
            (rank, registration_id, tournament_id),
        )
        conn.commit()
        return cur.rowcount == 1

    # ---- bracket matches ----

    _MATCH_COLS = (
        "id, tournament_id, round_number, round_type, tableau, match_order, "
        "team1_registration_id, team2_registration_id, winner_registration_id, status"
    )

    def _row_to_match(self, r: sqlite3.Row) -> TournamentMatch:
        return TournamentMatch(
            id=r["id"],
            tournament_id=r["tournament_id"],
            round_number=r["round_number"],
            round_type=r["round_type"],
            tableau=r["tableau"],
            match_order=r["match_order"],
            status=r["status"],
            team1_registration_id=r["team1_registration_id"],
            team2_registration_id=r["team2_registration_id"],
            winner_registration_id=r["winner_registration_id"],
        )

    def create_match(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        round_number: int,
        round_type: str,
        tableau: str,
        match_order: int,
        team1_registration_id: str | None,
        team2_registration_id: str | None,
        winner_registration_id: str | None = None,
        id: str | None = None,
    ) -> TournamentMatch:
        mid = id or str(uuid.uuid4())
        status = "completed" if winner_registration_id else "scheduled"
        conn.execute(
            f"INSERT INTO tournament_matches ({self._MATCH_COLS}, created_at) VALUES ({_placeholders(11)})",
            (mid, tournament_id, round_number, round_type, tableau, match_order,
             team1_registration_id, team2_registration_id, winner_registration_id, status, _now().isoformat()),
        )
        conn.commit()
        return TournamentMatch(
            id=mid, tournament_id=tournament_id, round_number=round_number, round_type=round_type,
            tableau=tableau, match_order=match_order, status=status,
            team1_registration_id=team1_registration_id, team2_registration_id=team2_registration_id,
            winner_registration_id=winner_registration_id,
        )

    def list_matches_for_round(self, conn: sqlite3.Connection, tournament_id: str, round_number: int) -> list[TournamentMatch]:
        rows = conn.execute(
            f"SELECT {self._MATCH_COLS} FROM tournament_matches WHERE tournament_id = ? AND round_number = ? "
            "ORDER BY tableau, match_order",
            (tournament_id, round_number),
        ).fetchall()
        return [self._row_to_match(r) for r in rows]
