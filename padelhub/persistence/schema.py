"""
SQLite schema for club, league, match and tournament entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def profiles_schema() -> str:
    """Player accounts. global_points feeds the club leaderboard and league tiebreaks."""
    return """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        username TEXT,
        password_hash TEXT,
        display_name TEXT,
        first_name TEXT,
        last_name TEXT,
        club_id TEXT,
        global_points INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        FOREIGN KEY (club_id) REFERENCES clubs(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_profiles_username ON profiles(username);
    CREATE INDEX IF NOT EXISTS ix_profiles_club ON profiles(club_id);
    """


def clubs_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS clubs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS club_admins (
        club_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (club_id, user_id),
        FOREIGN KEY (club_id) REFERENCES clubs(id),
        FOREIGN KEY (user_id) REFERENCES profiles(id)
    );
    """


def leagues_schema() -> str:
    """status: pending | active | completed. format: classic | divisions."""
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_by TEXT NOT NULL,
        invite_code TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        format TEXT NOT NULL DEFAULT 'classic',
        max_matches_per_player INTEGER NOT NULL,
        max_players INTEGER NOT NULL,
        duration_weeks INTEGER NOT NULL,
        starts_at TEXT,
        ends_at TEXT,
        current_phase INTEGER NOT NULL DEFAULT 0,
        phase_ends_at TEXT,
        version INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        FOREIGN KEY (created_by) REFERENCES profiles(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_leagues_invite_code ON leagues(invite_code);
    CREATE INDEX IF NOT EXISTS ix_leagues_status ON leagues(status);
    """


def league_players_schema() -> str:
    """One row per (league, player). version guards read-modify-write of points."""
    return """
    CREATE TABLE IF NOT EXISTS league_players (
        league_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        division INTEGER NOT NULL DEFAULT 1,
        matches_played INTEGER NOT NULL DEFAULT 0,
        points INTEGER NOT NULL DEFAULT 0,
        version INTEGER NOT NULL DEFAULT 0,
        joined_at TEXT NOT NULL,
        PRIMARY KEY (league_id, player_id),
        FOREIGN KEY (league_id) REFERENCES leagues(id),
        FOREIGN KEY (player_id) REFERENCES profiles(id)
    );
    CREATE INDEX IF NOT EXISTS ix_league_players_player ON league_players(player_id);
    """


def league_phase_history_schema() -> str:
    """Append-only snapshot per player per ended phase."""
    return """
    CREATE TABLE IF NOT EXISTS league_phase_history (
        league_id TEXT NOT NULL,
        phase_number INTEGER NOT NULL,
        player_id TEXT NOT NULL,
        division INTEGER NOT NULL,
        rank INTEGER NOT NULL,
        matches_played INTEGER NOT NULL,
        points INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (league_id, phase_number, player_id),
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    """


def matches_schema() -> str:
    """Played matches. status: pending | confirmed | rejected. league_id NULL = friendly."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        team1_id TEXT NOT NULL,
        team2_id TEXT NOT NULL,
        winner_team_id TEXT NOT NULL,
        score_team1 INTEGER NOT NULL,
        score_team2 INTEGER NOT NULL,
        league_id TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        created_by TEXT NOT NULL,
        played_at TEXT NOT NULL,
        confirmed_at TEXT,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_matches_league ON matches(league_id);
    CREATE INDEX IF NOT EXISTS ix_matches_status ON matches(status);

    CREATE TABLE IF NOT EXISTS match_participants (
        match_id TEXT NOT NULL,
        player_type TEXT NOT NULL,
        user_id TEXT,
        guest_name TEXT,
        team INTEGER NOT NULL,
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    CREATE INDEX IF NOT EXISTS ix_match_participants_match ON match_participants(match_id);
    CREATE INDEX IF NOT EXISTS ix_match_participants_user ON match_participants(user_id);

    CREATE TABLE IF NOT EXISTS match_confirmations (
        match_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        confirmed INTEGER NOT NULL DEFAULT 0,
        confirmed_at TEXT,
        PRIMARY KEY (match_id, user_id),
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    """


def tournaments_schema() -> str:
    """TMC tournaments, registered pairs and bracket matches."""
    return """
    CREATE TABLE IF NOT EXISTS tournaments (
        id TEXT PRIMARY KEY,
        club_id TEXT NOT NULL,
        name TEXT NOT NULL,
        tournament_type TEXT NOT NULL DEFAULT 'tmc',
        status TEXT NOT NULL DEFAULT 'open',
        created_at TEXT NOT NULL,
        FOREIGN KEY (club_id) REFERENCES clubs(id)
    );

    CREATE TABLE IF NOT EXISTS tournament_registrations (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        player1_id TEXT NOT NULL,
        player2_id TEXT,
        final_ranking INTEGER,
        created_at TEXT NOT NULL,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id)
    );
    CREATE INDEX IF NOT EXISTS ix_tournament_registrations_tournament ON tournament_registrations(tournament_id);

    CREATE TABLE IF NOT EXISTS tournament_matches (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        round_number INTEGER NOT NULL,
        round_type TEXT NOT NULL,
        tableau TEXT NOT NULL,
        match_order INTEGER NOT NULL,
        team1_registration_id TEXT,
        team2_registration_id TEXT,
        winner_registration_id TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        created_at TEXT NOT NULL,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id)
    );
    CREATE INDEX IF NOT EXISTS ix_tournament_matches_round ON tournament_matches(tournament_id, round_number);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order: clubs, profiles, leagues, league_players, history, matches, tournaments."""
    return "\n".join([
        clubs_schema(),
        profiles_schema(),
        leagues_schema(),
        league_players_schema(),
        league_phase_history_schema(),
        matches_schema(),
        tournaments_schema(),
    ])
