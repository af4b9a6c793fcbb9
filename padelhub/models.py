"""
Data models for the padel club backend.
Domain objects only; no persistence or API logic.

Leagues hold players; divisions-format leagues run in fixed-length phases, at the end
of which standings are snapshotted and divisions reshuffled. Tournaments (TMC) hold
registrations (pairs) and bracket matches.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from padelhub.constants import DEFAULT_DISPLAY_NAME


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------- League status (state machine) ----------
class LeagueStatus(str, Enum):
    """League lifecycle: pending → active → completed."""
    PENDING = "pending"      # Waiting for players
    ACTIVE = "active"        # Full; matches count
    COMPLETED = "completed"  # ends_at passed


# ---------- League format ----------
class LeagueFormat(str, Enum):
    CLASSIC = "classic"      # one table, ranked by points
    DIVISIONS = "divisions"  # phases of 4-player divisions with promotion/relegation


# ---------- Match ----------
class MatchStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class PlayerType(str, Enum):
    USER = "user"
    GUEST = "guest"


# ---------- Tournament bracket ----------
class Tableau(str, Enum):
    PRINCIPAL = "principal"
    PLACES_5_8 = "places_5_8"
    PLACES_9_12 = "places_9_12"
    PLACES_13_16 = "places_13_16"


class RoundType(str, Enum):
    FINAL = "final"
    THIRD_PLACE = "third_place"
    CLASSIFICATION = "classification"


class TournamentMatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


# ---------- Profile ----------
@dataclass
class Profile:
    """
    A player account. username + password_hash for login.
    global_points is the club-wide leaderboard score, used as league tiebreak.
    """
    id: str
    created_at: datetime
    username: str | None = None
    password_hash: str | None = None
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    club_id: str | None = None
    global_points: int = 0

    @property
    def public_name(self) -> str:
        if self.display_name:
            return self.display_name
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or DEFAULT_DISPLAY_NAME

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.public_name,
            "club_id": self.club_id,
            "global_points": self.global_points,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Club ----------
@dataclass
class Club:
    id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at.isoformat()}


# ---------- League ----------
@dataclass
class League:
    """
    A league between club players, joined with an invite code.
    version is bumped by every phase transition (optimistic concurrency).
    """
    id: str
    name: str
    created_by: str
    invite_code: str
    status: str  # LeagueStatus value
    format: str  # LeagueFormat value
    max_matches_per_player: int
    max_players: int
    duration_weeks: int
    created_at: datetime
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    current_phase: int = 0
    phase_ends_at: datetime | None = None
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_by": self.created_by,
            "invite_code": self.invite_code,
            "status": self.status,
            "format": self.format,
            "max_matches_per_player": self.max_matches_per_player,
            "max_players": self.max_players,
            "duration_weeks": self.duration_weeks,
            "starts_at": _iso(self.starts_at),
            "ends_at": _iso(self.ends_at),
            "current_phase": self.current_phase,
            "phase_ends_at": _iso(self.phase_ends_at),
            "created_at": self.created_at.isoformat(),
        }


# ---------- LeaguePlayer ----------
@dataclass
class LeaguePlayer:
    """
    One player's standing in a league. (league_id, player_id) is the identity.
    matches_played always counts; points stop accruing once matches_played reaches the quota.
    """
    league_id: str
    player_id: str
    division: int
    matches_played: int
    points: int
    joined_at: datetime
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "league_id": self.league_id,
            "player_id": self.player_id,
            "division": self.division,
            "matches_played": self.matches_played,
            "points": self.points,
            "joined_at": self.joined_at.isoformat(),
        }


# ---------- LeaguePhaseHistory ----------
@dataclass
class LeaguePhaseHistory:
    """Immutable snapshot of one player's standing when a phase ended."""
    league_id: str
    phase_number: int
    player_id: str
    division: int
    rank: int
    matches_played: int
    points: int
    created_at: datetime | None = None


# ---------- Match ----------
@dataclass
class MatchParticipant:
    """A player slot in a match. Guests have no user_id and never earn points."""
    match_id: str
    player_type: str  # PlayerType value
    team: int  # 1 | 2
    user_id: str | None = None
    guest_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_type": self.player_type,
            "user_id": self.user_id,
            "guest_name": self.guest_name,
            "team": self.team,
        }


@dataclass
class Match:
    """
    A played match between two teams of 1 or 2 players.
    team ids are derived from the players so the same pair keeps the same id.
    """
    id: str
    team1_id: str
    team2_id: str
    winner_team_id: str
    score_team1: int
    score_team2: int
    status: str  # MatchStatus value
    created_by: str
    played_at: datetime
    league_id: str | None = None
    confirmed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "team1_id": self.team1_id,
            "team2_id": self.team2_id,
            "winner_team_id": self.winner_team_id,
            "score_team1": self.score_team1,
            "score_team2": self.score_team2,
            "status": self.status,
            "created_by": self.created_by,
            "league_id": self.league_id,
            "played_at": self.played_at.isoformat(),
            "confirmed_at": _iso(self.confirmed_at),
        }


@dataclass
class MatchConfirmation:
    match_id: str
    user_id: str
    confirmed: bool
    confirmed_at: datetime | None = None


# ---------- Tournament ----------
@dataclass
class Tournament:
    id: str
    club_id: str
    name: str
    tournament_type: str  # "tmc"
    status: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "club_id": self.club_id,
            "name": self.name,
            "tournament_type": self.tournament_type,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TournamentRegistration:
    """A pair registered in a tournament. final_ranking is set once the bracket completes."""
    id: str
    tournament_id: str
    player1_id: str
    player2_id: str | None
    final_ranking: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "player1_id": self.player1_id,
            "player2_id": self.player2_id,
            "final_ranking": self.final_ranking,
        }


@dataclass
class TournamentMatch:
    """A bracket match. (tableau, round_type) of the last round decides which places it awards."""
    id: str
    tournament_id: str
    round_number: int
    round_type: str  # RoundType value
    tableau: str  # Tableau value
    match_order: int
    status: str  # TournamentMatchStatus value
    team1_registration_id: str | None = None
    team2_registration_id: str | None = None
    winner_registration_id: str | None = None

    @property
    def loser_registration_id(self) -> str | None:
        if self.winner_registration_id is None:
            return None
        if self.team1_registration_id == self.winner_registration_id:
            return self.team2_registration_id
        return self.team1_registration_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "round_number": self.round_number,
            "round_type": self.round_type,
            "tableau": self.tableau,
            "match_order": self.match_order,
            "status": self.status,
            "team1_registration_id": self.team1_registration_id,
            "team2_registration_id": self.team2_registration_id,
            "winner_registration_id": self.winner_registration_id,
        }
