"""
Persistence layer for club, league, match and tournament data.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db
from .repositories import (
    ProfileRepository,
    ClubRepository,
    LeagueRepository,
    LeaguePlayerRepository,
    LeaguePhaseHistoryRepository,
    MatchRepository,
    TournamentRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "ProfileRepository",
    "ClubRepository",
    "LeagueRepository",
    "LeaguePlayerRepository",
    "LeaguePhaseHistoryRepository",
    "MatchRepository",
    "TournamentRepository",
]
