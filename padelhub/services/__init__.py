"""
Service layer: domain rules for leagues, matches and tournaments.
divisions and tournament_ranking are pure; the *_service modules orchestrate persistence.
"""
from .errors import (
    IncompleteBracketError,
    LeagueTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
)
from .league_points import process_league_match_stats
from .league_service import LeagueService
from .match_service import MatchService
from .tournament_service import TournamentService

__all__ = [
    "IncompleteBracketError",
    "LeagueTransitionError",
    "NotFoundError",
    "PermissionDeniedError",
    "PreconditionError",
    "process_league_match_stats",
    "LeagueService",
    "MatchService",
    "TournamentService",
]
