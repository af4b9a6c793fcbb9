"""
Fixed game rules. Tunable operational settings live in config.Config.
"""
from __future__ import annotations

# League points per confirmed match (only while under quota)
LEAGUE_POINTS_WIN = 3
LEAGUE_POINTS_WIN_REPEAT_PAIR = 2  # divisions format: pair already won together in this league
LEAGUE_POINTS_LOSS = 1

# Global leaderboard points per confirmed match
GLOBAL_POINTS_WIN = 10
GLOBAL_POINTS_LOSS = 3

# League creation limits
LEAGUE_DURATION_WEEKS = (2, 3, 4, 5, 6)
LEAGUE_MATCH_QUOTAS = (5, 10, 15)
LEAGUE_MIN_PLAYERS = 4
LEAGUE_MAX_PLAYERS = 15

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I, O, 0, 1
INVITE_CODE_LENGTH = 6
INVITE_CODE_ATTEMPTS = 10

# A match needs this many confirmations (capped by the number of user participants)
MATCH_CONFIRMATIONS_REQUIRED = 2

DEFAULT_DISPLAY_NAME = "Joueur"
