"""
Domain errors raised by the service layer. api.py maps each to an HTTP status.
"""
from __future__ import annotations


class NotFoundError(ValueError):
    """League, match, club or tournament does not exist."""


class PermissionDeniedError(ValueError):
    """Caller is not a member / participant / club admin."""


class PreconditionError(ValueError):
    """Request is well-formed but the current state does not allow it."""


class LeagueTransitionError(ValueError):
    """Invalid league status transition (e.g. pending -> completed)."""


class IncompleteBracketError(PreconditionError):
    """Final-round bracket matches are missing or have no winner yet."""
