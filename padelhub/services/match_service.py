"""
Match recording and confirmation.

A submitted match is pending until enough user participants confirm it (two, or every
user when fewer than two played). Confirmation awards global points and, for league
matches, league points. League point failures are logged and never undo the confirmation.
"""
from __future__ import annotations

import hashlib
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from padelhub.constants import GLOBAL_POINTS_LOSS, GLOBAL_POINTS_WIN, MATCH_CONFIRMATIONS_REQUIRED
from padelhub.log import setup_logger, short_id
from padelhub.models import Match, MatchParticipant, MatchStatus, PlayerType
from padelhub.persistence.repositories import (
    LeaguePlayerRepository,
    LeagueRepository,
    MatchRepository,
    ProfileRepository,
)
from padelhub.services.errors import NotFoundError, PermissionDeniedError, PreconditionError
from padelhub.services.league_points import PlayerPointsOutcome, process_league_match_stats

logger = setup_logger(__name__)


def team_id_for(side: int, players: list[dict[str, Any]]) -> str:
    """
    Deterministic team id: sha256 of the side and its sorted player keys, in UUID layout.
    The same players on the same side always get the same id.
    """
    keys = sorted(p.get("user_id") or f"guest:{p.get('guest_name') or ''}" for p in players)
    digest = hashlib.sha256(f"team{side}-{'-'.join(keys)}".encode()).hexdigest()
    return f"{digest[0:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:32]}"


def sets_won(sets: list[dict[str, int]]) -> tuple[int, int]:
    """Sets won by (team1, team2). A drawn set counts for nobody."""
    team1 = team2 = 0
    for s in sets:
        a, b = int(s.get("team1_score", 0)), int(s.get("team2_score", 0))
        if a > b:
            team1 += 1
        elif b > a:
            team2 += 1
    return team1, team2


# ---------- MatchService ----------


class MatchService:
    """Submit and confirm matches; award global and league points on confirmation."""

    def __init__(self) -> None:
        self._match_repo = MatchRepository()
        self._profile_repo = ProfileRepository()
        self._league_repo = LeagueRepository()
        self._league_player_repo = LeaguePlayerRepository()

    def submit_match(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        players: list[dict[str, Any]],
        winner: int,
        sets: list[dict[str, int]],
        league_id: str | None = None,
    ) -> Match:
        """
        players: 2 (singles) or 4 (doubles) of {player_type, user_id?, guest_name?};
        the first half is team 1. The submitter's own confirmation is recorded immediately.
        """
        if len(players) not in (2, 4):
            raise PreconditionError("A match needs 2 or 4 players")
        if winner not in (1, 2):
            raise PreconditionError("Winner must be team 1 or team 2")
        if len(sets) < 2:
            raise PreconditionError(f"At least 2 sets required, got {len(sets)}")

        player_types: list[PlayerType] = []
        for p in players:
            try:
                player_types.append(PlayerType(p.get("player_type") or PlayerType.USER.value))
            except ValueError:
                raise PreconditionError(f"Unknown player_type: {p.get('player_type')}")

        user_ids: list[str] = []
        for p, player_type in zip(players, player_types):
            if player_type == PlayerType.USER:
                if not p.get("user_id"):
                    raise PreconditionError("User players need a user_id")
                user_ids.append(p["user_id"])
            elif not (p.get("guest_name") or "").strip():
                raise PreconditionError("Guest players need a name")
        if len(set(user_ids)) != len(user_ids):
            raise PreconditionError("A player cannot appear twice in a match")
        if user_id not in user_ids:
            raise PermissionDeniedError("You must take part in the match you submit")
        known = self._profile_repo.get_many(conn, user_ids)
        missing = [uid for uid in user_ids if uid not in known]
        if missing:
            raise NotFoundError(f"Unknown player: {missing[0]}")

        if league_id is not None:
            league = self._league_repo.get(conn, league_id)
            if league is None:
                raise NotFoundError("League not found")
            for uid in user_ids:
                if self._league_player_repo.get(conn, league_id, uid) is None:
                    raise PreconditionError("Every player must be a member of the league")

        half = len(players) // 2
        team1_id = team_id_for(1, players[:half])
        team2_id = team_id_for(2, players[half:])
        score_team1, score_team2 = sets_won(sets)
        participants = [
            MatchParticipant(
                match_id="",
                player_type=player_types[i].value,
                team=1 if i < half else 2,
                user_id=p.get("user_id") if player_types[i] == PlayerType.USER else None,
                guest_name=p.get("guest_name"),
            )
            for i, p in enumerate(players)
        ]
        match = self._match_repo.create(
            conn,
            team1_id=team1_id,
            team2_id=team2_id,
            winner_team_id=team1_id if winner == 1 else team2_id,
            score_team1=score_team1,
            score_team2=score_team2,
            created_by=user_id,
            participants=participants,
            league_id=league_id,
        )
        self._match_repo.create_confirmations(conn, match.id, user_ids, confirmed_user_id=user_id)
        logger.info("Match %s submitted by %s (league %s)", short_id(match.id), short_id(user_id), short_id(league_id))
        # Nobody else to confirm (singles against a guest)
        if len(user_ids) < MATCH_CONFIRMATIONS_REQUIRED:
            self._confirm_match(conn, match, datetime.now(timezone.utc))
            match = self._match_repo.get(conn, match.id)
        return match

    def respond(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        user_id: str,
        action: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Confirm or reject a pending match as one of its user participants."""
        now = now or datetime.now(timezone.utc)
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError("Match not found")
        confirmation = self._match_repo.get_confirmation(conn, match_id, user_id)
        if confirmation is None:
            raise PermissionDeniedError("You are not a participant of this match")
        if match.status != MatchStatus.PENDING:
            raise PreconditionError(f"Match is already {match.status}")

        if action == "reject":
            if not self._match_repo.update_status_if_pending(conn, match_id, MatchStatus.REJECTED.value):
                raise PreconditionError("Match is no longer pending")
            logger.info("Match %s rejected by %s", short_id(match_id), short_id(user_id))
            return {"match": self._match_repo.get(conn, match_id).to_dict(), "league_points": []}
        if action != "confirm":
            raise PreconditionError("action must be 'confirm' or 'reject'")
        if confirmation.confirmed:
            raise PreconditionError("You already confirmed this match")

        self._match_repo.confirm(conn, match_id, user_id)
        outcomes: list[PlayerPointsOutcome] = []
        participants = self._match_repo.get_participants(conn, match_id)
        n_users = sum(1 for p in participants if p.player_type == PlayerType.USER)
        required = min(MATCH_CONFIRMATIONS_REQUIRED, n_users)
        if self._match_repo.count_confirmed(conn, match_id) >= required:
            outcomes = self._confirm_match(conn, match, now)
        return {
            "match": self._match_repo.get(conn, match_id).to_dict(),
            "league_points": [asdict(o) for o in outcomes],
        }

    def _confirm_match(self, conn: sqlite3.Connection, match: Match, now: datetime) -> list[PlayerPointsOutcome]:
        """Claim the pending match, then award points. Returns [] when another request claimed it first."""
        if not self._match_repo.update_status_if_pending(conn, match.id, MatchStatus.CONFIRMED.value, confirmed_at=now):
            logger.info("Match %s already resolved by another request", short_id(match.id))
            return []
        participants = self._match_repo.get_participants(conn, match.id)
        for p in participants:
            if p.player_type != PlayerType.USER or not p.user_id:
                continue
            won = (p.team == 1) == (match.winner_team_id == match.team1_id)
            self._profile_repo.add_global_points(conn, p.user_id, GLOBAL_POINTS_WIN if won else GLOBAL_POINTS_LOSS)
        logger.info("Match %s confirmed", short_id(match.id))

        if match.league_id is None:
            return []
        return process_league_match_stats(
            conn,
            match.id,
            match.league_id,
            participants,
            match.winner_team_id,
            {"team1_id": match.team1_id, "team2_id": match.team2_id},
            now=now,
        )

    def list_pending(self, conn: sqlite3.Connection, user_id: str) -> list[dict[str, Any]]:
        """Pending matches awaiting this user's confirmation."""
        return [m.to_dict() for m in self._match_repo.list_pending_for_user(conn, user_id)]
