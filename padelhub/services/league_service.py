"""
League-centric service: state machine, membership guards, standings, phase transitions.
Create league (pending) -> players join with the invite code -> the join that fills the
league starts it (active) -> reads after ends_at complete it.
"""
from __future__ import annotations

import math
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any

from padelhub.config import Config
from padelhub.constants import (
    DEFAULT_DISPLAY_NAME,
    INVITE_CODE_ALPHABET,
    INVITE_CODE_ATTEMPTS,
    INVITE_CODE_LENGTH,
    LEAGUE_DURATION_WEEKS,
    LEAGUE_MATCH_QUOTAS,
    LEAGUE_MAX_PLAYERS,
    LEAGUE_MIN_PLAYERS,
)
from padelhub.log import setup_logger, short_id
from padelhub.models import League, LeagueFormat, LeaguePhaseHistory, LeagueStatus
from padelhub.persistence.repositories import (
    LeaguePhaseHistoryRepository,
    LeaguePlayerRepository,
    LeagueRepository,
    ProfileRepository,
)
from padelhub.services.divisions import (
    PhaseTransitionPlan,
    advance_phase_clock,
    plan_phase_transition,
    rank_within_divisions,
)
from padelhub.services.errors import (
    LeagueTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
)

logger = setup_logger(__name__)

# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    LeagueStatus.PENDING.value: {LeagueStatus.ACTIVE.value},
    LeagueStatus.ACTIVE.value: {LeagueStatus.COMPLETED.value},
    LeagueStatus.COMPLETED.value: set(),
}


def _assert_transition(current: str, new_status: str) -> None:
    current = LeagueStatus(current).value
    new_status = LeagueStatus(new_status).value
    allowed = _VALID_TRANSITIONS.get(current, set())
    if new_status not in allowed:
        raise LeagueTransitionError(
            f"Invalid transition: {current} -> {new_status}. Allowed from {current}: {sorted(allowed)}"
        )


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def should_run_phase_transition(league: League, now: datetime) -> bool:
    """Active divisions league whose current phase is over but whose league is not."""
    if league.format != LeagueFormat.DIVISIONS or league.status != LeagueStatus.ACTIVE:
        return False
    if league.phase_ends_at is None or league.ends_at is None:
        return False
    return league.phase_ends_at <= now < league.ends_at


# ---------- LeagueService ----------


class LeagueService:
    """
    Domain logic for leagues: creation, joining, standings, phase transitions.
    Persistence is delegated to repositories. The connection passed in is the trusted
    context every read and write runs under.
    """

    def __init__(self) -> None:
        self._league_repo = LeagueRepository()
        self._player_repo = LeaguePlayerRepository()
        self._history_repo = LeaguePhaseHistoryRepository()
        self._profile_repo = ProfileRepository()

    # ---------- Status ----------

    def transition_league_status(self, conn: sqlite3.Connection, league_id: str, new_status: str) -> None:
        """
        Transition league to new_status if valid.
        Valid: pending -> active -> completed.
        """
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError(f"League not found: {league_id}")
        _assert_transition(league.status, new_status)
        self._league_repo.update_status(conn, league_id, LeagueStatus(new_status).value)

    # ---------- Create / join ----------

    def create_league(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        name: str,
        duration_weeks: int,
        max_matches_per_player: int,
        max_players: int,
        format: str = LeagueFormat.CLASSIC,
    ) -> League:
        """Validate settings, pick a free invite code, create the league pending and join its creator."""
        name = (name or "").strip()
        if not name:
            raise PreconditionError("League name is required")
        if duration_weeks not in LEAGUE_DURATION_WEEKS:
            raise PreconditionError("Invalid duration")
        if max_matches_per_player not in LEAGUE_MATCH_QUOTAS:
            raise PreconditionError("Invalid number of matches")
        if not LEAGUE_MIN_PLAYERS <= max_players <= LEAGUE_MAX_PLAYERS:
            raise PreconditionError(f"Invalid number of players ({LEAGUE_MIN_PLAYERS}-{LEAGUE_MAX_PLAYERS})")
        if format not in (LeagueFormat.CLASSIC, LeagueFormat.DIVISIONS):
            raise PreconditionError("Invalid format")

        invite_code = None
        for _ in range(INVITE_CODE_ATTEMPTS):
            candidate = generate_invite_code()
            if not self._league_repo.invite_code_exists(conn, candidate):
                invite_code = candidate
                break
        if invite_code is None:
            raise PreconditionError("Could not generate a unique invite code")

        league = self._league_repo.create(
            conn, name=name, created_by=user_id, invite_code=invite_code,
            max_matches_per_player=max_matches_per_player, max_players=max_players,
            duration_weeks=duration_weeks, format=LeagueFormat(format).value,
        )
        self._player_repo.create(conn, league.id, user_id)
        logger.info("League %s created by %s (%s)", short_id(league.id), short_id(user_id), league.format)
        return league

    def join_league(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        invite_code: str,
        now: datetime | None = None,
    ) -> League:
        """Join a pending league. The join that fills it starts the league calendar."""
        now = now or datetime.now(timezone.utc)
        code = (invite_code or "").strip().upper()
        if not code:
            raise PreconditionError("Invite code is required")
        league = self._league_repo.get_by_invite_code(conn, code)
        if league is None:
            raise NotFoundError("Invalid invite code")
        if league.status != LeagueStatus.PENDING:
            raise PreconditionError("This league has already started or ended")
        if self._player_repo.get(conn, league.id, user_id) is not None:
            raise PreconditionError("You are already a member of this league")
        count = self._player_repo.count_by_league(conn, league.id)
        if count >= league.max_players:
            raise PreconditionError("This league is full")

        self._player_repo.create(conn, league.id, user_id)
        if count + 1 >= league.max_players:
            self._start_league(conn, league, now)
        return self._league_repo.get(conn, league.id)

    def _start_league(self, conn: sqlite3.Connection, league: League, now: datetime) -> None:
        _assert_transition(league.status, LeagueStatus.ACTIVE)
        ends_at = now + timedelta(weeks=league.duration_weeks)
        phase_ends_at = None
        if league.format == LeagueFormat.DIVISIONS:
            phase_ends_at = now + timedelta(days=Config.PHASE_LENGTH_DAYS)
        self._league_repo.activate(conn, league.id, now, ends_at, phase_ends_at)
        logger.info("League %s is full and now active until %s", short_id(league.id), ends_at.isoformat())

    # ---------- Reads ----------

    def list_my_leagues(self, conn: sqlite3.Connection, user_id: str) -> list[dict[str, Any]]:
        """Leagues the user belongs to, newest first, with their own standing."""
        league_ids = self._player_repo.list_league_ids_by_player(conn, user_id)
        out = []
        for league in self._league_repo.list_by_ids(conn, league_ids):
            me = self._player_repo.get(conn, league.id, user_id)
            out.append({
                **league.to_dict(),
                "player_count": self._player_repo.count_by_league(conn, league.id),
                "is_creator": league.created_by == user_id,
                "my_matches_played": me.matches_played if me else 0,
                "my_points": me.points if me else 0,
            })
        return out

    def _get_league_for_member(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> League:
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError("League not found")
        if self._player_repo.get(conn, league_id, user_id) is None:
            raise PermissionDeniedError("You are not a member of this league")
        return league

    def get_league_detail(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        League fields plus remaining_days / is_expired, and standings.
        Runs a pending phase transition first, and completes an active league past ends_at.
        """
        now = now or datetime.now(timezone.utc)
        league = self._get_league_for_member(conn, league_id, user_id)

        if should_run_phase_transition(league, now):
            self.run_phase_transition(conn, league, now)
            league = self._league_repo.get(conn, league_id)
        elif league.status == LeagueStatus.ACTIVE and league.ends_at is not None and league.ends_at <= now:
            # Concurrent readers race here; the loser just re-reads the completed row
            if self._league_repo.complete_if_active(conn, league_id):
                logger.info("League %s completed", short_id(league_id))
            league = self._league_repo.get(conn, league_id)

        remaining_days = None
        is_expired = False
        if league.status != LeagueStatus.PENDING and league.ends_at is not None:
            remaining = max(0.0, (league.ends_at - now).total_seconds())
            remaining_days = math.ceil(remaining / 86400)
            is_expired = remaining <= 0

        return {
            "league": {**league.to_dict(), "remaining_days": remaining_days, "is_expired": is_expired},
            "standings": self._standings(conn, league, user_id),
        }

    def _standings(self, conn: sqlite3.Connection, league: League, user_id: str) -> list[dict[str, Any]]:
        players = self._player_repo.list_by_league(conn, league.id)
        profiles = self._profile_repo.get_many(conn, [p.player_id for p in players])
        global_points = {pid: prof.global_points for pid, prof in profiles.items()}

        if league.format == LeagueFormat.DIVISIONS:
            rows = [(r.rank, r.player_id, r.division, r.matches_played, r.points)
                    for r in rank_within_divisions(players, global_points)]
        else:
            ordered = sorted(players, key=lambda p: (-p.points, -global_points.get(p.player_id, 0)))
            rows = [(i + 1, p.player_id, p.division, p.matches_played, p.points) for i, p in enumerate(ordered)]

        return [
            {
                "rank": rank,
                "player_id": pid,
                "display_name": profiles[pid].public_name if pid in profiles else DEFAULT_DISPLAY_NAME,
                "matches_played": matches_played,
                "points": points,
                "division": division,
                "is_current_user": pid == user_id,
            }
            for rank, pid, division, matches_played, points in rows
        ]

    def get_phase_history(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        phase: int | None,
    ) -> dict[str, Any]:
        """Snapshot of a finished phase, ordered by (division, rank), plus the phases that have one. Members only."""
        if phase is None:
            raise PreconditionError("Phase is required")
        self._get_league_for_member(conn, league_id, user_id)
        rows = self._history_repo.list_for_phase(conn, league_id, phase)
        profiles = self._profile_repo.get_many(conn, [r.player_id for r in rows])
        return {
            "phase": phase,
            "available_phases": self._history_repo.list_phase_numbers(conn, league_id),
            "standings": [
                {
                    "rank": r.rank,
                    "player_id": r.player_id,
                    "display_name": profiles[r.player_id].public_name if r.player_id in profiles else DEFAULT_DISPLAY_NAME,
                    "matches_played": r.matches_played,
                    "points": r.points,
                    "division": r.division,
                    "is_current_user": r.player_id == user_id,
                }
                for r in rows
            ],
        }

    # ---------- Phase transition ----------

    def run_phase_transition(
        self,
        conn: sqlite3.Connection,
        league: League,
        now: datetime,
    ) -> PhaseTransitionPlan | None:
        """
        End the current phase: snapshot standings, reassign divisions, zero counters and
        move the phase clock. One transaction; the league row is claimed on its version
        first, so when two requests race only the first one writes. Returns None when
        the claim is lost.
        """
        new_ends_at, jumps = advance_phase_clock(league.phase_ends_at, now, Config.PHASE_LENGTH_DAYS)
        try:
            claimed = self._league_repo.advance_phase_if_version(
                conn, league.id, league.version, league.current_phase + jumps, new_ends_at, commit=False,
            )
            if not claimed:
                conn.rollback()
                logger.info("Phase transition for league %s already done by another request", short_id(league.id))
                return None

            # Read standings under the write lock taken by the claim
            players = self._player_repo.list_by_league(conn, league.id)
            global_points = self._profile_repo.get_global_points(conn, [p.player_id for p in players])
            plan = plan_phase_transition(
                players, global_points, league.current_phase, league.phase_ends_at, now,
                length_days=Config.PHASE_LENGTH_DAYS, division_size=Config.DIVISION_SIZE,
            )
            self._history_repo.append_many(
                conn,
                [
                    LeaguePhaseHistory(
                        league_id=league.id,
                        phase_number=plan.ended_phase,
                        player_id=r.player_id,
                        division=r.division,
                        rank=r.rank,
                        matches_played=r.matches_played,
                        points=r.points,
                    )
                    for r in plan.ranked
                ],
                commit=False,
            )
            self._player_repo.reset_for_new_phase(conn, league.id, plan.new_divisions, commit=False)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Phase transition failed for league %s", short_id(league.id))
            raise

        logger.info(
            "League %s: phase %d -> %d (%d advanced), %d players moved, next boundary %s",
            short_id(league.id), plan.ended_phase, plan.new_phase, plan.phases_advanced,
            len(plan.moved_player_ids), plan.new_phase_ends_at.isoformat(),
        )
        return plan
