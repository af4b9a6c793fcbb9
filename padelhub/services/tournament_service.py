"""
Club and TMC tournament management. Every write is reserved to admins of the club.
"""
from __future__ import annotations

import sqlite3
from typing import Any

from padelhub.log import setup_logger, short_id
from padelhub.models import Club, RoundType, Tableau, Tournament, TournamentMatch, TournamentRegistration
from padelhub.persistence.repositories import ClubRepository, ProfileRepository, TournamentRepository
from padelhub.services.errors import NotFoundError, PermissionDeniedError, PreconditionError
from padelhub.services.tournament_ranking import (
    assert_round_complete,
    compute_final_ranking,
    final_round_number,
    missing_places,
)

logger = setup_logger(__name__)

TMC = "tmc"


class TournamentService:
    def __init__(self) -> None:
        self._club_repo = ClubRepository()
        self._profile_repo = ProfileRepository()
        self._tournament_repo = TournamentRepository()

    # ---------- Clubs ----------

    def create_club(self, conn: sqlite3.Connection, user_id: str, name: str) -> Club:
        """Create a club; its creator becomes its first admin and a member."""
        name = (name or "").strip()
        if not name:
            raise PreconditionError("Club name is required")
        club = self._club_repo.create(conn, name)
        self._club_repo.add_admin(conn, club.id, user_id)
        self._profile_repo.update_club(conn, user_id, club.id)
        return club

    def _assert_club_admin(self, conn: sqlite3.Connection, club_id: str, user_id: str) -> None:
        if not self._club_repo.is_admin(conn, club_id, user_id):
            raise PermissionDeniedError("Access denied")

    def _get_tmc(self, conn: sqlite3.Connection, tournament_id: str) -> Tournament:
        tournament = self._tournament_repo.get(conn, tournament_id)
        if tournament is None or tournament.tournament_type != TMC:
            raise NotFoundError("TMC tournament not found")
        return tournament

    # ---------- Tournaments ----------

    def create_tournament(self, conn: sqlite3.Connection, user_id: str, club_id: str, name: str) -> Tournament:
        if self._club_repo.get(conn, club_id) is None:
            raise NotFoundError("Club not found")
        self._assert_club_admin(conn, club_id, user_id)
        name = (name or "").strip()
        if not name:
            raise PreconditionError("Tournament name is required")
        return self._tournament_repo.create(conn, club_id, name, tournament_type=TMC)

    def register_pair(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        tournament_id: str,
        player1_id: str,
        player2_id: str | None = None,
    ) -> TournamentRegistration:
        tournament = self._get_tmc(conn, tournament_id)
        self._assert_club_admin(conn, tournament.club_id, user_id)
        return self._tournament_repo.create_registration(conn, tournament_id, player1_id, player2_id)

    def record_match(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        tournament_id: str,
        round_number: int,
        round_type: str,
        tableau: str,
        match_order: int,
        team1_registration_id: str | None,
        team2_registration_id: str | None,
        winner_registration_id: str | None = None,
    ) -> TournamentMatch:
        """Record a bracket match, completed when a winner is given."""
        tournament = self._get_tmc(conn, tournament_id)
        self._assert_club_admin(conn, tournament.club_id, user_id)
        if tableau not in {t.value for t in Tableau}:
            raise PreconditionError(f"Unknown tableau: {tableau}")
        if round_type not in {r.value for r in RoundType}:
            raise PreconditionError(f"Unknown round type: {round_type}")
        registration_ids = {r.id for r in self._tournament_repo.list_registrations(conn, tournament_id)}
        for rid in (team1_registration_id, team2_registration_id):
            if rid is not None and rid not in registration_ids:
                raise PreconditionError(f"Registration {rid} is not part of this tournament")
        if winner_registration_id is not None and winner_registration_id not in (
            team1_registration_id, team2_registration_id,
        ):
            raise PreconditionError("Winner must be one of the two teams")
        return self._tournament_repo.create_match(
            conn, tournament_id, round_number, round_type, tableau, match_order,
            team1_registration_id, team2_registration_id, winner_registration_id,
        )

    # ---------- Final ranking ----------

    def calculate_final_ranking(self, conn: sqlite3.Connection, user_id: str, tournament_id: str) -> dict[str, Any]:
        """
        Derive every place from the last round and store it on the registrations.
        Raises IncompleteBracketError if that round has no match or any match without a winner.
        """
        tournament = self._get_tmc(conn, tournament_id)
        self._assert_club_admin(conn, tournament.club_id, user_id)

        registrations = self._tournament_repo.list_registrations(conn, tournament_id)
        num_pairs = len(registrations)
        round_number = final_round_number(num_pairs)
        matches = self._tournament_repo.list_matches_for_round(conn, tournament_id, round_number)
        assert_round_complete(matches, round_number)

        ranking = compute_final_ranking(matches)
        for registration_id, rank in ranking.items():
            try:
                if not self._tournament_repo.update_final_ranking(conn, tournament_id, registration_id, rank):
                    logger.warning("[final-ranking] Registration %s not in tournament", short_id(registration_id))
            except sqlite3.Error as e:
                logger.error("[final-ranking] Failed to store rank %d for %s: %s", rank, short_id(registration_id), e)

        result: dict[str, Any] = {"success": True, "rankings": ranking}
        missing = missing_places(ranking, num_pairs)
        if missing:
            logger.warning("[final-ranking] Tournament %s: places not covered by the bracket: %s", short_id(tournament_id), missing)
            result["missing_places"] = missing
        logger.info("[final-ranking] Tournament %s: %d places assigned", short_id(tournament_id), len(ranking))
        return result

    def get_final_rankings(self, conn: sqlite3.Connection, tournament_id: str) -> list[dict[str, Any]]:
        """Ranked registrations, best first. Unranked registrations are left out."""
        tournament = self._tournament_repo.get(conn, tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament not found")
        ranked = [r for r in self._tournament_repo.list_registrations(conn, tournament_id) if r.final_ranking is not None]
        ranked.sort(key=lambda r: r.final_ranking)
        player_ids = [pid for r in ranked for pid in (r.player1_id, r.player2_id) if pid]
        profiles = self._profile_repo.get_many(conn, player_ids)
        return [
            {
                **r.to_dict(),
                "players": [profiles[pid].public_name for pid in (r.player1_id, r.player2_id) if pid in profiles],
            }
            for r in ranked
        ]
