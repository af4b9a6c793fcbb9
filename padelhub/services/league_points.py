"""
League point attribution after a match is confirmed.

Rules (only while the player is under the league quota):
- win = +3, loss = +1
- divisions format: a win is worth +2 when the same pair of teammates already won
  together in this league
- over quota: matches_played still increments, 0 points

Only "user" participants count; guests are skipped. Each player is updated on their own:
a failed write is logged and the other players are still processed. Must never make the
match confirmation itself fail.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from padelhub.config import Config
from padelhub.constants import LEAGUE_POINTS_LOSS, LEAGUE_POINTS_WIN, LEAGUE_POINTS_WIN_REPEAT_PAIR
from padelhub.log import setup_logger, short_id
from padelhub.models import League, LeagueFormat, LeagueStatus, MatchParticipant, PlayerType
from padelhub.persistence.repositories import LeaguePlayerRepository, LeagueRepository, MatchRepository

logger = setup_logger(__name__)

# Outcome status values
UPDATED = "updated"
NOT_IN_LEAGUE = "not_in_league"
FAILED = "failed"


@dataclass
class PlayerPointsOutcome:
    player_id: str
    is_winner: bool
    points_added: int
    matches_played: int
    under_quota: bool
    status: str


def _is_winner(participant: MatchParticipant, winner_team_id: str, teams: dict[str, str]) -> bool:
    if winner_team_id == teams.get("team1_id") and participant.team == 1:
        return True
    if winner_team_id == teams.get("team2_id") and participant.team == 2:
        return True
    return False


def _partner_id(participant: MatchParticipant, user_participants: list[MatchParticipant]) -> str | None:
    """The other user on the same team, if any (singles and guest partners have none)."""
    for p in user_participants:
        if p.team == participant.team and p.user_id != participant.user_id:
            return p.user_id
    return None


def points_for_result(
    is_winner: bool,
    under_quota: bool,
    league_format: str,
    already_won_together: bool = False,
) -> int:
    """League points one player earns from one match."""
    if not under_quota:
        return 0
    if not is_winner:
        return LEAGUE_POINTS_LOSS
    if league_format == LeagueFormat.DIVISIONS and already_won_together:
        return LEAGUE_POINTS_WIN_REPEAT_PAIR
    return LEAGUE_POINTS_WIN


def process_league_match_stats(
    conn: sqlite3.Connection,
    match_id: str,
    league_id: str,
    participants: list[MatchParticipant],
    winner_team_id: str,
    teams: dict[str, str],
    now: datetime | None = None,
) -> list[PlayerPointsOutcome]:
    """
    Apply one confirmed match to the league standings.
    teams: {"team1_id": ..., "team2_id": ...}. Returns one outcome per user participant
    (empty when the league is missing, not active or expired).
    """
    now = now or datetime.now(timezone.utc)
    league_repo = LeagueRepository()
    player_repo = LeaguePlayerRepository()
    match_repo = MatchRepository()

    league = league_repo.get(conn, league_id)
    if league is None:
        logger.warning("[league-match] League not found: %s", short_id(league_id))
        return []
    if league.status != LeagueStatus.ACTIVE:
        logger.warning("[league-match] League %s is not active (%s), skipping", short_id(league_id), league.status)
        return []
    if league.ends_at is not None and league.ends_at < now:
        logger.warning("[league-match] League %s has expired, skipping", short_id(league_id))
        return []

    user_participants = [p for p in participants if p.player_type == PlayerType.USER and p.user_id]
    if not user_participants:
        logger.warning("[league-match] No user participants in match %s, skipping", short_id(match_id))
        return []

    outcomes: list[PlayerPointsOutcome] = []
    for participant in user_participants:
        user_id = participant.user_id
        is_winner = _is_winner(participant, winner_team_id, teams)
        try:
            outcome = _apply_to_player(
                conn, player_repo, match_repo, league, match_id, participant, user_participants, is_winner,
            )
        except sqlite3.Error as e:
            logger.error(
                "[league-match] Error updating stats for %s in league %s: %s",
                short_id(user_id), short_id(league_id), e,
            )
            outcome = PlayerPointsOutcome(user_id, is_winner, 0, 0, False, FAILED)
        outcomes.append(outcome)
    return outcomes


def _apply_to_player(
    conn: sqlite3.Connection,
    player_repo: LeaguePlayerRepository,
    match_repo: MatchRepository,
    league: League,
    match_id: str,
    participant: MatchParticipant,
    user_participants: list[MatchParticipant],
    is_winner: bool,
) -> PlayerPointsOutcome:
    user_id = participant.user_id
    already_won_together = False
    if is_winner and league.format == LeagueFormat.DIVISIONS:
        partner = _partner_id(participant, user_participants)
        if partner is not None:
            already_won_together = match_repo.has_won_together(
                conn, league.id, user_id, partner, exclude_match_id=match_id,
            )

    for _ in range(max(1, Config.POINTS_RETRY_ATTEMPTS)):
        row = player_repo.get(conn, league.id, user_id)
        if row is None:
            logger.warning("[league-match] Player %s not in league %s, skipping", short_id(user_id), short_id(league.id))
            return PlayerPointsOutcome(user_id, is_winner, 0, 0, False, NOT_IN_LEAGUE)
        under_quota = row.matches_played < league.max_matches_per_player
        added = points_for_result(is_winner, under_quota, league.format, already_won_together)
        new_matches_played = row.matches_played + 1
        if player_repo.update_stats_if_version(
            conn, league.id, user_id, row.version, new_matches_played, row.points + added,
        ):
            logger.info(
                "[league-match] Updated %s: winner=%s points_added=%d matches_played=%d under_quota=%s",
                short_id(user_id), is_winner, added, new_matches_played, under_quota,
            )
            return PlayerPointsOutcome(user_id, is_winner, added, new_matches_played, under_quota, UPDATED)
        logger.debug("[league-match] Version conflict for %s, retrying", short_id(user_id))

    logger.error(
        "[league-match] Gave up updating %s in league %s after %d attempts",
        short_id(user_id), short_id(league.id), Config.POINTS_RETRY_ATTEMPTS,
    )
    return PlayerPointsOutcome(user_id, is_winner, 0, 0, False, FAILED)
