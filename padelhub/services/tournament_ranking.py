"""
Final ranking of a TMC bracket.

The last round of a TMC decides every place: each match awards a fixed pair of places
(winner gets the first, loser the second). Which pair depends on the match's tableau,
its round type and, for classification tableaux, its match_order:

    principal / final        -> 1, 2
    principal / third_place  -> 3, 4
    places_5_8   order 1, 2  -> 5, 6 / 7, 8
    places_9_12  order 1, 2  -> 9, 10 / 11, 12
    places_13_16 order 1, 2  -> 13, 14 / 15, 16

A 16-team TMC plays 4 rounds; an 8-team TMC plays 3 and only has the first three slots.
"""
from __future__ import annotations

from enum import Enum

from padelhub.log import setup_logger, short_id
from padelhub.models import RoundType, Tableau, TournamentMatch, TournamentMatchStatus
from padelhub.services.errors import IncompleteBracketError

logger = setup_logger(__name__)


class BracketSlot(Enum):
    FINAL = "final"
    THIRD_PLACE = "third_place"
    PLACES_5_8 = "places_5_8"
    PLACES_9_12 = "places_9_12"
    PLACES_13_16 = "places_13_16"


# Best place awarded by match_order 1 of the slot; match_order 2 awards the next pair
_FIRST_PLACE: dict[BracketSlot, int] = {
    BracketSlot.FINAL: 1,
    BracketSlot.THIRD_PLACE: 3,
    BracketSlot.PLACES_5_8: 5,
    BracketSlot.PLACES_9_12: 9,
    BracketSlot.PLACES_13_16: 13,
}

_CLASSIFICATION_TABLEAUX: dict[str, BracketSlot] = {
    Tableau.PLACES_5_8.value: BracketSlot.PLACES_5_8,
    Tableau.PLACES_9_12.value: BracketSlot.PLACES_9_12,
    Tableau.PLACES_13_16.value: BracketSlot.PLACES_13_16,
}


def final_round_number(num_pairs: int) -> int:
    return 3 if num_pairs == 8 else 4


def bracket_slot(match: TournamentMatch) -> BracketSlot | None:
    """Slot of a last-round match, or None when (tableau, round_type) awards no places."""
    if match.tableau == Tableau.PRINCIPAL.value:
        if match.round_type == RoundType.FINAL.value:
            return BracketSlot.FINAL
        if match.round_type == RoundType.THIRD_PLACE.value:
            return BracketSlot.THIRD_PLACE
        return None
    return _CLASSIFICATION_TABLEAUX.get(match.tableau)


def places_for(slot: BracketSlot, match_order: int) -> tuple[int, int] | None:
    """(winner place, loser place) for a match in the given slot."""
    first = _FIRST_PLACE[slot]
    if slot in (BracketSlot.FINAL, BracketSlot.THIRD_PLACE):
        return first, first + 1
    if match_order == 1:
        return first, first + 1
    if match_order == 2:
        return first + 2, first + 3
    return None


def assert_round_complete(matches: list[TournamentMatch], round_number: int) -> None:
    if not matches:
        raise IncompleteBracketError(f"No round {round_number} matches found")
    incomplete = [
        m for m in matches
        if m.status != TournamentMatchStatus.COMPLETED.value or not m.winner_registration_id
    ]
    if incomplete:
        raise IncompleteBracketError(
            f"All round {round_number} matches must be completed before computing the final ranking. "
            f"{len(incomplete)} match(es) remaining."
        )


def compute_final_ranking(matches: list[TournamentMatch]) -> dict[str, int]:
    """
    registration_id -> place, from the completed last-round matches.
    Matches that award no places are ignored (logged).
    """
    ranking: dict[str, int] = {}
    for m in matches:
        slot = bracket_slot(m)
        if slot is None:
            logger.warning(
                "[final-ranking] Match %s (%s/%s) awards no places, ignored",
                short_id(m.id), m.tableau, m.round_type,
            )
            continue
        places = places_for(slot, m.match_order)
        if places is None:
            logger.warning("[final-ranking] Match %s has unexpected match_order %d", short_id(m.id), m.match_order)
            continue
        winner_place, loser_place = places
        ranking[m.winner_registration_id] = winner_place
        loser = m.loser_registration_id
        if loser:
            ranking[loser] = loser_place
    return ranking


def missing_places(ranking: dict[str, int], num_pairs: int) -> list[int]:
    assigned = set(ranking.values())
    return [place for place in range(1, num_pairs + 1) if place not in assigned]
