"""
Card custody tracking: which card is in which zone.

Every card id dealt into a match has exactly one ``CardLocation``. All
mutations are expressed as "move this explicit set of ids to zone Z", so
re-applying a move is harmless.
"""

import copy
import logging
import random
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .constants import (
    OWNED_ZONES, PHASE_SETUP, ZONES, ZONE_DISCARD, ZONE_HAND, ZONE_SELECTED, ZONE_UNDEALT
)
from .errors import DealingFailed, InvalidCardOperation, InvalidPhaseTransition
from .models import Card, CardLocation, MatchState

logger = logging.getLogger(__name__)


def add_cards(state: MatchState, card_ids: Iterable[str]) -> MatchState:
    """Put new card ids into the undealt pool. Ids already tracked are left where they are."""
    new_state = copy.deepcopy(state)
    for card_id in card_ids:
        if card_id not in new_state.cards:
            new_state.cards[card_id] = CardLocation(zone=ZONE_UNDEALT)
    return new_state


def move_cards(state: MatchState, card_ids: Iterable[str], zone: str, player_id: Optional[str] = None):
    """
    Re-assign the zone of each listed card, in place.

    For discard moves without an explicit player the previous holder is kept
    as the card's owner.
    """
    if zone not in ZONES:
        raise InvalidCardOperation(f"Unknown zone: {zone}")
    if zone in OWNED_ZONES and not player_id:
        raise InvalidCardOperation(f"Zone {zone} needs a player")

    for card_id in card_ids:
        location = state.cards.get(card_id)
        if location is None:
            raise InvalidCardOperation(f"Card {card_id} is not part of this match")

        if zone == ZONE_UNDEALT:
            owner = None
        elif zone == ZONE_DISCARD and player_id is None:
            owner = location.player_id
        else:
            owner = player_id

        state.cards[card_id] = CardLocation(zone=zone, player_id=owner)


def deal_to_player(
    state: MatchState,
    player_id: str,
    count: int,
    rng: Optional[random.Random] = None,
    depth: Optional[int] = None,
    catalog: Optional[Dict[str, Card]] = None
) -> Tuple[MatchState, List[str]]:
    """
    Move ``count`` random undealt cards into a player's hand.

    Only the authoritative copy runs this. Dealing is at most once per
    (player, round): a repeated call returns the ids dealt the first time and
    leaves the state unchanged.

    Args:
        state: Current match state
        player_id: Player receiving the cards
        count: Number of cards to deal
        rng: Random source (seed it for deterministic deals)
        depth: Depth filter, defaults to the room's card_depth setting
        catalog: Card contents, used for the room's depth filter

    Returns:
        Tuple of (updated state, dealt card ids)
    """
    if player_id not in state.players:
        raise DealingFailed(f"Player {player_id} is not in match {state.match_id}")
    if state.room.phase != PHASE_SETUP:
        raise InvalidPhaseTransition(
            f"Cards can only be dealt during setup (current: {state.room.phase})"
        )
    if count < 1:
        raise DealingFailed(f"Must deal at least one card, got {count}")

    deal_key = (player_id, state.room.current_round)
    if deal_key in state.dealt:
        logger.info(f"Player {player_id} already dealt in round {deal_key[1]}, returning previous deal")
        return state, list(state.dealt[deal_key])

    candidates = undealt_ids(state)
    if depth is None:
        depth = state.room.settings.card_depth
    if catalog is not None and depth is not None:
        candidates = [
            card_id for card_id in candidates
            if card_id in catalog and catalog[card_id].depth == depth
        ]

    if len(candidates) < count:
        raise DealingFailed(
            f"Not enough cards to deal: requested {count}, {len(candidates)} available"
        )

    rng = rng or random.Random()
    picked = rng.sample(candidates, count)

    new_state = copy.deepcopy(state)
    move_cards(new_state, picked, ZONE_HAND, player_id)
    new_state.dealt[deal_key] = list(picked)
    return new_state, picked


def select_among(
    state: MatchState,
    card_id: str,
    player_id: str,
    rejected_card_ids: Optional[List[str]] = None
) -> MatchState:
    """
    Keep one card from a hand and discard the rest.

    Args:
        state: Current match state
        card_id: Card the player keeps
        player_id: Player choosing
        rejected_card_ids: Remainder of the hand; defaults to every other card in it

    Returns:
        Updated state with card_id selected and the rejected cards discarded
    """
    if state.room.phase != PHASE_SETUP:
        raise InvalidPhaseTransition(f"Cards can only be selected during setup (current: {state.room.phase})")

    hand = hand_of(state, player_id)
    if card_id not in hand:
        raise InvalidCardOperation(f"Card {card_id} is not in the hand of {player_id}")
    if selected_of(state, player_id) is not None:
        raise InvalidCardOperation(f"Player {player_id} has already selected a card")

    if rejected_card_ids is None:
        rejected_card_ids = [other for other in hand if other != card_id]

    for rejected in rejected_card_ids:
        if rejected == card_id or rejected not in hand:
            raise InvalidCardOperation(f"Card {rejected} cannot be rejected by {player_id}")

    new_state = copy.deepcopy(state)
    move_cards(new_state, [card_id], ZONE_SELECTED, player_id)
    move_cards(new_state, rejected_card_ids, ZONE_DISCARD, player_id)
    return new_state


def move_to_discard(state: MatchState, card_ids: Iterable[str]) -> MatchState:
    """Discard cards from whatever zone they are in. Already-discarded ids are a no-op."""
    new_state = copy.deepcopy(state)
    move_cards(new_state, card_ids, ZONE_DISCARD)
    return new_state


def hand_of(state: MatchState, player_id: str) -> List[str]:
    return _ids_in(state, ZONE_HAND, player_id)


def selected_of(state: MatchState, player_id: str) -> Optional[str]:
    selected = _ids_in(state, ZONE_SELECTED, player_id)
    return selected[0] if selected else None


def discard_of(state: MatchState, owner_id: Optional[str] = None) -> List[str]:
    """Discarded card ids, optionally only those last held by owner_id."""
    return [
        card_id for card_id, location in state.cards.items()
        if location.zone == ZONE_DISCARD and (owner_id is None or location.player_id == owner_id)
    ]


def undealt_ids(state: MatchState) -> List[str]:
    return [card_id for card_id, location in state.cards.items() if location.zone == ZONE_UNDEALT]


def zone_counts(state: MatchState) -> Dict[str, int]:
    counts = {zone: 0 for zone in ZONES}
    for location in state.cards.values():
        counts[location.zone] += 1
    return counts


def check_partition(state: MatchState) -> bool:
    """
    Verify the custody partition.

    Card ids are dict keys, so no id can sit in two zones. What remains to
    check is that each location is well formed, names a known player where it
    must, and that no player holds more than one selected card.
    """
    selected_holders = set()
    for card_id, location in state.cards.items():
        if location.zone not in ZONES:
            raise InvalidCardOperation(f"Card {card_id} is in unknown zone {location.zone}")
        if location.zone in OWNED_ZONES:
            if location.player_id not in state.players:
                raise InvalidCardOperation(f"Card {card_id} is held by unknown player {location.player_id}")
        if location.zone == ZONE_UNDEALT and location.player_id is not None:
            raise InvalidCardOperation(f"Undealt card {card_id} has a holder")
        if location.zone == ZONE_SELECTED:
            if location.player_id in selected_holders:
                raise InvalidCardOperation(f"Player {location.player_id} has more than one selected card")
            selected_holders.add(location.player_id)
    return True


def custody_view(state: MatchState) -> Dict:
    """Per-player hand / selected / discard plus the shared piles."""
    players = {}
    for player in state.ordered_players():
        players[player.id] = {
            "hand": hand_of(state, player.id),
            "selected": selected_of(state, player.id),
            "discard": discard_of(state, player.id),
        }
    return {
        "players": players,
        "undealt_count": len(undealt_ids(state)),
        "discard": discard_of(state),
    }


def _ids_in(state: MatchState, zone: str, player_id: str) -> List[str]:
    return [
        card_id for card_id, location in state.cards.items()
        if location.zone == zone and location.player_id == player_id
    ]


CardFetcher = Callable[[List[str]], Awaitable[List[Card]]]


class CardCache:
    """Lazily populated card content lookup. A miss is a fetch, not an error."""

    def __init__(self, fetch: CardFetcher):
        self._fetch = fetch
        self._cards: Dict[str, Card] = {}

    def __contains__(self, card_id: str) -> bool:
        return card_id in self._cards

    def add(self, cards: Iterable[Card]):
        for card in cards:
            self._cards[card.id] = card

    def peek(self, card_id: str) -> Optional[Card]:
        """Cached content only, without fetching."""
        return self._cards.get(card_id)

    async def get_by_id(self, card_id: str) -> Optional[Card]:
        cards = await self.get_by_ids([card_id])
        return cards[0] if cards else None

    async def get_by_ids(self, card_ids: List[str]) -> List[Card]:
        """Cards in the requested order; ids the collaborator does not know are skipped."""
        missing = [card_id for card_id in dict.fromkeys(card_ids) if card_id not in self._cards]
        if missing:
            logger.info(f"Fetching {len(missing)} uncached cards")
            self.add(await self._fetch(missing))
        return [self._cards[card_id] for card_id in card_ids if card_id in self._cards]
