"""In-memory authoritative match store"""

import asyncio
import copy
import itertools
import logging
import random
import time
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from .actions import apply_mutation, parse_mutation
from .collaborator import Collaborator, LostHandler, MutationAck, PushHandler, Subscription
from .constants import PHASE_SETUP
from .custody import add_cards, check_partition, deal_to_player
from .diff import compute_diff, should_send_full_state
from .errors import GameError, INVALID_MUTATION, MATCH_NOT_FOUND, SyncLost
from .models import Card, MatchState, Player, RoomState
from .rules import create_settings
from .serialization import sanitize_state

logger = logging.getLogger(__name__)


class _Subscriber:
    def __init__(self, viewer_id: Optional[str], on_change: PushHandler, on_lost: Optional[LostHandler]):
        self.viewer_id = viewer_id
        self.on_change = on_change
        self.on_lost = on_lost


class MatchEngine(Collaborator):
    """
    Single linearization point for every match it holds.

    Writes to a match are serialized by a per-match lock. After each commit
    every subscriber gets a push (a diff of its own sanitized view, or the
    full view when the diff is large) before the writer is answered.
    """

    def __init__(self, seed: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.matches: Dict[str, MatchState] = {}
        self.cards: Dict[str, Card] = {}
        self.match_locks = defaultdict(asyncio.Lock)
        self.subscribers: Dict[str, Dict[int, _Subscriber]] = defaultdict(dict)
        self.rng = random.Random(seed)
        self.clock = clock
        self._subscriber_ids = itertools.count(1)

    def get_match(self, match_id: str) -> MatchState:
        state = self.matches.get(match_id)
        if state is None:
            raise GameError(f"Match not found: {match_id}", code=MATCH_NOT_FOUND)
        return state

    async def create_match(
        self,
        match_id: str,
        created_by: str,
        username: str,
        cards: Iterable[Card],
        settings: Optional[Dict[str, Any]] = None
    ) -> MatchState:
        """
        Create a match in setup with its creator seated and the cards undealt.

        Args:
            match_id: Room identifier
            created_by: Player id of the room creator
            username: Display name of the creator
            cards: Card pool for the match
            settings: RoomSettings overrides

        Returns:
            The new match state
        """
        async with self.match_locks[match_id]:
            if match_id in self.matches:
                raise GameError(f"Match {match_id} already exists", code=INVALID_MUTATION)

            room_settings = create_settings(**(settings or {}))
            state = MatchState(
                match_id=match_id,
                room=RoomState(created_by=created_by, total_rounds=room_settings.total_rounds, settings=room_settings)
            )
            state.players[created_by] = Player(id=created_by, username=username, joined_at=self.clock())

            cards = list(cards)
            for card in cards:
                self.cards[card.id] = card
            state = add_cards(state, [card.id for card in cards])

            self.matches[match_id] = state
            logger.info(f"Match {match_id} created by {created_by} with {len(cards)} cards")
            return state

    async def add_player(self, match_id: str, player_id: str, username: str) -> MatchState:
        """Seat a player. Joining is idempotent; a re-join marks the player online."""
        async with self.match_locks[match_id]:
            state = self.get_match(match_id)

            if player_id in state.players:
                if state.players[player_id].is_online:
                    return state
                new_state = apply_mutation(state, parse_mutation({
                    "type": "set_online", "actor_id": player_id, "is_online": True
                }))
            else:
                new_state = copy.deepcopy(state)
                # late joiners sit out the turns already under way
                new_state.players[player_id] = Player(
                    id=player_id,
                    username=username,
                    joined_at=self.clock(),
                    has_spoken=state.room.phase != PHASE_SETUP
                )
                logger.info(f"Player {player_id} joined match {match_id}")

            self._commit(state, new_state)
            return new_state

    async def fetch_state(self, match_id: str, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        return sanitize_state(self.get_match(match_id), viewer_id)

    async def subscribe(
        self,
        match_id: str,
        on_change: PushHandler,
        viewer_id: Optional[str] = None,
        on_lost: Optional[LostHandler] = None
    ) -> Subscription:
        self.get_match(match_id)
        subscriber_id = next(self._subscriber_ids)
        self.subscribers[match_id][subscriber_id] = _Subscriber(viewer_id, on_change, on_lost)
        logger.info(f"Subscriber {subscriber_id} ({viewer_id}) watching match {match_id}")

        def detach():
            self.subscribers[match_id].pop(subscriber_id, None)

        return Subscription(on_cancel=detach)

    async def submit_mutation(self, match_id: str, mutation: Dict[str, Any]) -> MutationAck:
        try:
            parsed = parse_mutation(mutation)
        except ValueError as e:
            logger.warning(f"Rejected malformed mutation for match {match_id}: {e}")
            return MutationAck(False, error_code=INVALID_MUTATION, error_message=str(e))

        async with self.match_locks[match_id]:
            try:
                state = self.get_match(match_id)
                new_state = apply_mutation(state, parsed, self.rng)
            except GameError as e:
                logger.warning(f"Rejected {parsed.type.value} from {parsed.actor_id} in match {match_id}: {e.message}")
                return MutationAck.rejected(e)

            self._commit(state, new_state)
            return MutationAck.accepted(new_state.version)

    async def deal_atomic(self, match_id: str, player_id: str, count: int) -> List[str]:
        async with self.match_locks[match_id]:
            state = self.get_match(match_id)
            new_state, dealt = deal_to_player(state, player_id, count, self.rng, catalog=self.cards)
            if new_state is not state:
                self._commit(state, new_state)
                logger.info(f"Dealt {len(dealt)} cards to {player_id} in match {match_id}")
            return dealt

    async def fetch_cards(self, card_ids: List[str]) -> List[Card]:
        return [self.cards[card_id] for card_id in card_ids if card_id in self.cards]

    def drop_subscribers(self, match_id: str, reason: str = "Push channel closed"):
        """Detach every subscriber of a match and tell each one its channel is gone."""
        subscribers = self.subscribers.pop(match_id, {})
        for subscriber in subscribers.values():
            if subscriber.on_lost is not None:
                subscriber.on_lost(SyncLost(reason))

    def _commit(self, old_state: MatchState, new_state: MatchState):
        new_state.increment_version()
        check_partition(new_state)
        self.matches[new_state.match_id] = new_state
        self._broadcast(old_state, new_state)

    def _broadcast(self, old_state: MatchState, new_state: MatchState):
        match_id = new_state.match_id
        for subscriber_id, subscriber in list(self.subscribers[match_id].items()):
            ops = compute_diff(old_state, new_state, subscriber.viewer_id)
            if should_send_full_state(ops):
                push = {
                    "match_id": match_id,
                    "version": new_state.version,
                    "state": sanitize_state(new_state, subscriber.viewer_id)
                }
            else:
                push = {"match_id": match_id, "version": new_state.version, "ops": ops}

            try:
                subscriber.on_change(push)
            except Exception as e:
                logger.exception(f"Subscriber {subscriber_id} failed on version {new_state.version}, detaching")
                self.subscribers[match_id].pop(subscriber_id, None)
                if subscriber.on_lost is not None:
                    subscriber.on_lost(SyncLost(f"Push handler failed: {e}"))
