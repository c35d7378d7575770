"""
Client-side synchronization: provisional apply, then reconcile on push.

MatchStore holds two documents: the latest authoritative snapshot as pushed
by the collaborator, and the local view that presentation reads. Local
mutations only ever touch the local view. Pushes patch both, overwriting only
the fields they name, and once nothing is in flight the local view is
replaced by the authoritative one.
"""

import asyncio
import copy
import logging
import random
from typing import Any, Dict, List, Optional

from .actions import (
    FinishReviewMutation, FinishSpeakingMutation, MoveToDiscardMutation, Mutation,
    ProposeExchangeMutation, RespondToExchangeMutation, SelectCardMutation, SetOnlineMutation,
    StartExchangeRoundMutation, StartNextRoundMutation, StartSharingMutation,
    StartSpeakingPhaseMutation, ToggleReactionMutation, ToggleRippleMutation, apply_mutation
)
from .collaborator import Collaborator, MutationAck, Subscription
from .constants import PHASE_SETUP
from .custody import CardCache, custody_view, selected_of
from .diff import apply_diff
from .errors import DealingFailed, GameError, InvalidPhaseTransition, SyncLost
from .exchange import exchange_view
from .models import MatchState
from .phases import derive_status
from .reactions import reaction_view
from .serialization import deserialize_state, serialize_state

logger = logging.getLogger(__name__)


class MatchStore:
    """Authoritative snapshot plus the provisional local view of one match."""

    def __init__(self, match_id: str, viewer_id: Optional[str] = None):
        self.match_id = match_id
        self.viewer_id = viewer_id
        self.authoritative: Optional[Dict[str, Any]] = None
        self.version = -1
        self.local: Optional[MatchState] = None
        self.in_flight = 0
        self.last_acked_version = 0
        self.stale = True
        self.lost = False
        self._buffered: List[Dict[str, Any]] = []

    @property
    def is_ready(self) -> bool:
        return self.authoritative is not None

    def load_snapshot(self, snapshot: Dict[str, Any]):
        """
        Replace both documents with a full snapshot.

        A snapshot older than what was already applied only resets the local
        view to the current authoritative document. Pushes buffered while no
        snapshot was loaded are replayed afterwards.
        """
        if self.authoritative is None or snapshot["version"] >= self.version:
            self.authoritative = copy.deepcopy(snapshot)
            self.version = snapshot["version"]
        self.local = deserialize_state(self.authoritative)
        self.stale = False

        buffered, self._buffered = self._buffered, []
        for push in sorted(buffered, key=lambda p: p["version"]):
            self.apply_push(push)

    def detach(self):
        """Forget the authoritative snapshot; the local view stays readable."""
        self.authoritative = None
        self.version = -1
        self.stale = True
        self._buffered = []

    def apply_push(self, push: Dict[str, Any]) -> bool:
        """
        Reconcile one push from the collaborator.

        Returns:
            True if the push was applied
        """
        if self.authoritative is None:
            self._buffered.append(push)
            return False

        version = push["version"]
        if version <= self.version:
            logger.warning(f"Dropping stale push v{version} for {self.match_id} (at v{self.version})")
            return False

        if push.get("state") is not None:
            self.authoritative = copy.deepcopy(push["state"])
            self.local = deserialize_state(self.authoritative)
            self.stale = False
        else:
            if version > self.version + 1:
                logger.warning(
                    f"Missed pushes for {self.match_id}: at v{self.version}, got v{version}; resync needed"
                )
                self.stale = True
                return False
            ops = push.get("ops") or []
            self.authoritative = apply_diff(self.authoritative, ops)
            self.local = deserialize_state(apply_diff(serialize_state(self.local), ops))

        self.version = version
        self._settle()
        return True

    def begin(self, mutation: Mutation, rng: Optional[random.Random] = None):
        """Apply a mutation provisionally. Guard violations raise before anything changes."""
        if self.lost:
            raise SyncLost(f"Match {self.match_id} is read-only until reconnected")
        if self.local is None:
            raise SyncLost(f"Match {self.match_id} has not been loaded")
        self.local = apply_mutation(self.local, mutation, rng)
        self.in_flight += 1

    def finish(self, ack: Optional[MutationAck]):
        """Record the outcome of a submitted mutation (None when unknown)."""
        self.in_flight = max(0, self.in_flight - 1)
        if ack is not None and ack.ok and ack.version is not None:
            self.last_acked_version = max(self.last_acked_version, ack.version)
        self._settle()

    def _settle(self):
        if self.in_flight == 0 and self.authoritative is not None and self.version >= self.last_acked_version:
            self.local = deserialize_state(self.authoritative)


class GameSession:
    """
    One participant's connection to a match.

    Actions validate and apply locally, then go to the collaborator. Views
    read the local (possibly provisional) state.
    """

    def __init__(
        self,
        collaborator: Collaborator,
        match_id: str,
        player_id: str,
        rng: Optional[random.Random] = None,
        timeout: float = 10.0
    ):
        self.collaborator = collaborator
        self.match_id = match_id
        self.player_id = player_id
        self.rng = rng or random.Random()
        self.timeout = timeout
        self.store = MatchStore(match_id, player_id)
        self.cards = CardCache(collaborator.fetch_cards)
        self._subscription: Optional[Subscription] = None

    # Connection lifecycle

    async def connect(self):
        """Subscribe, then load a fresh snapshot."""
        self._subscription = await self.collaborator.subscribe(
            self.match_id, self._on_push, viewer_id=self.player_id, on_lost=self._on_lost
        )
        snapshot = await self.collaborator.fetch_state(self.match_id, self.player_id)
        self.store.lost = False
        self.store.load_snapshot(snapshot)
        logger.info(f"Player {self.player_id} synced to match {self.match_id} at v{self.store.version}")

    async def reconnect(self):
        """Re-establish the push channel and re-synchronize before allowing mutations."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self.store.detach()
        await self.connect()

    async def close(self):
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    async def resync(self):
        """Replace the local view with a freshly fetched snapshot."""
        snapshot = await self.collaborator.fetch_state(self.match_id, self.player_id)
        self.store.load_snapshot(snapshot)

    def _on_push(self, push: Dict[str, Any]):
        self.store.apply_push(push)

    def _on_lost(self, error: Exception):
        logger.warning(f"Lost push channel for match {self.match_id}: {error}")
        self._subscription = None
        self.store.lost = True

    # Submission

    async def _ensure_writable(self):
        if self.store.lost or self._subscription is None:
            raise SyncLost(f"Match {self.match_id} is read-only until reconnected")
        if self.store.stale:
            await self.resync()

    async def _submit(self, mutation: Mutation) -> MutationAck:
        await self._ensure_writable()
        self.store.begin(mutation, self.rng)

        try:
            ack = await asyncio.wait_for(
                self.collaborator.submit_mutation(self.match_id, mutation.model_dump(mode="json")),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, ConnectionError) as e:
            logger.error(f"Submitting {mutation.type.value} to match {self.match_id} failed: {e}")
            self.store.finish(None)
            self.store.lost = True
            raise SyncLost(f"Outcome of {mutation.type.value} unknown: {e}") from e
        except GameError as e:
            logger.warning(f"{mutation.type.value} failed for {self.player_id}: {e.message}")
            self.store.finish(None)
            await self.resync()
            raise

        self.store.finish(ack)
        if not ack.ok:
            logger.warning(f"{mutation.type.value} rejected for {self.player_id}: {ack.error_message}")
            await self.resync()
            raise ack.to_error()
        return ack

    # Actions

    async def deal_cards(self, count: Optional[int] = None) -> List[str]:
        """
        Ask the collaborator to deal this player's hand.

        The local view changes only through the resulting push. A timeout or
        dropped connection is reported as an ambiguous DealingFailed and is
        never retried here; resync and inspect the hand instead.
        """
        await self._ensure_writable()
        state = self.state
        if state.room.phase != PHASE_SETUP:
            raise InvalidPhaseTransition(f"Cards can only be dealt during setup (current: {state.room.phase})")
        if count is None:
            count = state.room.settings.cards_per_player

        try:
            dealt = await asyncio.wait_for(
                self.collaborator.deal_atomic(self.match_id, self.player_id, count),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, ConnectionError) as e:
            logger.error(f"Dealing to {self.player_id} in match {self.match_id} has unknown outcome: {e}")
            self.store.stale = True
            raise DealingFailed(f"Dealing outcome unknown: {e}", ambiguous=True) from e
        except DealingFailed:
            raise
        except GameError as e:
            raise DealingFailed(e.message) from e

        await self.cards.get_by_ids(dealt)
        return dealt

    async def select_card(self, card_id: str, rejected_card_ids: Optional[List[str]] = None) -> MutationAck:
        return await self._submit(SelectCardMutation(
            actor_id=self.player_id, card_id=card_id, rejected_card_ids=rejected_card_ids
        ))

    async def start_speaking_phase(self) -> MutationAck:
        return await self._submit(StartSpeakingPhaseMutation(actor_id=self.player_id))

    async def start_sharing(self) -> MutationAck:
        return await self._submit(StartSharingMutation(actor_id=self.player_id))

    async def finish_speaking(self) -> MutationAck:
        return await self._submit(FinishSpeakingMutation(actor_id=self.player_id))

    async def finish_review(self) -> MutationAck:
        return await self._submit(FinishReviewMutation(actor_id=self.player_id))

    async def start_next_round(self, settings: Optional[Dict[str, Any]] = None) -> MutationAck:
        return await self._submit(StartNextRoundMutation(actor_id=self.player_id, settings=settings or {}))

    async def start_exchange_round(self) -> MutationAck:
        return await self._submit(StartExchangeRoundMutation(actor_id=self.player_id))

    async def propose_exchange(self, to_id: str, card_id: str) -> str:
        """Propose one of our discarded cards to another player. Returns the request id."""
        mutation = ProposeExchangeMutation(actor_id=self.player_id, to_id=to_id, card_id=card_id)
        await self._submit(mutation)
        return mutation.request_id

    async def accept_exchange(self, request_id: str) -> MutationAck:
        return await self._submit(RespondToExchangeMutation(
            actor_id=self.player_id, request_id=request_id, accept=True
        ))

    async def decline_exchange(self, request_id: str) -> MutationAck:
        return await self._submit(RespondToExchangeMutation(
            actor_id=self.player_id, request_id=request_id, accept=False
        ))

    async def toggle_reaction(
        self, speaker_id: str, card_id: str, reaction_type: str, is_private: bool = True
    ) -> MutationAck:
        return await self._submit(ToggleReactionMutation(
            actor_id=self.player_id,
            speaker_id=speaker_id,
            card_id=card_id,
            reaction_type=reaction_type,
            is_private=is_private
        ))

    async def toggle_ripple(self, speaker_id: str, card_id: str) -> MutationAck:
        return await self._submit(ToggleRippleMutation(
            actor_id=self.player_id, speaker_id=speaker_id, card_id=card_id
        ))

    async def discard_cards(self, card_ids: List[str]) -> MutationAck:
        return await self._submit(MoveToDiscardMutation(actor_id=self.player_id, card_ids=card_ids))

    async def set_online(self, is_online: bool) -> MutationAck:
        return await self._submit(SetOnlineMutation(actor_id=self.player_id, is_online=is_online))

    # Views

    @property
    def state(self) -> MatchState:
        if self.store.local is None:
            raise SyncLost(f"Match {self.match_id} has not been loaded")
        return self.store.local

    @property
    def phase(self) -> str:
        return self.state.room.phase

    @property
    def current_speaker(self) -> Optional[str]:
        return self.state.room.active_player_id

    @property
    def is_read_only(self) -> bool:
        return self.store.lost or not self.store.is_ready

    @property
    def is_setup_complete(self) -> bool:
        """Every participant holds a selected card."""
        state = self.state
        return state.room.phase == PHASE_SETUP and bool(state.players) and all(
            selected_of(state, player_id) is not None for player_id in state.players
        )

    def custody_view(self) -> Dict[str, Any]:
        return custody_view(self.state)

    def exchange_view(self) -> Dict[str, Dict]:
        return exchange_view(self.state, self.player_id)

    def reaction_view(self, speaker_id: str, card_id: str) -> Dict[str, Any]:
        return reaction_view(self.state, speaker_id, card_id, self.player_id)

    def status_of(self, player_id: Optional[str] = None) -> str:
        return derive_status(self.state, player_id or self.player_id)
