"""
Mutation descriptors and the single write boundary.

Clients apply a mutation to their local copy as a provisional guess and
submit the same descriptor; the authoritative engine applies it again and its
result is what everybody ends up with.
"""

import copy
import random
import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .constants import ZONE_DISCARD, ZONE_UNDEALT
from .custody import move_cards, select_among
from .errors import GameError, INVALID_MUTATION, InvalidCardOperation
from .exchange import propose_exchange, respond_to_exchange
from .models import MatchState
from .phases import (
    finish_review, finish_speaking, start_exchange_round, start_next_round,
    start_sharing, start_speaking_phase
)
from .reactions import toggle_reaction, toggle_ripple


class MutationType(str, Enum):
    """Mutation types accepted by the authoritative engine."""
    SELECT_CARD = "select_card"
    START_SPEAKING_PHASE = "start_speaking_phase"
    START_SHARING = "start_sharing"
    FINISH_SPEAKING = "finish_speaking"
    FINISH_REVIEW = "finish_review"
    START_NEXT_ROUND = "start_next_round"
    START_EXCHANGE_ROUND = "start_exchange_round"
    PROPOSE_EXCHANGE = "propose_exchange"
    RESPOND_TO_EXCHANGE = "respond_to_exchange"
    TOGGLE_REACTION = "toggle_reaction"
    TOGGLE_RIPPLE = "toggle_ripple"
    MOVE_TO_DISCARD = "move_to_discard"
    SET_ONLINE = "set_online"


class BaseMutation(BaseModel):
    """Base mutation model."""
    type: MutationType
    actor_id: str = Field(..., min_length=1, max_length=64)


class SelectCardMutation(BaseMutation):
    """Keep one card from the hand, discard the rest."""
    type: MutationType = MutationType.SELECT_CARD
    card_id: str = Field(..., min_length=1)
    rejected_card_ids: Optional[List[str]] = None


class StartSpeakingPhaseMutation(BaseMutation):
    type: MutationType = MutationType.START_SPEAKING_PHASE


class StartSharingMutation(BaseMutation):
    type: MutationType = MutationType.START_SHARING


class FinishSpeakingMutation(BaseMutation):
    type: MutationType = MutationType.FINISH_SPEAKING


class FinishReviewMutation(BaseMutation):
    type: MutationType = MutationType.FINISH_REVIEW


class StartNextRoundMutation(BaseMutation):
    """Encore with optional settings updates."""
    type: MutationType = MutationType.START_NEXT_ROUND
    settings: Dict[str, Any] = Field(default_factory=dict)


class StartExchangeRoundMutation(BaseMutation):
    type: MutationType = MutationType.START_EXCHANGE_ROUND


class ProposeExchangeMutation(BaseMutation):
    """Propose one of the actor's discarded cards to another player."""
    type: MutationType = MutationType.PROPOSE_EXCHANGE
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    to_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    created_at: float = Field(default_factory=time.time)


class RespondToExchangeMutation(BaseMutation):
    type: MutationType = MutationType.RESPOND_TO_EXCHANGE
    request_id: str = Field(..., min_length=1)
    accept: bool


class ToggleReactionMutation(BaseMutation):
    type: MutationType = MutationType.TOGGLE_REACTION
    speaker_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    reaction_type: Literal["inspiring", "resonates", "metoo", "tellmemore"]
    is_private: bool = True


class ToggleRippleMutation(BaseMutation):
    type: MutationType = MutationType.TOGGLE_RIPPLE
    speaker_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)


class MoveToDiscardMutation(BaseMutation):
    """Discard cards the actor holds or last held."""
    type: MutationType = MutationType.MOVE_TO_DISCARD
    card_ids: List[str] = Field(..., min_length=1)


class SetOnlineMutation(BaseMutation):
    type: MutationType = MutationType.SET_ONLINE
    is_online: bool


Mutation = Union[
    SelectCardMutation,
    StartSpeakingPhaseMutation,
    StartSharingMutation,
    FinishSpeakingMutation,
    FinishReviewMutation,
    StartNextRoundMutation,
    StartExchangeRoundMutation,
    ProposeExchangeMutation,
    RespondToExchangeMutation,
    ToggleReactionMutation,
    ToggleRippleMutation,
    MoveToDiscardMutation,
    SetOnlineMutation
]


MUTATION_MODELS = {
    MutationType.SELECT_CARD: SelectCardMutation,
    MutationType.START_SPEAKING_PHASE: StartSpeakingPhaseMutation,
    MutationType.START_SHARING: StartSharingMutation,
    MutationType.FINISH_SPEAKING: FinishSpeakingMutation,
    MutationType.FINISH_REVIEW: FinishReviewMutation,
    MutationType.START_NEXT_ROUND: StartNextRoundMutation,
    MutationType.START_EXCHANGE_ROUND: StartExchangeRoundMutation,
    MutationType.PROPOSE_EXCHANGE: ProposeExchangeMutation,
    MutationType.RESPOND_TO_EXCHANGE: RespondToExchangeMutation,
    MutationType.TOGGLE_REACTION: ToggleReactionMutation,
    MutationType.TOGGLE_RIPPLE: ToggleRippleMutation,
    MutationType.MOVE_TO_DISCARD: MoveToDiscardMutation,
    MutationType.SET_ONLINE: SetOnlineMutation,
}


def parse_mutation(data: Dict[str, Any]) -> Mutation:
    """
    Parse raw mutation data into the matching descriptor model.

    Args:
        data: Raw mutation data, e.g. from the wire

    Returns:
        Parsed mutation model

    Raises:
        ValueError: If the mutation type is invalid or data is malformed
    """
    mutation_type = data.get("type")

    if not mutation_type:
        raise ValueError("Missing mutation type")

    try:
        mutation_type = MutationType(mutation_type)
    except ValueError:
        raise ValueError(f"Invalid mutation type: {mutation_type}")

    try:
        return MUTATION_MODELS[mutation_type](**data)
    except Exception as e:
        raise ValueError(f"Invalid mutation data: {str(e)}")


def _discard_own_cards(state: MatchState, actor_id: str, card_ids: List[str]) -> MatchState:
    for card_id in card_ids:
        location = state.cards.get(card_id)
        if location is None or location.zone == ZONE_UNDEALT or location.player_id != actor_id:
            raise InvalidCardOperation(f"Player {actor_id} does not hold card {card_id}")

    new_state = copy.deepcopy(state)
    move_cards(new_state, card_ids, ZONE_DISCARD)
    return new_state


def _set_online(state: MatchState, actor_id: str, is_online: bool) -> MatchState:
    new_state = copy.deepcopy(state)
    new_state.players[actor_id].is_online = is_online
    return new_state


def apply_mutation(
    state: MatchState,
    mutation: Mutation,
    rng: Optional[random.Random] = None
) -> MatchState:
    """
    Apply one mutation and return the resulting state.

    The input state is never modified and the version is left alone; the
    authoritative engine bumps it when it commits.

    Args:
        state: Current match state
        mutation: Parsed mutation descriptor
        rng: Random source for speaker picks

    Returns:
        New match state

    Raises:
        GameError: If the mutation violates a guard
    """
    actor_id = mutation.actor_id
    if actor_id not in state.players:
        raise GameError(f"Unknown player: {actor_id}", code=INVALID_MUTATION)

    if isinstance(mutation, SelectCardMutation):
        return select_among(state, mutation.card_id, actor_id, mutation.rejected_card_ids)
    elif isinstance(mutation, StartSpeakingPhaseMutation):
        return start_speaking_phase(state, actor_id, rng)
    elif isinstance(mutation, StartSharingMutation):
        return start_sharing(state, actor_id)
    elif isinstance(mutation, FinishSpeakingMutation):
        return finish_speaking(state, actor_id, rng)
    elif isinstance(mutation, FinishReviewMutation):
        return finish_review(state, actor_id)
    elif isinstance(mutation, StartNextRoundMutation):
        return start_next_round(state, actor_id, mutation.settings)
    elif isinstance(mutation, StartExchangeRoundMutation):
        return start_exchange_round(state, actor_id, rng)
    elif isinstance(mutation, ProposeExchangeMutation):
        return propose_exchange(
            state, mutation.request_id, actor_id, mutation.to_id,
            mutation.card_id, mutation.created_at
        )
    elif isinstance(mutation, RespondToExchangeMutation):
        return respond_to_exchange(state, mutation.request_id, actor_id, mutation.accept)
    elif isinstance(mutation, ToggleReactionMutation):
        return toggle_reaction(
            state, actor_id, mutation.speaker_id, mutation.card_id,
            mutation.reaction_type, mutation.is_private
        )
    elif isinstance(mutation, ToggleRippleMutation):
        return toggle_ripple(state, actor_id, mutation.speaker_id, mutation.card_id)
    elif isinstance(mutation, MoveToDiscardMutation):
        return _discard_own_cards(state, actor_id, mutation.card_ids)
    elif isinstance(mutation, SetOnlineMutation):
        return _set_online(state, actor_id, mutation.is_online)
    else:
        raise GameError(f"Unhandled mutation type: {type(mutation)}", code=INVALID_MUTATION)
