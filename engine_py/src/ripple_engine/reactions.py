"""
Reaction and ripple ledger.

The presence of a record is the flag: toggling deletes an existing record or
inserts a missing one. Ripple marks live under their own tag so they toggle
independently of reaction types.
"""

import copy
from dataclasses import asdict
from typing import Dict, List, Optional

from .constants import REACTION_TELLMEMORE, REACTION_TYPES, RIPPLE_TAG
from .errors import InvalidCardOperation
from .models import MatchState, Reaction, reaction_key


def _check_participants(state: MatchState, listener_id: str, speaker_id: str, card_id: str):
    for player_id in (listener_id, speaker_id):
        if player_id not in state.players:
            raise InvalidCardOperation(f"Player {player_id} is not in this match")
    if card_id not in state.cards:
        raise InvalidCardOperation(f"Card {card_id} is not part of this match")


def toggle_reaction(
    state: MatchState,
    listener_id: str,
    speaker_id: str,
    card_id: str,
    reaction_type: str,
    is_private: bool = True
) -> MatchState:
    """
    Flip a listener's reaction to a speaker's card.

    Args:
        state: Current match state
        listener_id: Player reacting
        speaker_id: Player whose card is reacted to
        card_id: The speaker's card
        reaction_type: One of REACTION_TYPES
        is_private: Hide the reaction from third parties

    Returns:
        Updated state with the record inserted or removed
    """
    if reaction_type not in REACTION_TYPES:
        raise ValueError(f"Unknown reaction type: {reaction_type}")
    _check_participants(state, listener_id, speaker_id, card_id)

    new_state = copy.deepcopy(state)
    key = reaction_key(speaker_id, listener_id, card_id, reaction_type)
    if key in new_state.reactions:
        del new_state.reactions[key]
    else:
        new_state.reactions[key] = Reaction(
            speaker_id=speaker_id,
            listener_id=listener_id,
            card_id=card_id,
            type=reaction_type,
            is_private=is_private
        )
    return new_state


def toggle_ripple(state: MatchState, listener_id: str, speaker_id: str, card_id: str) -> MatchState:
    """Flip the listener's ripple mark on a speaker's card."""
    if not state.room.settings.allow_ripples:
        raise InvalidCardOperation("Ripples are disabled in this room")
    _check_participants(state, listener_id, speaker_id, card_id)

    new_state = copy.deepcopy(state)
    key = reaction_key(speaker_id, listener_id, card_id, RIPPLE_TAG)
    if key in new_state.reactions:
        del new_state.reactions[key]
    else:
        new_state.reactions[key] = Reaction(
            speaker_id=speaker_id,
            listener_id=listener_id,
            card_id=card_id,
            ripple_marked=True
        )
    return new_state


def is_visible(reaction: Reaction, viewer_id: Optional[str]) -> bool:
    """Listener and speaker always see a record; third parties only public ones."""
    if viewer_id in (reaction.listener_id, reaction.speaker_id):
        return True
    return not reaction.is_private


def reactions_for(
    state: MatchState,
    speaker_id: str,
    card_id: str,
    viewer_id: Optional[str] = None
) -> List[Reaction]:
    """Records on (speaker, card), filtered for viewer_id when given."""
    return [
        reaction for reaction in state.reactions.values()
        if reaction.speaker_id == speaker_id and reaction.card_id == card_id
        and (viewer_id is None or is_visible(reaction, viewer_id))
    ]


def is_rippled(state: MatchState, listener_id: str, speaker_id: str, card_id: str) -> bool:
    return reaction_key(speaker_id, listener_id, card_id, RIPPLE_TAG) in state.reactions


def rippled_cards(state: MatchState, listener_id: str) -> List[str]:
    """Cards the listener saved for later, in the order they were marked."""
    return [
        reaction.card_id for reaction in state.reactions.values()
        if reaction.listener_id == listener_id and reaction.ripple_marked
    ]


def has_tell_me_more(state: MatchState, speaker_id: str, card_id: str) -> bool:
    return any(
        reaction.type == REACTION_TELLMEMORE
        for reaction in reactions_for(state, speaker_id, card_id)
    )


def reaction_view(state: MatchState, speaker_id: str, card_id: str, viewer_id: Optional[str]) -> Dict:
    """What viewer_id sees of the reactions and ripples on (speaker, card)."""
    visible = reactions_for(state, speaker_id, card_id, viewer_id)
    counts = {reaction_type: 0 for reaction_type in REACTION_TYPES}
    for reaction in visible:
        if reaction.type is not None:
            counts[reaction.type] += 1

    return {
        "counts": counts,
        "mine": [r.type for r in visible if r.listener_id == viewer_id and r.type is not None],
        "rippled": viewer_id is not None and is_rippled(state, viewer_id, speaker_id, card_id),
        "ripple_count": sum(1 for r in visible if r.ripple_marked),
        "reactions": [asdict(r) for r in visible],
    }
