"""
Phase state machine: setup -> speaking <-> listening -> endgame -> setup.

Each transition validates its guard against the given state and returns a new
state. Guard violations raise InvalidPhaseTransition before anything changes.
"""

import copy
import logging
import random
from typing import Dict, Optional

from .constants import (
    PHASE_ENDGAME, PHASE_LISTENING, PHASE_SETUP, PHASE_SPEAKING, STATUS_BROWSING,
    STATUS_CHOOSING, STATUS_DONE, STATUS_DRAWING, STATUS_LISTENING, STATUS_SPEAKING,
    ZONE_DISCARD, ZONE_SELECTED
)
from .custody import hand_of, move_cards, selected_of
from .errors import InvalidPhaseTransition
from .exchange import matched_requests
from .models import MatchState
from .rotation import pick_next_speaker
from .rules import merge_settings

logger = logging.getLogger(__name__)


def _require_phase(state: MatchState, *phases: str):
    if state.room.phase not in phases:
        raise InvalidPhaseTransition(
            f"Not allowed in phase {state.room.phase} (expected {' or '.join(phases)})"
        )


def _require_owner(state: MatchState, actor_id: str):
    if actor_id != state.room.created_by:
        raise InvalidPhaseTransition(f"Only the room creator can do this, not {actor_id}")


def _begin_turns(state: MatchState, rng: Optional[random.Random]):
    """Enter speaking with a freshly picked speaker, in place."""
    state.room.phase = PHASE_SPEAKING
    state.room.is_speaker_sharing = False

    if state.room.settings.is_remote:
        # everyone reviews at once; the creator ends the review
        state.room.active_player_id = None
        return

    next_speaker = pick_next_speaker(state.players.values(), rng)
    if next_speaker is None:
        _end_round(state)
    else:
        state.room.active_player_id = next_speaker


def _end_round(state: MatchState):
    state.room.phase = PHASE_ENDGAME
    state.room.active_player_id = None
    state.room.is_speaker_sharing = False
    logger.info(f"Match {state.match_id} round {state.room.current_round} complete")


def start_speaking_phase(state: MatchState, actor_id: str, rng: Optional[random.Random] = None) -> MatchState:
    """
    Leave setup once every participant holds a selected card.

    Args:
        state: Current match state
        actor_id: Player requesting the transition (must be the room creator)
        rng: Random source for the first speaker pick

    Returns:
        Updated state in the speaking phase
    """
    _require_phase(state, PHASE_SETUP)
    _require_owner(state, actor_id)

    if not state.players:
        raise InvalidPhaseTransition("Cannot start speaking without participants")

    not_ready = [
        player.id for player in state.ordered_players()
        if selected_of(state, player.id) is None
    ]
    if not_ready:
        raise InvalidPhaseTransition(f"Players without a selected card: {', '.join(not_ready)}")

    new_state = copy.deepcopy(state)
    _begin_turns(new_state, rng)
    return new_state


def start_sharing(state: MatchState, actor_id: str) -> MatchState:
    """The active speaker starts sharing their card: speaking -> listening."""
    _require_phase(state, PHASE_SPEAKING)

    if state.room.active_player_id is None:
        raise InvalidPhaseTransition("There is no active speaker")
    if actor_id != state.room.active_player_id:
        raise InvalidPhaseTransition(f"Player {actor_id} is not the active speaker")

    new_state = copy.deepcopy(state)
    new_state.room.phase = PHASE_LISTENING
    new_state.room.is_speaker_sharing = True
    return new_state


def finish_speaking(state: MatchState, actor_id: str, rng: Optional[random.Random] = None) -> MatchState:
    """
    End the active speaker's turn and rotate.

    The speaker is marked as spoken and their remaining hand goes to the
    discard pile; their selected card stays where it is. The room creator may
    also end a turn, e.g. for a speaker who went offline.

    Args:
        state: Current match state
        actor_id: The active speaker or the room creator
        rng: Random source for the next speaker pick

    Returns:
        Updated state: speaking with the next speaker, or endgame
    """
    _require_phase(state, PHASE_SPEAKING, PHASE_LISTENING)

    speaker_id = state.room.active_player_id
    if speaker_id is None:
        raise InvalidPhaseTransition("There is no active speaker")
    if actor_id not in (speaker_id, state.room.created_by):
        raise InvalidPhaseTransition(f"Player {actor_id} cannot end the turn of {speaker_id}")

    new_state = copy.deepcopy(state)
    new_state.room.is_speaker_sharing = False
    new_state.players[speaker_id].has_spoken = True
    move_cards(new_state, hand_of(new_state, speaker_id), ZONE_DISCARD)

    next_speaker = pick_next_speaker(new_state.players.values(), rng)
    if next_speaker is None:
        _end_round(new_state)
    else:
        new_state.room.phase = PHASE_SPEAKING
        new_state.room.active_player_id = next_speaker
    return new_state


def finish_review(state: MatchState, actor_id: str) -> MatchState:
    """Remote mode: the creator closes the shared review and the round ends."""
    _require_phase(state, PHASE_SPEAKING, PHASE_LISTENING)
    _require_owner(state, actor_id)

    if not state.room.settings.is_remote:
        raise InvalidPhaseTransition("Review can only be finished in remote mode")

    new_state = copy.deepcopy(state)
    for player in new_state.players.values():
        player.has_spoken = True
        move_cards(new_state, hand_of(new_state, player.id), ZONE_DISCARD)
    _end_round(new_state)
    return new_state


def _clear_tables(state: MatchState):
    """Send every hand and selected card to the discard pile, in place."""
    for player in state.players.values():
        held = hand_of(state, player.id)
        selected = selected_of(state, player.id)
        if selected is not None:
            held.append(selected)
        move_cards(state, held, ZONE_DISCARD)


def start_next_round(state: MatchState, actor_id: str, settings: Optional[Dict] = None) -> MatchState:
    """
    Encore: endgame -> setup with optional new settings.

    Args:
        state: Current match state
        actor_id: Player requesting the encore (must be the room creator)
        settings: Partial RoomSettings updates, e.g. {"card_depth": 2}

    Returns:
        Updated state back in setup for the next round
    """
    _require_phase(state, PHASE_ENDGAME)
    _require_owner(state, actor_id)

    new_state = copy.deepcopy(state)
    _clear_tables(new_state)
    for player in new_state.players.values():
        player.has_spoken = False

    updates = dict(settings or {})
    updates["is_exchange"] = False
    new_state.room.settings = merge_settings(new_state.room.settings, updates)

    new_state.room.phase = PHASE_SETUP
    new_state.room.active_player_id = None
    new_state.room.is_speaker_sharing = False
    new_state.room.current_round += 1
    new_state.room.total_rounds = max(new_state.room.total_rounds, new_state.room.current_round)
    logger.info(f"Match {state.match_id} starting round {new_state.room.current_round}")
    return new_state


def start_exchange_round(state: MatchState, actor_id: str, rng: Optional[random.Random] = None) -> MatchState:
    """
    Play out matched exchanges: endgame -> speaking.

    Each matched request hands its card to the recipient, who then answers it.
    A recipient with several matched cards answers the oldest; the rest stay
    discarded. Players without an incoming card sit the round out. Requests
    are consumed by the round.
    """
    _require_phase(state, PHASE_ENDGAME)
    _require_owner(state, actor_id)

    matched = sorted(matched_requests(state.exchanges.values()), key=lambda r: (r.created_at, r.id))
    if not matched:
        raise InvalidPhaseTransition("No matched exchanges to play")

    new_state = copy.deepcopy(state)
    _clear_tables(new_state)

    recipients = set()
    for request in matched:
        if request.to_id in recipients:
            continue
        move_cards(new_state, [request.card_id], ZONE_SELECTED, request.to_id)
        recipients.add(request.to_id)
    for request in matched:
        new_state.exchanges.pop(request.id, None)

    for player in new_state.players.values():
        player.has_spoken = player.id not in recipients

    new_state.room.settings = merge_settings(new_state.room.settings, {"is_exchange": True})
    _begin_turns(new_state, rng)
    logger.info(f"Match {state.match_id} exchange round with {len(recipients)} recipients")
    return new_state


def derive_status(state: MatchState, player_id: str) -> str:
    """
    Player status as a pure function of phase, custody and has_spoken.

    drawing: setup, nothing dealt yet
    choosing: setup, hand dealt, nothing selected
    browsing: setup with a card selected, or a remote-mode review
    speaking / listening: during turns, relative to the active speaker
    done: endgame
    """
    player = state.players.get(player_id)
    if player is None:
        raise ValueError(f"Unknown player: {player_id}")

    phase = state.room.phase
    if phase == PHASE_SETUP:
        if selected_of(state, player_id) is not None:
            return STATUS_BROWSING
        if hand_of(state, player_id):
            return STATUS_CHOOSING
        return STATUS_DRAWING

    if phase in (PHASE_SPEAKING, PHASE_LISTENING):
        if state.room.active_player_id is None:
            return STATUS_BROWSING
        if state.room.active_player_id == player_id:
            return STATUS_SPEAKING
        return STATUS_LISTENING

    return STATUS_DONE
