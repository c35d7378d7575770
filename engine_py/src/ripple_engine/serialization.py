"""
State serialization and sanitization utilities.
"""

from typing import Any, Dict, Optional

from .models import CardLocation, ExchangeRequest, MatchState, Player, Reaction, RoomState
from .reactions import is_visible
from .rules import RoomSettings


def reaction_id(reaction: Reaction) -> str:
    """String form of a reaction key, used as the snapshot dict key."""
    return ":".join(reaction.key)


def serialize_state(state: MatchState, viewer_id: Optional[str] = None, sanitize: bool = False) -> Dict[str, Any]:
    """
    Convert a match state to a JSON-ready dict.

    Args:
        state: Match state to serialize
        viewer_id: Player the snapshot is for, used when sanitizing
        sanitize: Drop private reactions the viewer is not part of

    Returns:
        Snapshot dictionary (the deal ledger is never included)
    """
    room = state.room
    reactions = {}
    for reaction in state.reactions.values():
        if sanitize and not is_visible(reaction, viewer_id):
            continue
        reactions[reaction_id(reaction)] = {
            "speaker_id": reaction.speaker_id,
            "listener_id": reaction.listener_id,
            "card_id": reaction.card_id,
            "type": reaction.type,
            "is_private": reaction.is_private,
            "ripple_marked": reaction.ripple_marked
        }

    return {
        "match_id": state.match_id,
        "version": state.version,
        "room": {
            "created_by": room.created_by,
            "phase": room.phase,
            "active_player_id": room.active_player_id,
            "current_round": room.current_round,
            "total_rounds": room.total_rounds,
            "is_speaker_sharing": room.is_speaker_sharing,
            "settings": room.settings.model_dump()
        },
        "players": {
            player_id: {
                "id": player.id,
                "username": player.username,
                "is_online": player.is_online,
                "has_spoken": player.has_spoken,
                "joined_at": player.joined_at
            }
            for player_id, player in state.players.items()
        },
        "cards": {
            card_id: {"zone": location.zone, "player_id": location.player_id}
            for card_id, location in state.cards.items()
        },
        "exchanges": {
            request_id: {
                "id": request.id,
                "from_id": request.from_id,
                "to_id": request.to_id,
                "card_id": request.card_id,
                "status": request.status,
                "created_at": request.created_at
            }
            for request_id, request in state.exchanges.items()
        },
        "reactions": reactions
    }


def sanitize_state(state: MatchState, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """Snapshot of the state as viewer_id is allowed to see it."""
    return serialize_state(state, viewer_id, sanitize=True)


def deserialize_state(data: Dict[str, Any]) -> MatchState:
    """Rebuild a MatchState from a snapshot dictionary."""
    room_data = data["room"]
    room = RoomState(
        created_by=room_data["created_by"],
        phase=room_data["phase"],
        active_player_id=room_data.get("active_player_id"),
        current_round=room_data.get("current_round", 1),
        total_rounds=room_data.get("total_rounds", 1),
        is_speaker_sharing=room_data.get("is_speaker_sharing", False),
        settings=RoomSettings(**room_data.get("settings", {}))
    )

    state = MatchState(match_id=data["match_id"], room=room, version=data.get("version", 0))

    for player_id, player_data in data.get("players", {}).items():
        state.players[player_id] = Player(**player_data)

    for card_id, location_data in data.get("cards", {}).items():
        state.cards[card_id] = CardLocation(**location_data)

    for request_id, request_data in data.get("exchanges", {}).items():
        state.exchanges[request_id] = ExchangeRequest(**request_data)

    for reaction_data in data.get("reactions", {}).values():
        reaction = Reaction(**reaction_data)
        state.reactions[reaction.key] = reaction

    return state
