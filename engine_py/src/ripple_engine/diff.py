"""
State diff computation for efficient updates.
"""

import copy
from typing import Any, Dict, List, Optional

from .models import MatchState
from .serialization import sanitize_state

ENTRY_SECTIONS = ["cards", "exchanges", "reactions"]


def escape_pointer(token: str) -> str:
    """Escape a JSON pointer token (RFC 6901)."""
    return token.replace("~", "~0").replace("/", "~1")


def unescape_pointer(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def compute_diff(
    old_state: Optional[MatchState],
    new_state: MatchState,
    viewer_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Compute a JSON Patch-style diff between two states.

    Args:
        old_state: Previous match state
        new_state: New match state
        viewer_id: ID of the player viewing the state

    Returns:
        List of patch operations
    """
    if old_state is None:
        # First state, no diff needed
        return []

    return diff_documents(sanitize_state(old_state, viewer_id), sanitize_state(new_state, viewer_id))


def diff_documents(old: Dict[str, Any], new: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Diff two snapshot dictionaries as produced by serialization.serialize_state."""
    ops = []

    if old.get("version") != new.get("version"):
        ops.append({"op": "replace", "path": "/version", "value": new.get("version")})

    # Room fields
    old_room = old.get("room", {})
    new_room = new.get("room", {})
    for field in sorted(set(old_room) | set(new_room)):
        if old_room.get(field) != new_room.get(field):
            ops.append({
                "op": "replace",
                "path": f"/room/{field}",
                "value": copy.deepcopy(new_room.get(field))
            })

    # Players: add/remove whole records, replace changed fields
    old_players = old.get("players", {})
    new_players = new.get("players", {})
    for player_id in sorted(set(old_players) | set(new_players)):
        old_player = old_players.get(player_id)
        new_player = new_players.get(player_id)
        path = f"/players/{escape_pointer(player_id)}"

        if old_player is None:
            ops.append({"op": "add", "path": path, "value": copy.deepcopy(new_player)})
        elif new_player is None:
            ops.append({"op": "remove", "path": path})
        elif old_player != new_player:
            for field in sorted(set(old_player) | set(new_player)):
                if old_player.get(field) != new_player.get(field):
                    ops.append({
                        "op": "replace",
                        "path": f"{path}/{field}",
                        "value": new_player.get(field)
                    })

    # Keyed sections: whole-entry operations
    for section in ENTRY_SECTIONS:
        old_entries = old.get(section, {})
        new_entries = new.get(section, {})
        for key in sorted(set(old_entries) | set(new_entries)):
            old_entry = old_entries.get(key)
            new_entry = new_entries.get(key)
            path = f"/{section}/{escape_pointer(key)}"

            if old_entry is None:
                ops.append({"op": "add", "path": path, "value": copy.deepcopy(new_entry)})
            elif new_entry is None:
                ops.append({"op": "remove", "path": path})
            elif old_entry != new_entry:
                ops.append({"op": "replace", "path": path, "value": copy.deepcopy(new_entry)})

    return ops


def apply_diff(state: Dict[str, Any], ops: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Apply a diff to a state dictionary.

    Args:
        state: Current state dictionary
        ops: List of patch operations to apply

    Returns:
        Updated state dictionary
    """
    new_state = copy.deepcopy(state)

    for op in ops:
        op_type = op["op"]
        path_parts = [unescape_pointer(p) for p in op["path"].split("/")[1:]]
        value = copy.deepcopy(op.get("value"))

        if op_type in ("replace", "add"):
            _set_nested_value(new_state, path_parts, value)
        elif op_type == "remove":
            _remove_nested_value(new_state, path_parts)
        else:
            raise ValueError(f"Unknown patch operation: {op_type}")

    return new_state


def _set_nested_value(obj: Dict[str, Any], path: List[str], value: Any):
    """Set a value at a nested path in a dictionary."""
    current = obj

    for key in path[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    if path:
        current[path[-1]] = value


def _remove_nested_value(obj: Dict[str, Any], path: List[str]):
    """Remove a value at a nested path in a dictionary."""
    current = obj

    for key in path[:-1]:
        if key not in current:
            return  # Path doesn't exist
        current = current[key]

    if path and path[-1] in current:
        del current[path[-1]]


def should_send_full_state(ops: List[Dict[str, Any]], threshold: int = 40) -> bool:
    """
    Determine if a full state should be sent instead of a diff.

    Args:
        ops: List of patch operations
        threshold: Maximum number of operations before sending full state

    Returns:
        True if full state should be sent
    """
    return len(ops) > threshold


def get_changed_fields(ops: List[Dict[str, Any]]) -> List[str]:
    """Top-level sections touched by a list of operations."""
    changed_fields = set()
    for op in ops:
        changed_fields.add(op["path"].lstrip("/").split("/")[0])
    return sorted(changed_fields)
