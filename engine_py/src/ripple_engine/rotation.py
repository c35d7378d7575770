"""
Speaker rotation.

There is no speaking order: the next speaker is drawn uniformly among the
players who have not spoken this round. Only the authoritative copy's pick
counts; a client's pick is a guess until the push arrives.
"""

import random
from typing import Iterable, List, Optional

from .models import Player


def unspoken(players: Iterable[Player]) -> List[Player]:
    """Players still waiting for their turn, in join order."""
    return sorted(
        (player for player in players if not player.has_spoken),
        key=lambda p: (p.joined_at, p.id)
    )


def is_round_complete(players: Iterable[Player]) -> bool:
    return not unspoken(players)


def pick_next_speaker(players: Iterable[Player], rng: Optional[random.Random] = None) -> Optional[str]:
    """
    Pick the next active speaker.

    Args:
        players: Match participants
        rng: Random source, seeded by callers that need repeatable picks

    Returns:
        A player id, or None when everyone has spoken (round complete)
    """
    candidates = unspoken(players)
    if not candidates:
        return None

    rng = rng or random.Random()
    return rng.choice(candidates).id
