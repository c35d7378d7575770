"""Game models and data structures"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import PHASE_SETUP, RIPPLE_TAG, ZONE_UNDEALT
from .rules import RoomSettings

ReactionKey = Tuple[str, str, str, str]  # speaker, listener, card, type or ripple tag


@dataclass(frozen=True)
class Card:
    id: str
    content: str
    category: str
    depth: int = 1  # 1..3
    contributor_id: Optional[str] = None


@dataclass
class CardLocation:
    zone: str = ZONE_UNDEALT  # undealt|hand|selected|discard
    player_id: Optional[str] = None  # holder for hand/selected, last holder for discard


@dataclass
class Player:
    id: str
    username: str
    is_online: bool = True
    has_spoken: bool = False
    joined_at: float = 0.0


@dataclass
class RoomState:
    created_by: str
    phase: str = PHASE_SETUP  # setup|speaking|listening|endgame
    active_player_id: Optional[str] = None
    current_round: int = 1
    total_rounds: int = 1
    is_speaker_sharing: bool = False
    settings: RoomSettings = field(default_factory=RoomSettings)


@dataclass
class ExchangeRequest:
    id: str
    from_id: str
    to_id: str
    card_id: str
    status: str = "pending"  # pending|accepted|declined
    created_at: float = 0.0


@dataclass
class Reaction:
    speaker_id: str
    listener_id: str
    card_id: str
    type: Optional[str] = None  # None for ripple marks
    is_private: bool = True
    ripple_marked: bool = False

    @property
    def key(self) -> ReactionKey:
        return reaction_key(self.speaker_id, self.listener_id, self.card_id, self.type or RIPPLE_TAG)


def reaction_key(speaker_id: str, listener_id: str, card_id: str, tag: str) -> ReactionKey:
    return (speaker_id, listener_id, card_id, tag)


@dataclass
class MatchState:
    match_id: str
    room: RoomState
    version: int = 0
    players: Dict[str, Player] = field(default_factory=dict)
    cards: Dict[str, CardLocation] = field(default_factory=dict)  # card id -> zone
    exchanges: Dict[str, ExchangeRequest] = field(default_factory=dict)
    reactions: Dict[ReactionKey, Reaction] = field(default_factory=dict)
    # (player_id, round) -> dealt card ids; authoritative copy only
    dealt: Dict[Tuple[str, int], List[str]] = field(default_factory=dict)

    def increment_version(self):
        self.version += 1

    def ordered_players(self) -> List[Player]:
        """Players in join order."""
        return sorted(self.players.values(), key=lambda p: (p.joined_at, p.id))
