"""Game-state synchronization and turn-lifecycle engine for Ripple"""

from .engine import MatchEngine
from .errors import (
    DealingFailed, GameError, InvalidCardOperation, InvalidExchangeOperation,
    InvalidPhaseTransition, SyncLost
)
from .models import Card, MatchState
from .sync import GameSession, MatchStore

__all__ = [
    "Card",
    "DealingFailed",
    "GameError",
    "GameSession",
    "InvalidCardOperation",
    "InvalidExchangeOperation",
    "InvalidPhaseTransition",
    "MatchEngine",
    "MatchState",
    "MatchStore",
    "SyncLost",
]
