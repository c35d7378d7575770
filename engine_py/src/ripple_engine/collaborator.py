"""
Contract between a participant's session and the authoritative match store.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from .errors import GameError, error_from_code
from .models import Card

PushHandler = Callable[[Dict[str, Any]], None]
LostHandler = Callable[[Exception], None]


class MutationAck:
    """Outcome of a submitted mutation."""

    def __init__(
        self,
        ok: bool,
        version: Optional[int] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None
    ):
        self.ok = ok
        self.version = version
        self.error_code = error_code
        self.error_message = error_message

    @classmethod
    def accepted(cls, version: int) -> 'MutationAck':
        return cls(True, version=version)

    @classmethod
    def rejected(cls, error: GameError) -> 'MutationAck':
        return cls(False, error_code=error.code, error_message=error.message)

    def to_error(self) -> GameError:
        """The taxonomy error a rejection stands for."""
        return error_from_code(self.error_code, self.error_message or "Mutation rejected")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "version": self.version,
            "error_code": self.error_code,
            "error_message": self.error_message
        }

    def __repr__(self):
        if self.ok:
            return f"MutationAck(ok, version={self.version})"
        return f"MutationAck(rejected, {self.error_code}: {self.error_message})"


class Subscription:
    """Handle for a push channel; cancel() detaches it and is safe to call twice."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self.active = True

    def cancel(self):
        if not self.active:
            return
        self.active = False
        if self._on_cancel is not None:
            self._on_cancel()


class Collaborator(ABC):
    """Authoritative persistence and notification service for matches."""

    @abstractmethod
    async def fetch_state(self, match_id: str, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        """Full current snapshot, sanitized for viewer_id."""

    @abstractmethod
    async def subscribe(
        self,
        match_id: str,
        on_change: PushHandler,
        viewer_id: Optional[str] = None,
        on_lost: Optional[LostHandler] = None
    ) -> Subscription:
        """
        Register for pushes.

        on_change receives {"match_id", "version", "ops"} or
        {"match_id", "version", "state"} after every committed change.
        on_lost is called once if the channel drops.
        """

    @abstractmethod
    async def submit_mutation(self, match_id: str, mutation: Dict[str, Any]) -> MutationAck:
        """Apply a mutation descriptor to the authoritative copy."""

    @abstractmethod
    async def deal_atomic(self, match_id: str, player_id: str, count: int) -> List[str]:
        """Deal cards with server-side exclusivity, at most once per player and round."""

    @abstractmethod
    async def fetch_cards(self, card_ids: List[str]) -> List[Card]:
        """Card contents for the given ids; unknown ids are omitted."""
