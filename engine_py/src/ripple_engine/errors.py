# engine_py/src/ripple_engine/errors.py

from typing import Optional


class GameError(Exception):
    """Base exception for game-related errors."""
    code = "GAME_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code or self.code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


# Specific error codes
INVALID_PHASE_TRANSITION = "INVALID_PHASE_TRANSITION"
INVALID_CARD_OPERATION = "INVALID_CARD_OPERATION"
INVALID_EXCHANGE_OPERATION = "INVALID_EXCHANGE_OPERATION"
DEALING_FAILED = "DEALING_FAILED"
SYNC_LOST = "SYNC_LOST"
INVALID_MUTATION = "INVALID_MUTATION"
MATCH_NOT_FOUND = "MATCH_NOT_FOUND"
INTERNAL_ERROR = "INTERNAL_ERROR"


class InvalidPhaseTransition(GameError):
    """A phase change was attempted outside its guard."""
    code = INVALID_PHASE_TRANSITION


class InvalidCardOperation(GameError):
    """A card is not in the zone the operation expects."""
    code = INVALID_CARD_OPERATION


class InvalidExchangeOperation(GameError):
    """An exchange request was acted on in a state that does not allow it."""
    code = INVALID_EXCHANGE_OPERATION


class DealingFailed(GameError):
    """Dealing was rejected, or its outcome is unknown.

    ``ambiguous`` is set when the request may or may not have been applied
    (timeout, dropped connection). Callers must re-synchronize and inspect the
    hand instead of dealing again.
    """
    code = DEALING_FAILED

    def __init__(self, message: str, ambiguous: bool = False):
        self.ambiguous = ambiguous
        super().__init__(message)


class SyncLost(GameError):
    """The push channel dropped; local state is stale and read-only."""
    code = SYNC_LOST


_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        InvalidPhaseTransition,
        InvalidCardOperation,
        InvalidExchangeOperation,
        DealingFailed,
        SyncLost,
    )
}


def error_from_code(code: Optional[str], message: str) -> GameError:
    """Rebuild a taxonomy error from a wire error code."""
    error_cls = _ERRORS_BY_CODE.get(code or "")
    if error_cls is None:
        return GameError(message, code=code or INTERNAL_ERROR)
    return error_cls(message)


# Helper function to raise common errors
def raise_error(code: str, message: str):
    raise error_from_code(code, message)
