"""
Pairwise card exchange negotiation.

A request is one player daring another to answer one of their discarded
cards. Requests go pending -> accepted | declined and never re-open; a
counter-offer is a new request in the opposite direction. A match between two
players is derived from the current requests every time it is asked for.
"""

import copy
from dataclasses import asdict
from typing import Dict, Iterable, List, Tuple

from .constants import EXCHANGE_ACCEPTED, EXCHANGE_DECLINED, EXCHANGE_PENDING, EXCHANGE_TERMINAL, ZONE_DISCARD
from .errors import InvalidCardOperation, InvalidExchangeOperation
from .models import ExchangeRequest, MatchState


def propose_exchange(
    state: MatchState,
    request_id: str,
    from_id: str,
    to_id: str,
    card_id: str,
    created_at: float = 0.0
) -> MatchState:
    """
    Create a pending request from one player to another.

    Args:
        state: Current match state
        request_id: Id for the new request
        from_id: Proposing player
        to_id: Player asked to answer the card
        card_id: One of the proposer's discarded cards
        created_at: Creation timestamp, orders requests

    Returns:
        Updated state with the new pending request
    """
    if not state.room.settings.allow_exchanges:
        raise InvalidExchangeOperation("Exchanges are disabled in this room")
    if from_id == to_id:
        raise InvalidExchangeOperation("Cannot propose an exchange to yourself")
    for player_id in (from_id, to_id):
        if player_id not in state.players:
            raise InvalidExchangeOperation(f"Player {player_id} is not in this match")
    if request_id in state.exchanges:
        raise InvalidExchangeOperation(f"Exchange request {request_id} already exists")

    location = state.cards.get(card_id)
    if location is None or location.zone != ZONE_DISCARD or location.player_id != from_id:
        raise InvalidCardOperation(f"Card {card_id} is not in the discard pile of {from_id}")

    # a card is on offer to at most one player at a time
    for request in state.exchanges.values():
        if request.card_id == card_id and request.status != EXCHANGE_DECLINED:
            raise InvalidExchangeOperation(f"Card {card_id} was already proposed to {request.to_id}")

    new_state = copy.deepcopy(state)
    new_state.exchanges[request_id] = ExchangeRequest(
        id=request_id,
        from_id=from_id,
        to_id=to_id,
        card_id=card_id,
        status=EXCHANGE_PENDING,
        created_at=created_at
    )
    return new_state


def respond_to_exchange(state: MatchState, request_id: str, responder_id: str, accept: bool) -> MatchState:
    """Accept or decline a pending request. Only its recipient may answer, and only once."""
    request = state.exchanges.get(request_id)
    if request is None:
        raise InvalidExchangeOperation(f"Unknown exchange request: {request_id}")
    if responder_id != request.to_id:
        raise InvalidExchangeOperation(f"Player {responder_id} cannot answer a request sent to {request.to_id}")
    if request.status in EXCHANGE_TERMINAL:
        raise InvalidExchangeOperation(f"Exchange request {request_id} is already {request.status}")

    new_state = copy.deepcopy(state)
    new_state.exchanges[request_id].status = EXCHANGE_ACCEPTED if accept else EXCHANGE_DECLINED
    return new_state


def has_match(requests: Iterable[ExchangeRequest], a: str, b: str) -> bool:
    """True iff an accepted a->b and an accepted b->a request coexist."""
    accepted = {(r.from_id, r.to_id) for r in requests if r.status == EXCHANGE_ACCEPTED}
    return (a, b) in accepted and (b, a) in accepted


def matched_pairs(requests: Iterable[ExchangeRequest]) -> List[Tuple[str, str]]:
    accepted = {(r.from_id, r.to_id) for r in requests if r.status == EXCHANGE_ACCEPTED}
    return sorted({tuple(sorted(pair)) for pair in accepted if (pair[1], pair[0]) in accepted})


def matched_requests(requests: Iterable[ExchangeRequest]) -> List[ExchangeRequest]:
    """Accepted requests that belong to a match."""
    requests = list(requests)
    pairs = set(matched_pairs(requests))
    return [
        r for r in requests
        if r.status == EXCHANGE_ACCEPTED and tuple(sorted((r.from_id, r.to_id))) in pairs
    ]


def exchange_view(state: MatchState, viewer_id: str) -> Dict[str, Dict]:
    """
    The viewer's exchange standing with every other participant.

    Returns:
        {other_id: {"outgoing": [...], "incoming": [...], "matched": bool}}
    """
    requests = sorted(state.exchanges.values(), key=lambda r: (r.created_at, r.id))
    view = {}
    for player in state.ordered_players():
        if player.id == viewer_id:
            continue
        view[player.id] = {
            "outgoing": [asdict(r) for r in requests if r.from_id == viewer_id and r.to_id == player.id],
            "incoming": [asdict(r) for r in requests if r.from_id == player.id and r.to_id == viewer_id],
            "matched": has_match(requests, viewer_id, player.id),
        }
    return view
