"""
Tests for exchange negotiation and match detection.
"""

import pytest

from ripple_engine.constants import EXCHANGE_ACCEPTED, EXCHANGE_DECLINED, EXCHANGE_PENDING
from ripple_engine.custody import discard_of, hand_of, selected_of
from ripple_engine.errors import InvalidCardOperation, InvalidExchangeOperation
from ripple_engine.exchange import (
    exchange_view, has_match, matched_pairs, matched_requests, propose_exchange, respond_to_exchange
)
from ripple_engine.rules import create_settings


@pytest.fixture
def proposals(ready_state):
    """alice -> bob (req-ab) and bob -> alice (req-ba), both pending."""
    state = propose_exchange(ready_state, "req-ab", "alice", "bob", discard_of(ready_state, "alice")[0], 1.0)
    return propose_exchange(state, "req-ba", "bob", "alice", discard_of(ready_state, "bob")[0], 2.0)


def test_match_needs_both_acceptances(proposals):
    """A match between alice and bob appears only once both requests are accepted."""
    state = proposals
    assert state.exchanges["req-ab"].status == EXCHANGE_PENDING
    assert not has_match(state.exchanges.values(), "alice", "bob")

    state = respond_to_exchange(state, "req-ab", "bob", True)
    assert not has_match(state.exchanges.values(), "alice", "bob")

    state = respond_to_exchange(state, "req-ba", "alice", True)
    assert has_match(state.exchanges.values(), "alice", "bob")
    assert has_match(state.exchanges.values(), "bob", "alice")
    assert matched_pairs(state.exchanges.values()) == [("alice", "bob")]
    assert {r.id for r in matched_requests(state.exchanges.values())} == {"req-ab", "req-ba"}


def test_declining_either_side_prevents_match(proposals):
    state = respond_to_exchange(proposals, "req-ab", "bob", True)
    state = respond_to_exchange(state, "req-ba", "alice", False)

    assert state.exchanges["req-ba"].status == EXCHANGE_DECLINED
    assert not has_match(state.exchanges.values(), "alice", "bob")
    assert matched_pairs(state.exchanges.values()) == []


def test_match_ignores_other_pairs(proposals):
    state = respond_to_exchange(proposals, "req-ab", "bob", True)
    state = propose_exchange(state, "req-ca", "carol", "alice", discard_of(state, "carol")[0], 3.0)
    state = respond_to_exchange(state, "req-ca", "alice", True)

    assert not has_match(state.exchanges.values(), "alice", "bob")
    assert not has_match(state.exchanges.values(), "alice", "carol")


def test_terminal_requests_cannot_be_answered_again(proposals):
    """Test acting on an accepted or declined request raises instead of silently passing."""
    state = respond_to_exchange(proposals, "req-ab", "bob", True)
    with pytest.raises(InvalidExchangeOperation):
        respond_to_exchange(state, "req-ab", "bob", True)
    with pytest.raises(InvalidExchangeOperation):
        respond_to_exchange(state, "req-ab", "bob", False)

    state = respond_to_exchange(state, "req-ba", "alice", False)
    with pytest.raises(InvalidExchangeOperation):
        respond_to_exchange(state, "req-ba", "alice", True)


def test_only_recipient_answers(proposals):
    with pytest.raises(InvalidExchangeOperation):
        respond_to_exchange(proposals, "req-ab", "alice", True)
    with pytest.raises(InvalidExchangeOperation):
        respond_to_exchange(proposals, "req-ab", "carol", True)


def test_unknown_request(proposals):
    with pytest.raises(InvalidExchangeOperation):
        respond_to_exchange(proposals, "req-zz", "bob", True)


def test_counter_is_a_new_request(proposals):
    """Test a counter-offer after a decline is a separate request in the other direction."""
    state = respond_to_exchange(proposals, "req-ab", "bob", False)
    state = propose_exchange(state, "req-ba-2", "bob", "alice", discard_of(state, "bob")[1], 3.0)

    assert state.exchanges["req-ab"].status == EXCHANGE_DECLINED
    assert state.exchanges["req-ba-2"].from_id == "bob"
    assert state.exchanges["req-ba-2"].status == EXCHANGE_PENDING


def test_proposal_needs_own_discarded_card(ready_state):
    with pytest.raises(InvalidCardOperation):
        propose_exchange(ready_state, "r1", "alice", "bob", selected_of(ready_state, "alice"))
    with pytest.raises(InvalidCardOperation):
        propose_exchange(ready_state, "r1", "alice", "bob", discard_of(ready_state, "bob")[0])


def test_proposal_in_hand_rejected(dealt_state):
    with pytest.raises(InvalidCardOperation):
        propose_exchange(dealt_state, "r1", "alice", "bob", hand_of(dealt_state, "alice")[0])


def test_proposal_guards(ready_state):
    card_id = discard_of(ready_state, "alice")[0]

    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(ready_state, "r1", "alice", "alice", card_id)
    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(ready_state, "r1", "alice", "mallory", card_id)

    state = propose_exchange(ready_state, "r1", "alice", "bob", card_id)
    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(state, "r1", "alice", "carol", card_id)
    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(state, "r2", "alice", "bob", card_id)


def test_card_offered_to_one_player_at_a_time(ready_state):
    """Test a card already on offer to bob cannot also go to carol until bob declines."""
    card_id = discard_of(ready_state, "alice")[0]
    state = propose_exchange(ready_state, "r1", "alice", "bob", card_id, 1.0)

    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(state, "r2", "alice", "carol", card_id, 2.0)

    state = respond_to_exchange(state, "r1", "bob", True)
    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(state, "r2", "alice", "carol", card_id, 2.0)

    state = propose_exchange(ready_state, "r1", "alice", "bob", card_id, 1.0)
    state = respond_to_exchange(state, "r1", "bob", False)
    state = propose_exchange(state, "r2", "alice", "carol", card_id, 2.0)
    assert state.exchanges["r2"].status == EXCHANGE_PENDING


def test_exchanges_disabled(ready_state):
    ready_state.room.settings = create_settings(allow_exchanges=False)
    with pytest.raises(InvalidExchangeOperation):
        propose_exchange(ready_state, "r1", "alice", "bob", discard_of(ready_state, "alice")[0])


def test_exchange_view(proposals):
    state = respond_to_exchange(proposals, "req-ab", "bob", True)
    state = respond_to_exchange(state, "req-ba", "alice", True)

    view = exchange_view(state, "alice")

    assert set(view) == {"bob", "carol"}
    assert [r["id"] for r in view["bob"]["outgoing"]] == ["req-ab"]
    assert [r["id"] for r in view["bob"]["incoming"]] == ["req-ba"]
    assert view["bob"]["matched"]
    assert view["carol"] == {"outgoing": [], "incoming": [], "matched": False}
    assert view["bob"]["outgoing"][0]["status"] == EXCHANGE_ACCEPTED
