"""
Tests for the reaction and ripple ledger.
"""

import pytest

from ripple_engine.constants import REACTION_RESONATES, REACTION_TELLMEMORE
from ripple_engine.custody import selected_of
from ripple_engine.errors import InvalidCardOperation
from ripple_engine.models import Reaction
from ripple_engine.reactions import (
    has_tell_me_more, is_rippled, is_visible, reaction_view, reactions_for,
    rippled_cards, toggle_reaction, toggle_ripple
)
from ripple_engine.rules import create_settings


def test_toggle_twice_restores_ledger(ready_state):
    """Listener toggles resonates on (speaker, card) twice: no record remains."""
    card_id = selected_of(ready_state, "alice")

    once = toggle_reaction(ready_state, "bob", "alice", card_id, REACTION_RESONATES)
    assert len(reactions_for(once, "alice", card_id)) == 1

    twice = toggle_reaction(once, "bob", "alice", card_id, REACTION_RESONATES)
    assert twice.reactions == ready_state.reactions
    assert reactions_for(twice, "alice", card_id) == []


def test_ripple_is_independent_of_reactions(ready_state):
    card_id = selected_of(ready_state, "alice")

    state = toggle_reaction(ready_state, "bob", "alice", card_id, REACTION_RESONATES)
    state = toggle_ripple(state, "bob", "alice", card_id)
    assert is_rippled(state, "bob", "alice", card_id)
    assert len(state.reactions) == 2

    state = toggle_ripple(state, "bob", "alice", card_id)
    assert not is_rippled(state, "bob", "alice", card_id)
    assert [r.type for r in reactions_for(state, "alice", card_id)] == [REACTION_RESONATES]


def test_reaction_types_toggle_separately(ready_state):
    card_id = selected_of(ready_state, "alice")

    state = toggle_reaction(ready_state, "bob", "alice", card_id, REACTION_RESONATES)
    state = toggle_reaction(state, "bob", "alice", card_id, REACTION_TELLMEMORE)
    assert has_tell_me_more(state, "alice", card_id)

    state = toggle_reaction(state, "bob", "alice", card_id, REACTION_TELLMEMORE)
    assert not has_tell_me_more(state, "alice", card_id)
    assert len(state.reactions) == 1


def test_visibility():
    private = Reaction(speaker_id="alice", listener_id="bob", card_id="c1", type="metoo", is_private=True)
    public = Reaction(speaker_id="alice", listener_id="bob", card_id="c1", type="metoo", is_private=False)

    assert is_visible(private, "bob")
    assert is_visible(private, "alice")
    assert not is_visible(private, "carol")
    assert is_visible(public, "carol")


def test_reactions_for_filters_by_viewer(ready_state):
    card_id = selected_of(ready_state, "alice")
    state = toggle_reaction(ready_state, "bob", "alice", card_id, REACTION_RESONATES, is_private=True)
    state = toggle_reaction(state, "carol", "alice", card_id, REACTION_RESONATES, is_private=False)

    assert len(reactions_for(state, "alice", card_id, "alice")) == 2
    assert [r.listener_id for r in reactions_for(state, "alice", card_id, "carol")] == ["carol"]
    assert len(reactions_for(state, "alice", card_id, "bob")) == 2


def test_rippled_cards(ready_state):
    alice_card = selected_of(ready_state, "alice")
    carol_card = selected_of(ready_state, "carol")

    state = toggle_ripple(ready_state, "bob", "alice", alice_card)
    state = toggle_ripple(state, "bob", "carol", carol_card)

    assert rippled_cards(state, "bob") == [alice_card, carol_card]
    assert rippled_cards(state, "alice") == []


def test_reaction_view(ready_state):
    card_id = selected_of(ready_state, "alice")
    state = toggle_reaction(ready_state, "bob", "alice", card_id, REACTION_RESONATES)
    state = toggle_reaction(state, "carol", "alice", card_id, REACTION_RESONATES, is_private=False)
    state = toggle_ripple(state, "bob", "alice", card_id)

    view = reaction_view(state, "alice", card_id, "bob")
    assert view["counts"][REACTION_RESONATES] == 2
    assert view["mine"] == [REACTION_RESONATES]
    assert view["rippled"]
    assert view["ripple_count"] == 1

    carol_view = reaction_view(state, "alice", card_id, "carol")
    assert carol_view["counts"][REACTION_RESONATES] == 1
    assert not carol_view["rippled"]


def test_unknown_reaction_type(ready_state):
    with pytest.raises(ValueError):
        toggle_reaction(ready_state, "bob", "alice", selected_of(ready_state, "alice"), "applause")


def test_reaction_on_unknown_card(ready_state):
    with pytest.raises(InvalidCardOperation):
        toggle_reaction(ready_state, "bob", "alice", "no-such-card", REACTION_RESONATES)


def test_ripples_disabled(ready_state):
    ready_state.room.settings = create_settings(allow_ripples=False)
    with pytest.raises(InvalidCardOperation):
        toggle_ripple(ready_state, "bob", "alice", selected_of(ready_state, "alice"))
