"""
Shared fixtures for the Ripple engine tests.
"""

import random

import pytest

from ripple_engine.custody import deal_to_player, hand_of, select_among
from ripple_engine.engine import MatchEngine
from ripple_engine.models import Card, CardLocation, MatchState, Player, RoomState
from ripple_engine.rules import create_settings

PLAYERS = ("alice", "bob", "carol")


def build_cards(count: int = 20):
    """Cards with depths cycling 1, 2, 3."""
    return [
        Card(id=f"card-{i:02d}", content=f"Question {i}", category="reflection", depth=i % 3 + 1)
        for i in range(count)
    ]


def build_state(players=PLAYERS, card_count: int = 20, **settings) -> MatchState:
    state = MatchState(
        match_id="match-1",
        room=RoomState(created_by=players[0], settings=create_settings(**settings))
    )
    for seat, player_id in enumerate(players):
        state.players[player_id] = Player(id=player_id, username=player_id.title(), joined_at=float(seat))
    for card in build_cards(card_count):
        state.cards[card.id] = CardLocation()
    return state


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def cards():
    return build_cards()


@pytest.fixture
def catalog(cards):
    return {card.id: card for card in cards}


@pytest.fixture
def match_state():
    """Three players in setup, 20 undealt cards."""
    return build_state()


@pytest.fixture
def dealt_state(match_state, rng):
    """Every player holds a 3-card hand."""
    state = match_state
    for player_id in PLAYERS:
        state, _ = deal_to_player(state, player_id, 3, rng)
    return state


@pytest.fixture
def ready_state(dealt_state):
    """Every player kept their first card and discarded the other two."""
    state = dealt_state
    for player_id in PLAYERS:
        state = select_among(state, hand_of(state, player_id)[0], player_id)
    return state


@pytest.fixture
def engine():
    return MatchEngine(seed=7)


@pytest.fixture
def new_match(engine, cards):
    """Coroutine factory: create a match on the engine and seat the players."""
    async def create(match_id: str = "match-1", players=PLAYERS, settings=None):
        await engine.create_match(match_id, players[0], players[0].title(), cards, settings)
        for player_id in players[1:]:
            await engine.add_player(match_id, player_id, player_id.title())
        return engine.get_match(match_id)
    return create
