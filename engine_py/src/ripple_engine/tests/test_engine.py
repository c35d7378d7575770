"""
Tests for the in-memory authoritative engine.
"""

import asyncio

import pytest

from ripple_engine.custody import hand_of, undealt_ids
from ripple_engine.errors import (
    DealingFailed, GameError, INVALID_MUTATION, INVALID_PHASE_TRANSITION, MATCH_NOT_FOUND, SyncLost
)


@pytest.mark.asyncio
async def test_concurrent_deals_are_disjoint(engine, new_match):
    """Concurrent deals for different players never hand out the same card."""
    players = ("alice", "bob", "carol", "dave", "erin")
    await new_match(players=players)

    hands = await asyncio.gather(*[engine.deal_atomic("match-1", player_id, 4) for player_id in players])

    dealt = [card_id for hand in hands for card_id in hand]
    assert len(dealt) == 20
    assert len(set(dealt)) == 20
    state = engine.get_match("match-1")
    assert undealt_ids(state) == []
    for player_id, hand in zip(players, hands):
        assert sorted(hand_of(state, player_id)) == sorted(hand)


@pytest.mark.asyncio
async def test_three_players_leave_eleven_undealt(engine, new_match):
    await new_match()
    await asyncio.gather(*[engine.deal_atomic("match-1", p, 3) for p in ("alice", "bob", "carol")])
    assert len(undealt_ids(engine.get_match("match-1"))) == 11


@pytest.mark.asyncio
async def test_repeated_deal_is_idempotent(engine, new_match):
    """A second deal for the same player and round returns the same cards and deals nothing."""
    await new_match()

    first = await engine.deal_atomic("match-1", "alice", 3)
    version = engine.get_match("match-1").version
    second = await engine.deal_atomic("match-1", "alice", 3)

    assert second == first
    state = engine.get_match("match-1")
    assert state.version == version
    assert len(undealt_ids(state)) == 17


@pytest.mark.asyncio
async def test_deal_exhausted(engine, new_match):
    await new_match()
    with pytest.raises(DealingFailed):
        await engine.deal_atomic("match-1", "alice", 25)


@pytest.mark.asyncio
async def test_submit_accepted_and_rejected(engine, new_match):
    await new_match()
    dealt = await engine.deal_atomic("match-1", "alice", 3)
    version = engine.get_match("match-1").version

    ack = await engine.submit_mutation("match-1", {"type": "select_card", "actor_id": "alice", "card_id": dealt[0]})
    assert ack.ok
    assert ack.version == version + 1

    ack = await engine.submit_mutation("match-1", {"type": "start_speaking_phase", "actor_id": "bob"})
    assert not ack.ok
    assert ack.error_code == INVALID_PHASE_TRANSITION
    assert engine.get_match("match-1").version == version + 1


@pytest.mark.asyncio
async def test_malformed_mutation(engine, new_match):
    await new_match()

    ack = await engine.submit_mutation("match-1", {"type": "shuffle_everything", "actor_id": "alice"})
    assert not ack.ok
    assert ack.error_code == INVALID_MUTATION

    ack = await engine.submit_mutation("match-1", {"type": "start_sharing", "actor_id": "mallory"})
    assert not ack.ok
    assert ack.error_code == INVALID_MUTATION


@pytest.mark.asyncio
async def test_unknown_match(engine):
    with pytest.raises(GameError) as exc_info:
        await engine.fetch_state("nope")
    assert exc_info.value.code == MATCH_NOT_FOUND

    ack = await engine.submit_mutation("nope", {"type": "start_sharing", "actor_id": "alice"})
    assert ack.error_code == MATCH_NOT_FOUND


@pytest.mark.asyncio
async def test_pushes_follow_commits(engine, new_match):
    """Test every commit reaches subscribers in version order, sanitized per viewer."""
    await new_match()
    pushes = {"alice": [], "carol": []}
    await engine.subscribe("match-1", pushes["alice"].append, viewer_id="alice")
    await engine.subscribe("match-1", pushes["carol"].append, viewer_id="carol")

    alice_cards = await engine.deal_atomic("match-1", "alice", 3)
    await engine.submit_mutation("match-1", {"type": "select_card", "actor_id": "alice", "card_id": alice_cards[0]})
    await engine.submit_mutation("match-1", {
        "type": "toggle_reaction",
        "actor_id": "bob",
        "speaker_id": "alice",
        "card_id": alice_cards[0],
        "reaction_type": "metoo",
        "is_private": True
    })

    for viewer in ("alice", "carol"):
        versions = [push["version"] for push in pushes[viewer]]
        assert versions == [3, 4, 5]

    alice_paths = [op["path"] for op in pushes["alice"][-1]["ops"]]
    carol_paths = [op["path"] for op in pushes["carol"][-1]["ops"]]
    assert any(path.startswith("/reactions/") for path in alice_paths)
    assert carol_paths == ["/version"]


@pytest.mark.asyncio
async def test_cancelled_subscription_gets_no_pushes(engine, new_match):
    await new_match()
    received = []
    subscription = await engine.subscribe("match-1", received.append, viewer_id="bob")

    await engine.deal_atomic("match-1", "alice", 3)
    subscription.cancel()
    subscription.cancel()
    await engine.deal_atomic("match-1", "bob", 3)

    assert len(received) == 1


@pytest.mark.asyncio
async def test_drop_subscribers_reports_loss(engine, new_match):
    await new_match()
    lost = []
    await engine.subscribe("match-1", lambda push: None, viewer_id="bob", on_lost=lost.append)

    engine.drop_subscribers("match-1")

    assert len(lost) == 1
    assert isinstance(lost[0], SyncLost)


@pytest.mark.asyncio
async def test_failing_subscriber_is_detached(engine, new_match):
    await new_match()
    lost = []

    def explode(push):
        raise RuntimeError("renderer crashed")

    await engine.subscribe("match-1", explode, viewer_id="bob", on_lost=lost.append)
    await engine.deal_atomic("match-1", "alice", 3)

    assert len(lost) == 1
    assert engine.subscribers["match-1"] == {}


@pytest.mark.asyncio
async def test_players_join_and_rejoin(engine, new_match):
    await new_match()
    state = engine.get_match("match-1")
    assert [p.id for p in state.ordered_players()] == ["alice", "bob", "carol"]

    await engine.submit_mutation("match-1", {"type": "set_online", "actor_id": "bob", "is_online": False})
    state = await engine.add_player("match-1", "bob", "Bob")
    assert state.players["bob"].is_online

    version = state.version
    state = await engine.add_player("match-1", "bob", "Bob")
    assert state.version == version


@pytest.mark.asyncio
async def test_late_joiner_sits_out_current_round(engine, new_match):
    await new_match(players=("alice", "bob"))
    for player_id in ("alice", "bob"):
        dealt = await engine.deal_atomic("match-1", player_id, 3)
        await engine.submit_mutation("match-1", {"type": "select_card", "actor_id": player_id, "card_id": dealt[0]})
    ack = await engine.submit_mutation("match-1", {"type": "start_speaking_phase", "actor_id": "alice"})
    assert ack.ok

    state = await engine.add_player("match-1", "carol", "Carol")
    assert state.players["carol"].has_spoken
    assert state.room.active_player_id in ("alice", "bob")


@pytest.mark.asyncio
async def test_create_match_twice(engine, new_match):
    await new_match()
    with pytest.raises(GameError):
        await engine.create_match("match-1", "alice", "Alice", [])


@pytest.mark.asyncio
async def test_fetch_cards(engine, new_match):
    await new_match()
    cards = await engine.fetch_cards(["card-03", "missing", "card-01"])
    assert [card.id for card in cards] == ["card-03", "card-01"]
