import random

from ripple_engine.models import Player
from ripple_engine.rotation import is_round_complete, pick_next_speaker, unspoken


def make_players(count):
    return {f"p{i}": Player(id=f"p{i}", username=f"Player {i}", joined_at=float(i)) for i in range(count)}


def test_rotation_terminates_after_each_player_speaks_once():
    """N picks for N players, no repeats, then round complete."""
    for seed in range(20):
        rng = random.Random(seed)
        players = make_players(5)
        picked = []

        for _ in range(5):
            speaker = pick_next_speaker(players.values(), rng)
            assert speaker is not None
            assert speaker not in picked
            picked.append(speaker)
            players[speaker].has_spoken = True

        assert pick_next_speaker(players.values(), rng) is None
        assert sorted(picked) == sorted(players)


def test_round_complete_when_everyone_spoke():
    players = make_players(3)
    for player in players.values():
        player.has_spoken = True

    assert is_round_complete(players.values())
    assert pick_next_speaker(players.values()) is None


def test_never_picks_a_finished_speaker():
    players = make_players(4)
    players["p0"].has_spoken = True
    players["p2"].has_spoken = True

    rng = random.Random(1)
    picks = {pick_next_speaker(players.values(), rng) for _ in range(50)}
    assert picks <= {"p1", "p3"}


def test_unspoken_in_join_order():
    players = make_players(3)
    players["p1"].has_spoken = True
    assert [player.id for player in unspoken(players.values())] == ["p0", "p2"]


def test_no_players():
    assert pick_next_speaker([]) is None
