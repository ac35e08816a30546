"""Tests for the session store and reward clients."""

import pytest

from game2048 import GameRules, GameStatus
from game2048_api.rewards import LocalRewardClient, RewardLedger, local_reward_factory
from game2048_api.sessions import SessionClosedError, SessionNotFoundError, SessionStore

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


def make_store(rules=None, **kwargs):
    ledger = RewardLedger()
    store = SessionStore(rules or GameRules(), local_reward_factory(ledger),
                         clock=lambda: 1_700_000_000, seed=1, **kwargs)
    return store, ledger


def play_until_over(store, game_id, max_moves=500):
    session = store.get(game_id)
    for _ in range(max_moves):
        if session.game.status.is_terminal:
            break
        store.move(game_id, session.game.get_valid_moves()[0])
    return session


def test_start_creates_isolated_sessions():
    store, _ = make_store()
    alice = store.start(ALICE)
    bob = store.start(BOB)

    assert alice.game_id != bob.game_id
    assert alice.game is not bob.game
    assert store.active_for(ALICE) is alice
    assert store.active_for(BOB) is bob
    assert len(alice.game.board.tiles) == 2


def test_unknown_session():
    store, _ = make_store()
    with pytest.raises(SessionNotFoundError):
        store.get("missing")
    with pytest.raises(SessionNotFoundError):
        store.move("missing", "left")


def test_end_records_game_and_closes_client():
    store, ledger = make_store()
    session = store.start(ALICE)
    result, receipt = store.end(session.game_id)

    assert result.score == session.game.score
    assert result.ended_at == 1_700_000_000
    assert result.status is GameStatus.ONGOING
    assert receipt["address"] == ALICE
    assert receipt["nft_eligible"] is False
    assert ledger.for_address(ALICE) == [receipt]
    assert session.closed
    assert session.reward_client.closed
    assert store.active_for(ALICE) is None

    with pytest.raises(SessionClosedError):
        store.end(session.game_id)
    with pytest.raises(SessionClosedError):
        store.move(session.game_id, "up")
    with pytest.raises(SessionClosedError):
        store.undo(session.game_id)


def test_starting_again_ends_previous_game():
    store, _ = make_store()
    first = store.start(ALICE)
    second = store.start(ALICE)

    assert first.closed
    assert not second.closed
    assert store.active_for(ALICE) is second
    games, total = store.games_for(ALICE)
    assert total == 1
    assert games[0]["game_id"] == first.game_id


def test_won_game_is_recorded_when_it_ends():
    rules = GameRules(target=4, spawn_rates={2: 1.0})
    store, ledger = make_store(rules)
    session = store.start(ALICE)
    play_until_over(store, session.game_id)

    assert session.game.status is GameStatus.WON
    assert session.recorded
    assert session.receipt["nft_eligible"] is True
    assert not session.closed
    assert store.leaderboard()[0]["game_id"] == session.game_id

    # ending afterwards closes the session without a second claim
    _, receipt = store.end(session.game_id)
    assert receipt is session.receipt
    assert len(ledger.for_address(ALICE)) == 1


def test_lost_game_on_small_board():
    rules = GameRules(height=2, width=2)
    store, _ = make_store(rules)
    session = store.start(BOB)
    play_until_over(store, session.game_id)

    assert session.game.status is GameStatus.LOST
    assert store.profile(BOB)["total_games"] == 1
    assert store.profile(BOB)["wins"] == 0


def test_leaderboard_orders_by_score():
    store, _ = make_store()
    scores = []
    for address in (ALICE, BOB):
        session = store.start(address)
        for _ in range(10):
            valid = session.game.get_valid_moves()
            if not valid:
                break
            store.move(session.game_id, valid[-1])
        scores.append(session.game.score)
        store.end(session.game_id)

    board = store.leaderboard(limit=10)
    assert [entry["score"] for entry in board] == sorted(scores, reverse=True)
    assert [entry["rank"] for entry in board] == [1, 2]
    assert len(store.leaderboard(limit=1)) == 1


def test_leaderboard_size_is_bounded():
    store, _ = make_store(leaderboard_size=2)
    for _ in range(3):
        store.end(store.start(ALICE).game_id)

    assert len(store.leaderboard(limit=10)) == 2


def test_profile_and_history():
    store, _ = make_store()
    ids = []
    for _ in range(3):
        session = store.start(ALICE)
        ids.append(session.game_id)
        store.end(session.game_id)

    profile = store.profile(ALICE)
    assert profile["total_games"] == 3
    assert profile["joined_at"] == 1_700_000_000
    assert profile["active_game_id"] is None

    games, total = store.games_for(ALICE, limit=2, offset=0)
    assert total == 3
    # newest first
    assert [g["game_id"] for g in games] == [ids[2], ids[1]]
    games, _ = store.games_for(ALICE, limit=2, offset=2)
    assert [g["game_id"] for g in games] == [ids[0]]

    assert store.profile(BOB)["total_games"] == 0
    assert store.profile(BOB)["high_score"] == 0


def test_local_reward_client_rejects_after_close():
    ledger = RewardLedger()
    client = LocalRewardClient(ledger, ALICE)
    client.close()

    store, _ = make_store()
    session = store.start(ALICE)
    result = session.game.finish()
    with pytest.raises(RuntimeError):
        client.submit(ALICE, result)


def test_profile_totals_outlive_capped_history():
    rules = GameRules(target=4, spawn_rates={2: 1.0})
    store, _ = make_store(rules, history_size=2)

    won = store.start(ALICE)
    play_until_over(store, won.game_id)
    store.end(won.game_id)
    for _ in range(4):
        store.end(store.start(ALICE).game_id)

    profile = store.profile(ALICE)
    assert profile["total_games"] == 5
    assert profile["wins"] == 1
    assert profile["nfts_eligible"] == 1
    assert profile["best_tile"] == 4
    assert profile["high_score"] == won.game.score
    games, total = store.games_for(ALICE)
    assert total == 2
    assert won.game_id not in [g["game_id"] for g in games]


def test_ended_sessions_do_not_accumulate():
    store, _ = make_store(closed_size=3)
    ids = []
    for _ in range(50):
        session = store.start(ALICE)
        ids.append(session.game_id)
        store.end(session.game_id)

    assert len(store.sessions) == 0
    assert len(store.closed_sessions) == 3

    # recently ended games can still be read, older ones are gone
    assert store.get(ids[-1]).closed
    with pytest.raises(SessionClosedError):
        store.move(ids[-1], "left")
    with pytest.raises(SessionNotFoundError):
        store.get(ids[0])


def test_live_sessions_are_one_per_address():
    store, _ = make_store()
    for _ in range(10):
        store.start(ALICE)
        store.start(BOB)

    assert len(store.sessions) == 2
