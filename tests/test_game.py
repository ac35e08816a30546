"""Tests for the game engine: moves, spawns, status, undo and replay."""

import json

import numpy as np
import pytest

from game2048 import Board, BoardFullError, ConfigurationError, Direction, Game, GameRules, GameStatus

END_TIME = 1_700_000_000


def fixed_clock():
    return END_TIME + 0.75


def make_game(grid, seed=0, **rule_kwargs):
    grid = np.asarray(grid)
    rules = GameRules(height=grid.shape[0], width=grid.shape[1], **rule_kwargs)
    return Game(rules, seed=seed, clock=fixed_clock, board=Board.from_grid(grid))


EMPTY_ROWS = [[0, 0, 0, 0]] * 3

# Moving left packs the first row and the spawn fills the last free cell,
# leaving no equal neighbours anywhere.
ONE_MOVE_FROM_LOSS = [
    [0, 4, 8, 16],
    [8, 16, 32, 64],
    [4, 8, 16, 32],
    [8, 16, 32, 64],
]

LOST_BOARD = [
    [2, 4, 2, 4],
    [4, 2, 4, 2],
    [2, 4, 2, 4],
    [4, 2, 4, 2],
]


class Recorder:
    def __init__(self):
        self.events = []

    def on_reset(self, board, score):
        self.events.append(("reset", score))

    def on_move(self, direction, outcome):
        self.events.append(("move", direction, outcome.score_gain))

    def on_tile_spawned(self, tile):
        self.events.append(("spawn", tile.value))

    def on_game_over(self, result):
        self.events.append(("game_over", result))


def test_new_game():
    game = Game(seed=1)

    assert len(game.board.tiles) == 2
    assert all(tile.value in (2, 4) for tile in game.board.tiles)
    assert game.score == 0
    assert game.moves == 0
    assert game.status is GameStatus.ONGOING
    assert game.result() is None


def test_seeded_games_are_identical():
    assert Game(seed=5).board == Game(seed=5).board


def test_generator_can_be_injected():
    rng = np.random.default_rng(3)
    game = Game(seed=rng)

    assert game.rng is rng
    assert game.board == Game(seed=np.random.default_rng(3)).board


def test_move_example():
    game = make_game([[2, 2, 0, 0]] + EMPTY_ROWS)
    outcome = game.apply_move("left")

    assert outcome.applicable
    assert outcome.changed
    assert outcome.score_gain == 4
    assert outcome.status is GameStatus.ONGOING
    assert outcome.spawned is not None
    assert outcome.spawned.value in (2, 4)
    assert game.grid()[0, 0] == 4
    assert game.score == 4
    assert game.moves == 1
    assert game.move_log == [Direction.LEFT]
    assert game.board.total() == 4 + outcome.spawned.value
    assert len(game.board.tiles) == 2


def test_rejected_move_does_not_spawn():
    game = make_game([[2, 0, 0, 0]] + EMPTY_ROWS)
    board_before = game.board
    outcome = game.apply_move(Direction.LEFT)

    assert outcome.applicable
    assert not outcome.changed
    assert outcome.spawned is None
    assert game.board is board_before
    assert game.moves == 0
    assert game.move_log == []


def test_invalid_direction_raises():
    game = Game(seed=0)
    with pytest.raises(ValueError):
        game.apply_move("diagonal")


def test_win_detected_on_the_move_that_creates_target():
    game = make_game([[1024, 1024, 0, 0]] + EMPTY_ROWS)
    outcome = game.apply_move(Direction.LEFT)

    assert outcome.status is GameStatus.WON
    assert game.status is GameStatus.WON
    result = game.result()
    assert result.score == 2048
    assert result.ended_at == END_TIME
    assert result.status is GameStatus.WON
    assert result.highest_tile == 2048
    assert result.moves == 1


def test_custom_target():
    game = make_game([[4, 4, 0, 0]] + EMPTY_ROWS, target=8)
    game.apply_move(Direction.RIGHT)

    assert game.status is GameStatus.WON


def test_won_game_rejects_moves():
    game = make_game([[1024, 1024, 0, 0]] + EMPTY_ROWS)
    game.apply_move(Direction.LEFT)
    board = game.board
    outcome = game.apply_move(Direction.RIGHT)

    assert not outcome.applicable
    assert not outcome.changed
    assert game.board is board
    assert game.get_valid_moves() == []


def test_loss_detected_after_spawn():
    game = make_game(ONE_MOVE_FROM_LOSS)
    outcome = game.apply_move(Direction.LEFT)

    assert outcome.changed
    assert outcome.spawned.position == (0, 3)
    assert game.board.is_full()
    assert game.status is GameStatus.LOST
    assert game.result().status is GameStatus.LOST
    assert game.result().ended_at == END_TIME


def test_packed_board_without_pairs_is_lost():
    game = make_game(LOST_BOARD)

    assert game.status is GameStatus.LOST
    assert game.evaluate_status() is GameStatus.LOST


def test_terminal_status_does_not_revert():
    game = make_game(ONE_MOVE_FROM_LOSS)
    game.apply_move(Direction.LEFT)

    assert not game.undo()
    assert not game.apply_move(Direction.UP).applicable
    assert game.evaluate_status() is GameStatus.LOST


def test_spawn_on_full_board_raises():
    game = make_game(LOST_BOARD)
    with pytest.raises(BoardFullError):
        game.spawn_tile()


def test_merge_conservation_during_play():
    game = Game(seed=21)
    rng = np.random.default_rng(21)
    while not game.status.is_terminal:
        valid = game.get_valid_moves()
        total_before = game.board.total()
        score_before = game.score
        outcome = game.apply_move(valid[int(rng.integers(len(valid)))])

        spawned = outcome.spawned.value if outcome.spawned else 0
        assert outcome.changed
        assert game.board.total() == total_before + spawned
        assert game.score - score_before == outcome.score_gain
        assert outcome.score_gain == sum(tile.value for tile in outcome.merges)


def test_merge_retires_source_ids():
    game = make_game([[2, 2, 0, 0]] + EMPTY_ROWS)
    outcome = game.apply_move(Direction.LEFT)
    ids = {tile.id for tile in game.board.tiles}

    (merged,) = outcome.merges
    assert merged.merged_from == (1, 2)
    assert merged.id in ids
    assert not ids & {1, 2}


def test_undo_restores_board_and_score():
    game = make_game([[2, 2, 0, 0], [0, 4, 0, 4], [0, 0, 0, 0], [0, 0, 0, 0]], seed=8)
    before = game.board
    first = game.apply_move(Direction.LEFT)
    after_first = game.board

    assert game.can_undo
    assert game.undo()
    assert game.board == before
    assert game.score == 0
    assert game.moves == 0
    assert game.move_log == []
    assert not game.undo()

    # the spawn generator is rewound as well
    second = game.apply_move(Direction.LEFT)
    assert second.spawned == first.spawned
    assert game.board == after_first


def test_undo_history_is_bounded():
    game = Game(GameRules(max_history=2), seed=4)
    rng = np.random.default_rng(4)
    for _ in range(5):
        valid = game.get_valid_moves()
        game.apply_move(valid[int(rng.integers(len(valid)))])

    assert game.undo()
    assert game.undo()
    assert not game.undo()


def test_replay_reproduces_game():
    rules = GameRules()
    game = Game(rules, seed=77)
    rng = np.random.default_rng(77)
    for _ in range(30):
        if game.status.is_terminal:
            break
        valid = game.get_valid_moves()
        game.apply_move(valid[int(rng.integers(len(valid)))])
    game.undo()

    replayed = Game.replay(rules, 77, game.move_log)

    assert replayed.board == game.board
    assert replayed.score == game.score
    assert replayed.moves == game.moves


def test_reset():
    game = Game(seed=2)
    for direction in Direction:
        game.apply_move(direction)
    game.reset()

    assert game.score == 0
    assert game.moves == 0
    assert game.move_log == []
    assert game.status is GameStatus.ONGOING
    assert len(game.board.tiles) == 2
    assert not game.can_undo


def test_reset_after_loss():
    game = make_game(LOST_BOARD)
    game.reset()

    assert game.status is GameStatus.ONGOING
    assert game.result() is None
    assert len(game.board.tiles) == 2


def test_finish_freezes_game():
    game = Game(seed=3, clock=fixed_clock)
    result = game.finish()

    assert result.status is GameStatus.ONGOING
    assert result.ended_at == END_TIME
    assert game.finished
    assert not game.apply_move(Direction.LEFT).applicable
    assert not game.can_undo
    assert game.finish() == result


def test_listeners():
    recorder = Recorder()
    game = make_game([[1024, 1024, 0, 0]] + EMPTY_ROWS)
    game.add_listener(recorder)
    game.add_listener(recorder)
    game.apply_move(Direction.LEFT)

    kinds = [event[0] for event in recorder.events]
    assert kinds == ["spawn", "game_over", "move"]
    assert recorder.events[1][1].score == 2048
    assert recorder.events[2][1:] == (Direction.LEFT, 2048)

    game.remove_listener(recorder)
    game.reset()
    assert len(recorder.events) == 3


def test_clone_is_independent():
    game = Game(seed=12)
    clone = game.clone()

    # same generator state, so the same move spawns the same tile
    direction = game.get_valid_moves()[0]
    assert clone.apply_move(direction).spawned == game.apply_move(direction).spawned

    clone.apply_move(clone.get_valid_moves()[0])
    assert clone.moves == game.moves + 1


def test_board_dimension_mismatch():
    with pytest.raises(ConfigurationError, match="rules expect 3x3"):
        Game(GameRules(height=3, width=3), board=Board.from_grid(LOST_BOARD))


def test_to_dict_is_json_ready():
    game = make_game([[2, 2, 0, 0]] + EMPTY_ROWS)
    game.apply_move(Direction.LEFT)
    data = json.loads(json.dumps(game.to_dict()))

    assert data["score"] == 4
    assert data["status"] == "ongoing"
    assert data["moves"] == 1
    assert data["can_undo"] is True
    assert data["board"]["grid"][0][0] == 4
    assert set(data["valid_moves"]) <= {"up", "right", "down", "left"}
