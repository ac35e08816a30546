import copy
import logging
import time
from collections import deque
from enum import Enum
from typing import Callable, Deque, Iterable, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from .board import Board, Direction, Tile
from .errors import ConfigurationError
from .rules import GameRules

logger = logging.getLogger(__name__)

Seed = Union[None, int, np.random.Generator]


class GameStatus(str, Enum):
    ONGOING = "ongoing"
    WON = "won"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self is not GameStatus.ONGOING


class MoveOutcome(NamedTuple):
    # False when the game was already over, the move was not considered at all
    applicable: bool
    changed: bool
    score_gain: int
    spawned: Optional[Tile]
    merges: Tuple[Tile, ...]
    status: GameStatus

    def to_dict(self) -> dict:
        return {
            "applicable": self.applicable,
            "changed": self.changed,
            "score_gain": self.score_gain,
            "spawned": self.spawned.to_dict() if self.spawned else None,
            "merges": [tile.to_dict() for tile in self.merges],
            "status": self.status.value,
        }


class GameResult(NamedTuple):
    """What a finished game hands to the reward side: final score and end time."""
    score: int
    ended_at: int
    status: GameStatus
    highest_tile: int
    moves: int

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "ended_at": self.ended_at,
            "status": self.status.value,
            "highest_tile": self.highest_tile,
            "moves": self.moves,
        }


class _Checkpoint(NamedTuple):
    board: Board
    score: int
    moves: int
    rng_state: dict


class Game:
    """One 2048 game: board, score and status, driven by move commands.

    Randomness only enters through tile spawns and comes from the injected
    generator (or seed), so a game is fully reproducible. Instances hold no
    shared state; run one per session.
    """

    def __init__(self,
                 rules: Optional[GameRules] = None,
                 seed: Seed = None,
                 clock: Callable[[], float] = time.time,
                 board: Optional[Board] = None):
        self.rules = rules or GameRules()
        self.rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
        self.clock = clock
        self.listeners = []

        self.board: Board = self.rules.new_board()
        self.score = 0
        self.status = GameStatus.ONGOING
        self.moves = 0
        self.move_log: List[Direction] = []
        self.ended_at: Optional[int] = None
        self.finished = False
        self._history: Deque[_Checkpoint] = deque(maxlen=self.rules.max_history)

        if board is None:
            self._initialize_board()
        else:
            if (board.height, board.width) != (self.rules.height, self.rules.width):
                raise ConfigurationError(f"Board is {board.height}x{board.width}, rules expect "
                                 f"{self.rules.height}x{self.rules.width}")
            self.board = board
            self.evaluate_status()

    @classmethod
    def replay(cls, rules: GameRules, seed: int, directions: Iterable, clock: Callable[[], float] = time.time) -> "Game":
        """Rebuild a game from its seed and the directions that were played."""
        game = cls(rules, seed=seed, clock=clock)
        for direction in directions:
            game.apply_move(direction)
        return game

    def add_listener(self, listener):
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners.remove(listener)

    def _notify(self, event_name, *args, **kwargs):
        for listener in self.listeners:
            if hasattr(listener, event_name):
                getattr(listener, event_name)(*args, **kwargs)

    def _initialize_board(self):
        self.board = self.rules.new_board()
        self.score = 0
        self.status = GameStatus.ONGOING
        self.moves = 0
        self.move_log = []
        self.ended_at = None
        self.finished = False
        self._history.clear()
        for _ in range(self.rules.num_initial_tiles):
            self.spawn_tile()
        self.evaluate_status()
        self._notify('on_reset', self.board, self.score)

    def reset(self):
        self._initialize_board()

    @property
    def highest_tile(self) -> int:
        return self.board.max_value()

    @property
    def can_undo(self) -> bool:
        return bool(self._history) and not self.status.is_terminal and not self.finished

    def grid(self) -> np.ndarray:
        return self.board.grid()

    def spawn_tile(self) -> Tile:
        """Place one random tile on an empty cell; BoardFullError if there is none."""
        self.board, tile = self.rules.spawn(self.board, self.rng)
        logger.debug(f"Spawned {tile.value} at {tile.position} (id {tile.id})")
        self._notify('on_tile_spawned', tile)
        return tile

    def evaluate_status(self) -> GameStatus:
        if self.status.is_terminal:
            return self.status

        grid = self.board.grid()
        if self.rules.has_won(grid):
            self._end(GameStatus.WON)
        elif self.rules.is_terminal(grid):
            self._end(GameStatus.LOST)
        return self.status

    def _end(self, status: GameStatus):
        self.status = status
        self.ended_at = int(self.clock())
        logger.info(f"Game {status.value} with score {self.score}, highest tile {self.highest_tile}, "
                    f"after {self.moves} moves")
        self._notify('on_game_over', self.result())

    def apply_move(self, direction) -> MoveOutcome:
        direction = Direction.parse(direction)
        if self.status.is_terminal or self.finished:
            return MoveOutcome(False, False, 0, None, (), self.status)

        result = self.board.move(direction)
        if not result.changed:
            logger.debug(f"Rejected {direction.label}: nothing to slide or merge")
            return MoveOutcome(True, False, 0, None, (), self.status)

        self._history.append(_Checkpoint(self.board, self.score, self.moves, self.rng.bit_generator.state))
        self.board = result.board
        self.score += result.score_gain
        self.moves += 1
        self.move_log.append(direction)

        # Moves never add tiles, so a full board here only comes from a full start
        spawned = None
        if not self.board.is_full():
            spawned = self.spawn_tile()

        self.evaluate_status()
        logger.debug(f"Move {self.moves} {direction.label}: +{result.score_gain}, score {self.score}")

        outcome = MoveOutcome(True, True, result.score_gain, spawned, result.merges, self.status)
        self._notify('on_move', direction, outcome)
        return outcome

    def undo(self) -> bool:
        """Step back to the board before the last accepted move.

        Only allowed while the game is ongoing; finished games never revert.
        """
        if not self.can_undo:
            return False
        checkpoint = self._history.pop()
        self.board = checkpoint.board
        self.score = checkpoint.score
        self.moves = checkpoint.moves
        # Restoring the generator keeps move_log replayable after an undo
        self.rng.bit_generator.state = checkpoint.rng_state
        self.move_log.pop()
        logger.debug(f"Undo to move {self.moves}, score {self.score}")
        return True

    def get_valid_moves(self) -> List[Direction]:
        if self.status.is_terminal or self.finished:
            return []
        return self.rules.get_valid_moves(self.board.grid())

    def finish(self) -> GameResult:
        """End the game on the player's request, keeping its current status."""
        if not self.finished:
            self.finished = True
            if self.ended_at is None:
                self.ended_at = int(self.clock())
        return self.result()

    def result(self) -> Optional[GameResult]:
        if self.ended_at is None:
            return None
        return GameResult(self.score, self.ended_at, self.status, self.highest_tile, self.moves)

    def clone(self) -> "Game":
        new_game = Game.__new__(Game)
        new_game.rules = self.rules
        new_game.rng = copy.deepcopy(self.rng)
        new_game.clock = self.clock
        new_game.listeners = []
        new_game.board = self.board
        new_game.score = self.score
        new_game.status = self.status
        new_game.moves = self.moves
        new_game.move_log = list(self.move_log)
        new_game.ended_at = self.ended_at
        new_game.finished = self.finished
        new_game._history = deque(self._history, maxlen=self.rules.max_history)
        return new_game

    def render_ascii(self, cell_width: int = 6) -> str:
        return self.rules.render_ascii(self.board.grid(), cell_width)

    def to_dict(self) -> dict:
        return {
            "board": self.board.to_dict(),
            "score": self.score,
            "status": self.status.value,
            "moves": self.moves,
            "highest_tile": self.highest_tile,
            "finished": self.finished or self.status.is_terminal,
            "ended_at": self.ended_at,
            "can_undo": self.can_undo,
            "valid_moves": [d.label for d in self.get_valid_moves()],
        }
