# 2048 board engine
from .errors import Game2048Error, ConfigurationError, InvalidDirectionError, BoardFullError
from .board import Board, Direction, Tile, MoveResult
from .rules import GameRules
from .game import Game, GameStatus, GameResult, MoveOutcome

__all__ = [
    "Game2048Error",
    "ConfigurationError",
    "InvalidDirectionError",
    "BoardFullError",

    "Board",
    "Direction",
    "Tile",
    "MoveResult",

    "GameRules",

    "Game",
    "GameStatus",
    "GameResult",
    "MoveOutcome",
]
