"""Exceptions raised by the 2048 board engine."""


class Game2048Error(Exception):
    """Base class for engine errors"""


class ConfigurationError(Game2048Error, ValueError):
    """Invalid rules or command values, raised when they are built or parsed"""


class InvalidDirectionError(ConfigurationError):
    """A move direction that is not one of up, right, down, left"""

    def __init__(self, value):
        super().__init__(f"Invalid move direction: {value!r}")
        self.value = value


class BoardFullError(Game2048Error, RuntimeError):
    """A tile spawn was requested on a board with no empty cell.

    This signals a sequencing bug in the caller, spawns only follow moves
    that changed the board.
    """
