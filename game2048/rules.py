import numbers
from typing import Dict, List, Optional, Tuple

import numpy as np

from .board import Board, Direction, Tile, is_tile_value
from .errors import BoardFullError, ConfigurationError
from .kernels import GridType, any_moves_possible, move_grid


class GameRules:
    DEFAULT_SPAWN_RATES: Dict[int, float] = {2: 0.9, 4: 0.1}
    DEFAULT_TARGET: int = 2048

    height: int
    width: int
    target: int
    num_initial_tiles: int
    max_history: int
    _spawn_rates: Dict[int, float]
    _spawn_values_np: np.ndarray
    _spawn_cumulative_np: np.ndarray

    def __init__(self,
                 height: int = 4,
                 width: int = 4,
                 target: int = DEFAULT_TARGET,
                 spawn_rates: Optional[Dict[int, float]] = None,
                 num_initial_tiles: int = 2,
                 max_history: int = 20):
        if spawn_rates is None:
            spawn_rates = self.DEFAULT_SPAWN_RATES

        if not (isinstance(height, int) and isinstance(width, int)) or height <= 0 or width <= 0:
            raise ConfigurationError(f"Board dimensions must be positive integers, got {height}x{width}")
        if height * width < 2:
            raise ConfigurationError("Board needs at least two cells")
        if not isinstance(target, int) or not is_tile_value(target):
            raise ConfigurationError(f"Target must be a power of two >= 2, got {target!r}")
        if not isinstance(spawn_rates, dict) or not spawn_rates:
            raise ConfigurationError("Spawn rates must be a non-empty dict of value -> probability")
        for value, weight in spawn_rates.items():
            if not isinstance(value, int) or not is_tile_value(value):
                raise ConfigurationError(f"Spawn value must be a power of two >= 2, got {value!r}")
            if not isinstance(weight, numbers.Real) or isinstance(weight, bool):
                raise ConfigurationError(f"Spawn probability for {value} must be a number, got {weight!r}")
            if weight < 0:
                raise ConfigurationError(f"Spawn probability for {value} is negative")
        if not np.isclose(sum(spawn_rates.values()), 1.0):
            raise ConfigurationError(f"Spawn probabilities must sum to 1, got {sum(spawn_rates.values())}")
        if not isinstance(num_initial_tiles, int) or not 0 <= num_initial_tiles <= height * width:
            raise ConfigurationError(f"Cannot place {num_initial_tiles!r} initial tiles on a {height}x{width} board")
        if not isinstance(max_history, int) or max_history < 0:
            raise ConfigurationError(f"History limit must be a non-negative integer, got {max_history!r}")

        self.height = height
        self.width = width
        self.target = target
        self.num_initial_tiles = num_initial_tiles
        self.max_history = max_history

        self._spawn_rates = dict(spawn_rates)
        self._spawn_values_np = np.array(list(self._spawn_rates.keys()), dtype=np.int64)
        self._spawn_cumulative_np = np.cumsum(np.array(list(self._spawn_rates.values()), dtype=np.float64))

    @classmethod
    def from_config(cls, config: Dict) -> "GameRules":
        """Build rules from the ``"rules"`` section of a parsed config dict."""
        spawn_rates = None
        four_probability = config.get("four_probability")
        if four_probability is not None:
            if not isinstance(four_probability, numbers.Real) or not 0.0 <= four_probability <= 1.0:
                raise ConfigurationError(f"Probability of a 4 must be in [0, 1], got {four_probability}")
            spawn_rates = {2: 1.0 - four_probability, 4: four_probability}
        return cls(
            height=config.get("height", 4),
            width=config.get("width", 4),
            target=config.get("target", cls.DEFAULT_TARGET),
            spawn_rates=spawn_rates,
            num_initial_tiles=config.get("initial_tiles", 2),
            max_history=config.get("max_history", 20),
        )

    @property
    def spawn_rates(self) -> Dict[int, float]:
        return dict(self._spawn_rates)

    def to_dict(self) -> Dict:
        return {
            "height": self.height,
            "width": self.width,
            "target": self.target,
            "spawn_rates": {str(k): v for k, v in self._spawn_rates.items()},
            "initial_tiles": self.num_initial_tiles,
        }

    def new_board(self) -> Board:
        return Board.empty(self.height, self.width)

    def draw_spawn_value(self, rng: np.random.Generator) -> int:
        idx = int(np.searchsorted(self._spawn_cumulative_np, rng.random(), side="right"))
        # Guard against cumulative sums that stop a hair short of 1.0
        idx = min(idx, len(self._spawn_values_np) - 1)
        return int(self._spawn_values_np[idx])

    def spawn(self, board: Board, rng: np.random.Generator) -> Tuple[Board, Tile]:
        empty = board.empty_cells()
        if not empty:
            raise BoardFullError(f"No empty cell to spawn into on {board!r}")
        r, c = empty[int(rng.integers(len(empty)))]
        return board.with_tile(r, c, self.draw_spawn_value(rng))

    # Value-only helpers on numpy grids

    def _as_grid(self, grid) -> GridType:
        grid = np.asarray(grid)
        if grid.dtype != np.int64:
            grid = grid.astype(np.int64)
        return grid

    def apply_move(self, grid, direction) -> Tuple[GridType, int]:
        new_grid, gain = move_grid(self._as_grid(grid), int(Direction.parse(direction)))
        return new_grid, int(gain)

    def simulate_move(self, grid, direction) -> Tuple[bool, int, GridType]:
        grid = self._as_grid(grid)
        new_grid, gain = move_grid(grid, int(Direction.parse(direction)))
        board_changed = bool(np.any(grid != new_grid))
        return board_changed, int(gain), new_grid

    def get_valid_moves(self, grid) -> List[Direction]:
        valid_moves: List[Direction] = []
        for direction in Direction:
            board_changed, _, _ = self.simulate_move(grid, direction)
            if board_changed:
                valid_moves.append(direction)
        return valid_moves

    def is_terminal(self, grid) -> bool:
        return not any_moves_possible(self._as_grid(grid))

    def has_won(self, grid) -> bool:
        return bool(np.any(self._as_grid(grid) >= self.target))

    def get_max_tile(self, grid) -> int:
        grid = self._as_grid(grid)
        if grid.size == 0:
            return 0
        return int(np.max(grid))

    def render_ascii(self, grid, cell_width: int = 6) -> str:
        grid = self._as_grid(grid)
        height, width = grid.shape
        separator: str = "+" + ("-" * cell_width + "+") * width
        output: List[str] = [separator]
        for r in range(height):
            row_str: List[str] = ["|"]
            for c in range(width):
                val = int(grid[r, c])
                cell_str: str = str(val) if val != 0 else "."
                row_str.append(cell_str.center(cell_width))
                row_str.append("|")
            output.append("".join(row_str))
            output.append(separator)
        return "\n".join(output)
