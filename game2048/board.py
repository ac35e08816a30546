from enum import IntEnum
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np

from .errors import ConfigurationError, InvalidDirectionError

Position = Tuple[int, int]


class Direction(IntEnum):
    UP = 0
    RIGHT = 1
    DOWN = 2
    LEFT = 3

    @classmethod
    def parse(cls, value) -> "Direction":
        """Accept a Direction, a case-insensitive name or an integer code."""
        if isinstance(value, Direction):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            raise InvalidDirectionError(value)
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            try:
                return cls(int(value))
            except ValueError:
                raise InvalidDirectionError(value) from None
        raise InvalidDirectionError(value)

    @property
    def label(self) -> str:
        return self.name.lower()


class Tile(NamedTuple):
    id: int
    value: int
    row: int
    col: int
    # Ids of the two tiles retired by the merge that created this one,
    # only set on the snapshot produced by that move.
    merged_from: Tuple[int, ...] = ()

    @property
    def position(self) -> Position:
        return self.row, self.col

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "value": self.value,
            "position": [self.row, self.col],
            "merged_from": list(self.merged_from),
        }


class MoveResult(NamedTuple):
    board: "Board"
    changed: bool
    score_gain: int
    merges: Tuple[Tile, ...]


def is_tile_value(value: int) -> bool:
    return value >= 2 and (value & (value - 1)) == 0


class Board:
    """Immutable arena of tiles keyed by their stable id.

    Every operation that alters the board returns a new Board. Two boards are
    equal when they have the same dimensions and the same tile records, ids
    included, so snapshots can be compared directly in tests and kept around
    for undo.
    """

    __slots__ = ("height", "width", "_tiles", "_cells", "_next_id")

    def __init__(self, height: int, width: int, tiles: Iterable[Tile] = (), next_id: Optional[int] = None):
        self.height = height
        self.width = width
        self._tiles: Dict[int, Tile] = {}
        self._cells: Dict[Position, Tile] = {}

        for tile in tiles:
            if not (0 <= tile.row < height and 0 <= tile.col < width):
                raise ConfigurationError(f"Tile {tile.id} is outside a {height}x{width} board")
            if not is_tile_value(tile.value):
                raise ConfigurationError(f"Tile {tile.id} has invalid value {tile.value}")
            if tile.id in self._tiles:
                raise ConfigurationError(f"Duplicate tile id {tile.id}")
            if tile.position in self._cells:
                raise ConfigurationError(f"Two tiles occupy cell {tile.position}")
            self._tiles[tile.id] = tile
            self._cells[tile.position] = tile

        highest_id = max(self._tiles, default=0)
        self._next_id = highest_id + 1 if next_id is None else max(next_id, highest_id + 1)

    @classmethod
    def empty(cls, height: int, width: int) -> "Board":
        return cls(height, width, next_id=1)

    @classmethod
    def from_grid(cls, grid) -> "Board":
        """Build a board from a 2-D grid of values, numbering tiles row-major from 1."""
        array = np.asarray(grid, dtype=np.int64)
        if array.ndim != 2:
            raise ConfigurationError(f"Expected a 2-D grid, got shape {array.shape}")
        height, width = array.shape
        tiles = []
        for r in range(height):
            for c in range(width):
                value = int(array[r, c])
                if value != 0:
                    tiles.append(Tile(len(tiles) + 1, value, r, c))
        return cls(height, width, tiles)

    @property
    def tiles(self) -> Tuple[Tile, ...]:
        return tuple(self._tiles[tile_id] for tile_id in sorted(self._tiles))

    @property
    def next_id(self) -> int:
        return self._next_id

    def tile(self, tile_id: int) -> Tile:
        return self._tiles[tile_id]

    def tile_at(self, row: int, col: int) -> Optional[Tile]:
        return self._cells.get((row, col))

    def grid(self) -> np.ndarray:
        grid = np.zeros((self.height, self.width), dtype=np.int64)
        for tile in self._tiles.values():
            grid[tile.row, tile.col] = tile.value
        return grid

    def to_list(self) -> List[List[int]]:
        return self.grid().tolist()

    def empty_cells(self) -> List[Position]:
        return [(r, c) for r in range(self.height) for c in range(self.width) if (r, c) not in self._cells]

    def is_full(self) -> bool:
        return len(self._cells) == self.height * self.width

    def max_value(self) -> int:
        return max((tile.value for tile in self._tiles.values()), default=0)

    def total(self) -> int:
        return sum(tile.value for tile in self._tiles.values())

    def with_tile(self, row: int, col: int, value: int) -> Tuple["Board", Tile]:
        """Place a new tile on an empty cell; returns the new board and the tile."""
        if (row, col) in self._cells:
            raise ConfigurationError(f"Cell {(row, col)} is already occupied")
        tile = Tile(self._next_id, value, row, col)
        board = Board(self.height, self.width, list(self._tiles.values()) + [tile], self._next_id + 1)
        return board, tile

    def _lines(self, direction: Direction) -> List[List[Position]]:
        # Each line lists its cells starting from the edge the tiles move toward
        if direction == Direction.LEFT:
            return [[(r, c) for c in range(self.width)] for r in range(self.height)]
        if direction == Direction.RIGHT:
            return [[(r, c) for c in reversed(range(self.width))] for r in range(self.height)]
        if direction == Direction.UP:
            return [[(r, c) for r in range(self.height)] for c in range(self.width)]
        return [[(r, c) for r in reversed(range(self.height))] for c in range(self.width)]

    def move(self, direction) -> MoveResult:
        """Slide and merge every line toward ``direction``.

        Tiles keep their id when they slide. A merge retires both source ids
        and creates a new tile at the slot nearer the edge. A tile created by a
        merge does not merge again in the same move, so ``[2, 2, 2, _]`` moved
        left gives ``[4, 2, _, _]``.
        """
        direction = Direction.parse(direction)
        next_id = self._next_id
        moved_tiles: List[Tile] = []
        merges: List[Tile] = []
        score_gain = 0
        changed = False

        for line in self._lines(direction):
            placed: List[Tuple[Tile, bool]] = []
            for cell in line:
                tile = self._cells.get(cell)
                if tile is None:
                    continue
                if placed and not placed[-1][1] and placed[-1][0].value == tile.value:
                    source, _ = placed.pop()
                    merged = Tile(next_id, tile.value * 2, -1, -1, (source.id, tile.id))
                    next_id += 1
                    score_gain += merged.value
                    placed.append((merged, True))
                else:
                    placed.append((tile, False))

            for (row, col), (tile, is_merge) in zip(line, placed):
                if is_merge:
                    tile = tile._replace(row=row, col=col)
                    merges.append(tile)
                    changed = True
                else:
                    if tile.position != (row, col):
                        changed = True
                    tile = tile._replace(row=row, col=col, merged_from=())
                moved_tiles.append(tile)

        if not changed:
            return MoveResult(self, False, 0, ())
        return MoveResult(Board(self.height, self.width, moved_tiles, next_id), True, score_gain, tuple(merges))

    def to_dict(self) -> dict:
        return {
            "height": self.height,
            "width": self.width,
            "grid": self.to_list(),
            "tiles": [tile.to_dict() for tile in self.tiles],
        }

    def __eq__(self, other):
        if not isinstance(other, Board):
            return NotImplemented
        return self.height == other.height and self.width == other.width and self._tiles == other._tiles

    def __hash__(self):
        return hash((self.height, self.width, frozenset(self._tiles.values())))

    def __repr__(self):
        return f"Board({self.height}x{self.width}, tiles={len(self._tiles)}, next_id={self._next_id})"
