"""Value-only board kernels compiled with numba.

These work on plain ``int64`` grids and know nothing about tile identity. The
rules object uses them for move simulation, legal move lookup and the
terminal check, where the tile arena would only slow things down.
"""

from typing import Any, Tuple

import numba
import numpy as np

GridType = np.ndarray[Any, np.dtype[np.int64]]

# Direction codes shared with game2048.board.Direction
UP, RIGHT, DOWN, LEFT = 0, 1, 2, 3


@numba.njit(cache=True)
def slide_line(line: GridType) -> Tuple[GridType, np.int64]:
    line_len = len(line)
    new_line = np.zeros_like(line)
    merge_score = np.int64(0)
    last_merged = False
    target_idx = 0

    for read_idx in range(line_len):
        val = line[read_idx]
        if val == 0:
            continue

        if target_idx > 0 and new_line[target_idx - 1] == val and not last_merged:
            merged_val = val * 2
            new_line[target_idx - 1] = merged_val
            merge_score += merged_val
            last_merged = True
        else:
            new_line[target_idx] = val
            last_merged = False
            target_idx += 1

    return new_line, merge_score


@numba.njit(cache=True)
def move_grid(grid: GridType, direction: int) -> Tuple[GridType, np.int64]:
    height, width = grid.shape
    new_grid = grid.copy()
    total_gain = np.int64(0)

    if direction == LEFT:
        for r in range(height):
            line, gain = slide_line(new_grid[r, :].copy())
            new_grid[r, :] = line
            total_gain += gain
    elif direction == RIGHT:
        for r in range(height):
            line, gain = slide_line(new_grid[r, ::-1].copy())
            new_grid[r, :] = line[::-1]
            total_gain += gain
    elif direction == UP:
        for c in range(width):
            line, gain = slide_line(new_grid[:, c].copy())
            new_grid[:, c] = line
            total_gain += gain
    elif direction == DOWN:
        for c in range(width):
            line, gain = slide_line(new_grid[::-1, c].copy())
            new_grid[:, c] = line[::-1]
            total_gain += gain

    return new_grid, total_gain


@numba.njit(cache=True)
def any_moves_possible(grid: GridType) -> bool:
    height, width = grid.shape

    if np.any(grid == 0):
        return True

    for r in range(height):
        for c in range(width - 1):
            if grid[r, c] == grid[r, c + 1]:
                return True
    for c in range(width):
        for r in range(height - 1):
            if grid[r, c] == grid[r + 1, c]:
                return True

    return False
