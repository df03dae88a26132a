"""Board dealing: turns an item pool into a randomized per-player grid."""

import random
from typing import Dict, List, Optional, Sequence


def cell_key(row: int, col: int) -> str:
    return f"{row}-{col}"


def deal_board(item_pool: Sequence[str], size: int, rng: Optional[random.Random] = None) -> Dict[str, str]:
    """Shuffle a copy of ``item_pool`` and lay it row-major into a size x size grid.

    Cells beyond the end of the pool get an empty string; items beyond
    ``size * size`` are left off the board. Pass ``rng`` to control the shuffle.
    """
    shuffled = list(item_pool)
    (rng or random).shuffle(shuffled)

    board = {}
    for index in range(size * size):
        row, col = divmod(index, size)
        board[cell_key(row, col)] = shuffled[index] if index < len(shuffled) else ''
    return board


def empty_marks(size: int) -> Dict[str, bool]:
    return {cell_key(r, c): False for r in range(size) for c in range(size)}


def board_rows(board: Dict[str, str], size: int) -> List[List[str]]:
    """2-D view of a dealt board, for clients that render rows."""
    return [[board.get(cell_key(r, c), '') for c in range(size)] for r in range(size)]
