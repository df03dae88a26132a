"""Win detection over a player's marked cells.

``marked`` maps cell keys ("row-col") to booleans; missing keys count as
unmarked, so a sparse map of only the marked cells works too.
"""

from typing import Dict, Iterable

from .dealer import cell_key


def _all_marked(marked: Dict[str, bool], keys: Iterable[str]) -> bool:
    return all(marked.get(key, False) for key in keys)


def _lines(size: int):
    for r in range(size):
        yield [cell_key(r, c) for c in range(size)]
    for c in range(size):
        yield [cell_key(r, c) for r in range(size)]
    yield [cell_key(i, i) for i in range(size)]
    yield [cell_key(i, size - 1 - i) for i in range(size)]


def check_line_win(marked: Dict[str, bool], size: int) -> bool:
    """True if any full row, column, or either diagonal is marked."""
    if not marked:
        return False
    return any(_all_marked(marked, line) for line in _lines(size))


def check_full_board_win(marked: Dict[str, bool], size: int) -> bool:
    if not marked:
        return False
    return _all_marked(marked, (cell_key(r, c) for r in range(size) for c in range(size)))


def check_win(marked: Dict[str, bool], size: int, winning_model) -> bool:
    # Accepts the WinningModel enum or its raw value
    model = getattr(winning_model, 'value', winning_model)
    if model == 'line':
        return check_line_win(marked, size)
    if model == 'fullBoard':
        return check_full_board_win(marked, size)
    raise ValueError(f"Unknown winning model: {winning_model!r}")
