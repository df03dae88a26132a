"""Game domain services: dealing, win detection, lifecycle and lookups.

This package contains the game rules. It is imported by HTTP routes and
socket handlers, keeping transport concerns separated from core game
mechanics. Persistence goes through ``bingo.store``.
"""

from .dealer import board_rows, cell_key, deal_board, empty_marks
from .directory import GAMES_COLLECTION, GameDirectory
from .game import (
    SUPPORTED_BOARD_SIZES,
    Game,
    GameMode,
    GameStatus,
    WinningModel,
    validate_settings,
)
from .invite import generate_invite_code, normalize_invite_code
from .lifecycle import GameLifecycle, ItemResult
from .winning import check_full_board_win, check_line_win, check_win
