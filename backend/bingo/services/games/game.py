"""The Game aggregate and its status / mode / winning-model enums."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .errors import InvalidSettings, InvalidTransition

SUPPORTED_BOARD_SIZES = (3, 4, 5, 6)


class GameStatus(str, Enum):
    """Game status. Only moves forward, see ``TRANSITIONS``."""

    CREATING = "creating"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GameMode(str, Enum):
    """How items are collected before the game starts."""

    JOINED = "joined"
    INDIVIDUAL = "individual"


class WinningModel(str, Enum):
    LINE = "line"
    FULL_BOARD = "fullBoard"


TRANSITIONS = {
    GameStatus.CREATING: {GameStatus.ACTIVE, GameStatus.CANCELLED},
    GameStatus.ACTIVE: {GameStatus.COMPLETED, GameStatus.CANCELLED},
    GameStatus.COMPLETED: set(),
    GameStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_settings(size, game_mode, winning_model, max_players=None, max_players_limit=None,
                      supported_sizes=SUPPORTED_BOARD_SIZES):
    """Coerce raw create-game settings into their typed form.

    Raises InvalidSettings on anything unsupported.
    """
    try:
        size = int(size)
    except (TypeError, ValueError):
        raise InvalidSettings(f'Board size must be one of {list(supported_sizes)}')
    if size not in supported_sizes:
        raise InvalidSettings(f'Board size must be one of {list(supported_sizes)}')
    try:
        game_mode = GameMode(game_mode)
    except ValueError:
        raise InvalidSettings(f'Unknown game mode: {game_mode}')
    try:
        winning_model = WinningModel(winning_model)
    except ValueError:
        raise InvalidSettings(f'Unknown winning model: {winning_model}')
    if max_players is not None:
        try:
            max_players = int(max_players)
        except (TypeError, ValueError):
            raise InvalidSettings('max_players must be a number')
        if max_players < 1 or (max_players_limit and max_players > max_players_limit):
            raise InvalidSettings(f'max_players must be between 1 and {max_players_limit}')
    return size, game_mode, winning_model, max_players


@dataclass
class Game:
    id: str
    category: str
    size: int
    owner_id: str
    invite_code: str
    game_mode: GameMode = GameMode.JOINED
    winning_model: WinningModel = WinningModel.LINE
    status: GameStatus = GameStatus.CREATING
    players: List[str] = field(default_factory=list)
    player_names: Dict[str, str] = field(default_factory=dict)
    items: List[str] = field(default_factory=list)
    player_items: Dict[str, List[str]] = field(default_factory=dict)
    max_players: int = 4
    created_at: str = field(default_factory=utc_now_iso)
    player_boards: Dict[str, Dict[str, str]] = field(default_factory=dict)
    player_marked_cells: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    winner: Optional[str] = None
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'Game':
        return cls(
            id=data['id'],
            category=data.get('category', ''),
            size=int(data['size']),
            owner_id=data['owner_id'],
            invite_code=data.get('invite_code', ''),
            game_mode=GameMode(data.get('game_mode', GameMode.JOINED)),
            winning_model=WinningModel(data.get('winning_model', WinningModel.LINE)),
            status=GameStatus(data.get('status', GameStatus.CREATING)),
            players=list(data.get('players') or []),
            player_names=dict(data.get('player_names') or {}),
            items=list(data.get('items') or []),
            player_items={k: list(v) for k, v in (data.get('player_items') or {}).items()},
            max_players=int(data.get('max_players') or 4),
            created_at=data.get('created_at') or utc_now_iso(),
            player_boards={k: dict(v) for k, v in (data.get('player_boards') or {}).items()},
            player_marked_cells={k: dict(v) for k, v in (data.get('player_marked_cells') or {}).items()},
            winner=data.get('winner'),
            version=int(data.get('version') or 0),
        )

    def to_document(self) -> dict:
        """Shape persisted in the document store (no derived fields)."""
        return {
            'id': self.id,
            'category': self.category,
            'size': self.size,
            'owner_id': self.owner_id,
            'invite_code': self.invite_code,
            'game_mode': self.game_mode.value,
            'winning_model': self.winning_model.value,
            'status': self.status.value,
            'players': list(self.players),
            'player_names': dict(self.player_names),
            'items': list(self.items),
            'player_items': {k: list(v) for k, v in self.player_items.items()},
            'max_players': self.max_players,
            'created_at': self.created_at,
            'player_boards': {k: dict(v) for k, v in self.player_boards.items()},
            'player_marked_cells': {k: dict(v) for k, v in self.player_marked_cells.items()},
            'winner': self.winner,
        }

    def to_dict(self, viewer_id: Optional[str] = None) -> dict:
        """API representation.

        While an individual-mode game is still collecting items, a viewer
        only sees their own private list.
        """
        payload = self.to_document()
        payload['version'] = self.version
        payload['player_item_counts'] = self.player_item_counts
        payload['cell_count'] = self.cell_count
        payload['is_owner'] = viewer_id is not None and self.is_owner(viewer_id)
        payload['start_shortfalls'] = self.start_shortfalls() if self.status == GameStatus.CREATING else {}
        if (viewer_id is not None and self.game_mode == GameMode.INDIVIDUAL
                and self.status == GameStatus.CREATING):
            payload['player_items'] = {viewer_id: list(self.player_items.get(viewer_id, []))}
        return payload

    @property
    def cell_count(self) -> int:
        return self.size * self.size

    @property
    def player_item_counts(self) -> Dict[str, int]:
        if self.game_mode == GameMode.JOINED:
            return {pid: len(self.items) for pid in self.players}
        return {pid: len(self.player_items.get(pid, [])) for pid in self.players}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def has_player(self, user_id: str) -> bool:
        return user_id in self.players

    def item_pool(self, user_id: str) -> List[str]:
        """Items a player's board is dealt from."""
        if self.game_mode == GameMode.JOINED:
            return self.items
        return self.player_items.get(user_id, [])

    def start_shortfalls(self) -> Dict[str, int]:
        """Players whose item pool is still too small, mapped to how many items are missing."""
        if self.game_mode == GameMode.JOINED:
            missing = self.cell_count - len(self.items)
            return {pid: missing for pid in self.players} if missing > 0 else {}
        return {
            pid: self.cell_count - len(self.player_items.get(pid, []))
            for pid in self.players
            if len(self.player_items.get(pid, [])) < self.cell_count
        }

    def can_start(self) -> bool:
        return self.status == GameStatus.CREATING and not self.start_shortfalls()

    def can_transition(self, target: GameStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def transition(self, target: GameStatus) -> None:
        if not self.can_transition(target):
            raise InvalidTransition(
                f'Cannot move game from {self.status.value} to {target.value}'
            )
        self.status = target
