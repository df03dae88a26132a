import logging
import random
from dataclasses import dataclass
from typing import Optional

from bingo.store import DocumentNotFound, DocumentStore, VersionConflict

from .dealer import cell_key, deal_board, empty_marks
from .directory import GAMES_COLLECTION, GameDirectory
from .errors import (
    AlreadyJoined,
    AlreadyStarted,
    ConcurrentModification,
    DuplicateItem,
    EmptyItem,
    GameError,
    GameFull,
    GameNotFound,
    InvalidCell,
    InvalidTransition,
    InviteCodeNotFound,
    PermissionDenied,
)
from .game import Game, GameMode, GameStatus, WinningModel
from .invite import generate_invite_code, normalize_invite_code
from .winning import check_win

logger = logging.getLogger(__name__)

DEFAULT_MAX_PLAYERS = 4
INVITE_CODE_ATTEMPTS = 10


@dataclass
class ItemResult:
    """Outcome of an item edit. Validation failures are reported, not raised."""
    success: bool
    error: Optional[GameError] = None
    game: Optional[Game] = None

    def to_dict(self):
        if self.success:
            return {'success': True}
        return {'success': False, **self.error.to_dict()}


class GameLifecycle:
    """Runs game operations as read -> validate -> compute -> write against the store.

    Every write is conditional on the version that was read, so a concurrent
    change to the same game raises ConcurrentModification instead of being
    silently overwritten. Nothing is retried here.
    """

    def __init__(self, store: DocumentStore, rng: Optional[random.Random] = None,
                 default_max_players: int = DEFAULT_MAX_PLAYERS,
                 invite_code_attempts: int = INVITE_CODE_ATTEMPTS):
        self.store = store
        self.rng = rng
        self.default_max_players = default_max_players
        self.invite_code_attempts = invite_code_attempts
        self.directory = GameDirectory(store)

    # -------------------------------------------------
    # Reads / writes
    # -------------------------------------------------

    def _ref(self, game_id: str):
        return self.store.document(GAMES_COLLECTION, game_id)

    def get_game(self, game_id: str) -> Game:
        try:
            return Game.from_dict(self.store.get(self._ref(game_id)))
        except DocumentNotFound:
            raise GameNotFound()

    def _write(self, game: Game, *fields) -> Game:
        document = game.to_document()
        changes = {name: document[name] for name in fields}
        try:
            stored = self.store.update(self._ref(game.id), changes, expected_version=game.version)
        except DocumentNotFound:
            raise GameNotFound()
        except VersionConflict as exc:
            logger.info(f"[conflict] game={game.id} fields={','.join(fields)} {exc}")
            raise ConcurrentModification()
        return Game.from_dict(stored)

    # -------------------------------------------------
    # Creation and membership
    # -------------------------------------------------

    def _unused_invite_code(self) -> str:
        for _ in range(self.invite_code_attempts):
            code = generate_invite_code(self.rng)
            if self.directory.find_game_by_invite_code(code) is None:
                return code
            logger.info(f"[invite-retry] code={code} already taken")
        raise RuntimeError(f"No free invite code after {self.invite_code_attempts} attempts")

    def create(self, owner_id: str, category: str, size: int, game_mode=GameMode.JOINED,
               winning_model=WinningModel.LINE, owner_name: Optional[str] = None,
               max_players: Optional[int] = None) -> Game:
        """Create a game in the ``creating`` status with the owner as its only player."""
        ref = self.store.document(GAMES_COLLECTION)
        game = Game(
            id=ref.id,
            category=(category or '').strip(),
            size=int(size),
            owner_id=owner_id,
            invite_code=self._unused_invite_code(),
            game_mode=GameMode(game_mode),
            winning_model=WinningModel(winning_model),
            players=[owner_id],
            player_names={owner_id: owner_name or owner_id},
            max_players=max_players or self.default_max_players,
        )
        if game.game_mode == GameMode.INDIVIDUAL:
            game.player_items[owner_id] = []
        stored = self.store.set(ref, game.to_document())
        logger.info(f"[create] game={game.id} code={game.invite_code} mode={game.game_mode.value} size={game.size}")
        return Game.from_dict(stored)

    def join(self, invite_code: str, user_id: str, display_name: Optional[str] = None) -> Game:
        game = self.directory.find_game_by_invite_code(normalize_invite_code(invite_code))
        if game is None:
            raise InviteCodeNotFound()
        if game.status != GameStatus.CREATING:
            raise AlreadyStarted()
        if game.has_player(user_id):
            raise AlreadyJoined()
        if len(game.players) >= game.max_players:
            raise GameFull()

        game.players.append(user_id)
        game.player_names[user_id] = display_name or user_id
        fields = ['players', 'player_names']
        if game.game_mode == GameMode.INDIVIDUAL:
            game.player_items[user_id] = []
            fields.append('player_items')
        game = self._write(game, *fields)
        logger.info(f"[join] game={game.id} user={user_id} players={len(game.players)}")
        return game

    def leave(self, game_id: str, user_id: str) -> Game:
        """Remove a player and everything keyed by them. No-op for non-players."""
        game = self.get_game(game_id)
        if not game.has_player(user_id):
            return game
        game.players.remove(user_id)
        game.player_names.pop(user_id, None)
        game.player_items.pop(user_id, None)
        game.player_boards.pop(user_id, None)
        game.player_marked_cells.pop(user_id, None)
        game = self._write(game, 'players', 'player_names', 'player_items',
                           'player_boards', 'player_marked_cells')
        logger.info(f"[leave] game={game.id} user={user_id} players={len(game.players)}")
        return game

    # -------------------------------------------------
    # Items
    # -------------------------------------------------

    def _require_creating(self, game: Game) -> None:
        if game.status != GameStatus.CREATING:
            raise InvalidTransition('Items can only be changed before the game starts')

    def add_item(self, game_id: str, item: str, user_id: str) -> ItemResult:
        game = self.get_game(game_id)
        self._require_creating(game)

        text = (item or '').strip()
        if not text:
            return ItemResult(False, EmptyItem(), game)

        if game.game_mode == GameMode.JOINED:
            target = game.items
            field_name = 'items'
        else:
            if not game.has_player(user_id):
                raise PermissionDenied('You are not a player in this game')
            target = game.player_items.setdefault(user_id, [])
            field_name = 'player_items'
        if text in target:
            return ItemResult(False, DuplicateItem(f'"{text}" is already on the list'), game)

        target.append(text)
        game = self._write(game, field_name)
        return ItemResult(True, game=game)

    def remove_item(self, game_id: str, index: int, user_id: Optional[str] = None) -> Game:
        game = self.get_game(game_id)
        self._require_creating(game)

        if game.game_mode == GameMode.JOINED:
            game.items = [item for i, item in enumerate(game.items) if i != index]
            field_name = 'items'
        else:
            own = game.player_items.get(user_id)
            if own is None:
                return game
            game.player_items[user_id] = [item for i, item in enumerate(own) if i != index]
            field_name = 'player_items'
        return self._write(game, field_name)

    # -------------------------------------------------
    # Status transitions
    # -------------------------------------------------

    def start(self, game_id: str) -> Game:
        """Deal every player a board and move the game to ``active``.

        Item counts are not re-checked: short pools are padded with empty
        cells. Use ``Game.start_shortfalls`` before calling.
        """
        game = self.get_game(game_id)
        game.transition(GameStatus.ACTIVE)
        game.player_boards = {
            pid: deal_board(game.item_pool(pid), game.size, self.rng) for pid in game.players
        }
        game.player_marked_cells = {pid: empty_marks(game.size) for pid in game.players}
        game = self._write(game, 'status', 'player_boards', 'player_marked_cells')
        logger.info(f"[start] game={game.id} players={len(game.players)} size={game.size}")
        return game

    def mark_cell(self, game_id: str, user_id: str, row: int, col: int) -> Game:
        """Toggle one cell on the player's own marks. Win evaluation is separate, see ``claim_win``."""
        game = self.get_game(game_id)
        if game.status != GameStatus.ACTIVE:
            raise InvalidTransition('Cells can only be marked while the game is active')
        if not (0 <= row < game.size and 0 <= col < game.size):
            raise InvalidCell()
        marks = game.player_marked_cells.get(user_id)
        if marks is None or user_id not in game.player_boards:
            return game
        key = cell_key(row, col)
        marks[key] = not marks.get(key, False)
        return self._write(game, 'player_marked_cells')

    def claim_win(self, game_id: str, user_id: str) -> bool:
        """Complete the game with ``user_id`` as winner if their marks satisfy the winning model."""
        game = self.get_game(game_id)
        if game.status != GameStatus.ACTIVE or not game.has_player(user_id):
            return False
        marks = game.player_marked_cells.get(user_id, {})
        if not check_win(marks, game.size, game.winning_model):
            return False
        game.transition(GameStatus.COMPLETED)
        game.winner = user_id
        self._write(game, 'status', 'winner')
        logger.info(f"[win] game={game.id} winner={user_id} model={game.winning_model.value}")
        return True

    def cancel(self, game_id: str) -> Game:
        game = self.get_game(game_id)
        if game.status == GameStatus.CANCELLED:
            return game
        game.transition(GameStatus.CANCELLED)
        game = self._write(game, 'status')
        logger.info(f"[cancel] game={game.id}")
        return game

    def delete(self, game_id: str) -> None:
        ref = self._ref(game_id)
        if self.store.get_or_none(ref) is None:
            raise GameNotFound()
        self.store.delete(ref)
        logger.info(f"[delete] game={game_id}")
