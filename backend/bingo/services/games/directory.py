from typing import Callable, List, Optional

from bingo.store import DocumentStore, Query, Subscription

from .game import Game
from .invite import normalize_invite_code

GAMES_COLLECTION = 'games'


def _player_games_query(user_id: str) -> Query:
    return Query(
        GAMES_COLLECTION,
        where=lambda doc: user_id in (doc.get('players') or []),
        order_by='created_at',
        descending=True,
    )


class GameDirectory:
    """Lookups and live views over the games collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_game(self, game_id: str) -> Optional[Game]:
        doc = self.store.get_or_none(self.store.document(GAMES_COLLECTION, game_id))
        return Game.from_dict(doc) if doc is not None else None

    def find_game_by_invite_code(self, code: str) -> Optional[Game]:
        code = normalize_invite_code(code)
        if not code:
            return None
        matches = self.store.query(
            Query(GAMES_COLLECTION, where=lambda doc: doc.get('invite_code') == code)
        )
        return Game.from_dict(matches[0]) if matches else None

    def games_for_player(self, user_id: str) -> List[Game]:
        """Games the user is playing in, newest first."""
        return [Game.from_dict(doc) for doc in self.store.query(_player_games_query(user_id))]

    def listen_to_games(self, user_id: str, callback: Callable[[List[Game]], None],
                        on_error: Optional[Callable[[Exception], None]] = None) -> Subscription:
        return self.store.subscribe(
            _player_games_query(user_id),
            lambda docs: callback([Game.from_dict(doc) for doc in docs]),
            on_error=on_error,
        )

    def listen_to_game(self, game_id: str, callback: Callable[[Optional[Game]], None],
                       on_error: Optional[Callable[[Exception], None]] = None) -> Subscription:
        """Callback gets the game after every change, or None once it is deleted."""
        return self.store.subscribe(
            self.store.document(GAMES_COLLECTION, game_id),
            lambda doc: callback(Game.from_dict(doc) if doc is not None else None),
            on_error=on_error,
        )
