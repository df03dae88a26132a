from flask_socketio import emit
from flask import current_app, request
from flask_login import current_user
from bingo import socketio
from bingo.store import get_store
from bingo.services.games import GameDirectory
from typing import Dict, Any

NAMESPACE = '/ws'

# Live store subscriptions per socket: sid -> {'game:<id>' | 'games': Subscription}
_sid_to_subs: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _viewer_id():
    return current_user.id if current_user.is_authenticated else None


def _drop_subscription(sid: str, key: str) -> bool:
    subs = _sid_to_subs.get(sid, {})
    sub = subs.pop(key, None)
    if sub is None:
        return False
    sub.unsubscribe()
    if not subs:
        _sid_to_subs.pop(sid, None)
    return True


def _report_error(sid: str, logger):
    def _on_error(exc):
        logger.warning(f"[ws-subscription-error] sid={sid} {exc}")
        socketio.emit('error', {'message': 'Live updates failed'}, to=sid, namespace=NAMESPACE)
    return _on_error


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Tear down every store subscription owned by this socket
    sid = _get_sid()
    for key in list(_sid_to_subs.get(sid, {})):
        _drop_subscription(sid, key)


def handle_watch_game(data):
    game_id = (data or {}).get('game_id')
    if not game_id:
        emit('error', {'message': 'game_id is required'})
        return
    viewer_id = _viewer_id()
    if viewer_id is None:
        emit('error', {'message': 'Login required'})
        return
    directory = GameDirectory(get_store())
    game = directory.get_game(game_id)
    # Same visibility as GET /api/games/<id>: players only
    if game is None or not game.has_player(viewer_id):
        emit('error', {'message': 'You are not a player in this game'})
        return
    sid = _get_sid()
    key = f"game:{game_id}"
    _drop_subscription(sid, key)

    def _push(game):
        if game is None:
            socketio.emit('game_deleted', {'game_id': game_id}, to=sid, namespace=NAMESPACE)
            _drop_subscription(sid, key)
            return
        if not game.has_player(viewer_id):
            socketio.emit('game_left', {'game_id': game_id}, to=sid, namespace=NAMESPACE)
            _drop_subscription(sid, key)
            return
        socketio.emit('game_update', game.to_dict(viewer_id), to=sid, namespace=NAMESPACE)

    sub = directory.listen_to_game(game_id, _push, on_error=_report_error(sid, current_app.logger))
    _sid_to_subs.setdefault(sid, {})[key] = sub
    emit('watching', {'game_id': game_id})


def handle_unwatch_game(data):
    game_id = (data or {}).get('game_id')
    if not game_id:
        emit('error', {'message': 'game_id is required'})
        return
    _drop_subscription(_get_sid(), f"game:{game_id}")
    emit('unwatched', {'game_id': game_id})


def handle_watch_games(data=None):
    viewer_id = _viewer_id()
    if viewer_id is None:
        emit('error', {'message': 'Login required'})
        return
    sid = _get_sid()
    _drop_subscription(sid, 'games')

    def _push(games):
        socketio.emit('games_update', [g.to_dict(viewer_id) for g in games], to=sid, namespace=NAMESPACE)

    directory = GameDirectory(get_store())
    sub = directory.listen_to_games(viewer_id, _push, on_error=_report_error(sid, current_app.logger))
    _sid_to_subs.setdefault(sid, {})['games'] = sub
    emit('watching', {'user_id': viewer_id})


def handle_unwatch_games(data=None):
    _drop_subscription(_get_sid(), 'games')
    emit('unwatched', {})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'watch_game': handle_watch_game,
        'unwatch_game': handle_unwatch_game,
        'watch_games': handle_watch_games,
        'unwatch_games': handle_unwatch_games,
        'ping': handle_ping,
    }
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
