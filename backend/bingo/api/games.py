from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from bingo.store import get_store
from bingo.services.games import GameDirectory, GameLifecycle, GameMode, GameStatus, validate_settings
from bingo.services.games.errors import (
    GameError,
    InvalidTransition,
    NotEnoughItems,
    PermissionDenied,
    ValidationError,
)


games = Blueprint('games', __name__)


def _lifecycle() -> GameLifecycle:
    cfg = current_app.config
    return GameLifecycle(
        get_store(),
        default_max_players=int(cfg.get('DEFAULT_MAX_PLAYERS', 4)),
        invite_code_attempts=int(cfg.get('INVITE_CODE_ATTEMPTS', 10)),
    )


def _player_game(lifecycle: GameLifecycle, game_id: str):
    game = lifecycle.get_game(game_id)
    if not game.has_player(current_user.id):
        raise PermissionDenied('You are not a player in this game')
    return game


def _owner_game(lifecycle: GameLifecycle, game_id: str, action: str):
    game = _player_game(lifecycle, game_id)
    if not game.is_owner(current_user.id):
        raise PermissionDenied(f'Only the game owner may {action}')
    return game


def _int_field(data, name):
    try:
        return int(data.get(name))
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be a number')


@games.errorhandler(GameError)
def handle_game_error(exc: GameError):
    return jsonify(exc.to_dict()), exc.status_code


@games.route('/create', methods=['POST'])
@login_required
def create_game():
    """
    Creates a new game and adds the current user as owner and first player.
    """
    data = request.get_json(silent=True) or {}
    cfg = current_app.config
    category = (data.get('category') or '').strip()
    if not category:
        return jsonify({'error': 'Category is required', 'code': 'invalid_settings'}), 400
    size, mode, model, max_players = validate_settings(
        data.get('size', 5),
        data.get('game_mode') or GameMode.JOINED.value,
        data.get('winning_model') or 'line',
        max_players=data.get('max_players'),
        max_players_limit=int(cfg.get('MAX_PLAYERS_LIMIT', 20)),
        supported_sizes=tuple(cfg.get('SUPPORTED_BOARD_SIZES') or (3, 4, 5, 6)),
    )
    game = _lifecycle().create(
        current_user.id, category, size, mode, model,
        owner_name=current_user.display_name,
        max_players=max_players,
    )
    current_app.logger.info(f"[create] game={game.id} owner={current_user.id}")
    return jsonify(game.to_dict(current_user.id)), 201


@games.route('/', methods=['GET'])
@login_required
def list_games():
    """
    Returns the games the current user plays in, newest first.
    """
    directory = GameDirectory(get_store())
    return jsonify([g.to_dict(current_user.id) for g in directory.games_for_player(current_user.id)])


@games.route('/join', methods=['POST'])
@login_required
def join_game():
    data = request.get_json(silent=True) or {}
    invite_code = data.get('invite_code')
    if not invite_code:
        return jsonify({'error': 'Invite code is required', 'code': 'validation'}), 400
    game = _lifecycle().join(invite_code, current_user.id, current_user.display_name)
    return jsonify(game.to_dict(current_user.id)), 200


@games.route('/<string:game_id>', methods=['GET'])
@login_required
def get_game(game_id):
    game = _player_game(_lifecycle(), game_id)
    return jsonify(game.to_dict(current_user.id))


@games.route('/<string:game_id>/leave', methods=['POST'])
@login_required
def leave_game(game_id):
    lifecycle = _lifecycle()
    game = lifecycle.get_game(game_id)
    if game.is_owner(current_user.id):
        raise PermissionDenied('The owner cannot leave; cancel or delete the game instead')
    lifecycle.leave(game_id, current_user.id)
    return jsonify({'message': 'You have left the game.'}), 200


@games.route('/<string:game_id>/items', methods=['POST'])
@login_required
def add_item(game_id):
    lifecycle = _lifecycle()
    _player_game(lifecycle, game_id)
    data = request.get_json(silent=True) or {}
    result = lifecycle.add_item(game_id, data.get('item'), current_user.id)
    if not result.success:
        return jsonify(result.to_dict()), result.error.status_code
    return jsonify({'success': True, 'game': result.game.to_dict(current_user.id)}), 201


@games.route('/<string:game_id>/items/<int:index>', methods=['DELETE'])
@login_required
def remove_item(game_id, index):
    lifecycle = _lifecycle()
    game = _player_game(lifecycle, game_id)
    # Shared list is moderated by the owner; private lists by their player
    if game.game_mode == GameMode.JOINED and not game.is_owner(current_user.id):
        raise PermissionDenied('Only the game owner may remove shared items')
    game = lifecycle.remove_item(game_id, index, current_user.id)
    return jsonify(game.to_dict(current_user.id))


@games.route('/<string:game_id>/start', methods=['POST'])
@login_required
def start_game(game_id):
    lifecycle = _lifecycle()
    game = _owner_game(lifecycle, game_id, 'start the game')
    if game.status != GameStatus.CREATING:
        raise InvalidTransition('Game has already started or is finished')
    shortfalls = game.start_shortfalls()
    if shortfalls:
        missing = max(shortfalls.values())
        raise NotEnoughItems(f'Need {game.cell_count} items per board, {missing} missing')
    game = lifecycle.start(game_id)
    return jsonify(game.to_dict(current_user.id))


@games.route('/<string:game_id>/mark', methods=['POST'])
@login_required
def mark_cell(game_id):
    lifecycle = _lifecycle()
    _player_game(lifecycle, game_id)
    data = request.get_json(silent=True) or {}
    row = _int_field(data, 'row')
    col = _int_field(data, 'col')
    lifecycle.mark_cell(game_id, current_user.id, row, col)
    won = lifecycle.claim_win(game_id, current_user.id)
    game = lifecycle.get_game(game_id)
    return jsonify({'won': won, 'game': game.to_dict(current_user.id)})


@games.route('/<string:game_id>/cancel', methods=['POST'])
@login_required
def cancel_game(game_id):
    lifecycle = _lifecycle()
    _owner_game(lifecycle, game_id, 'cancel the game')
    game = lifecycle.cancel(game_id)
    return jsonify(game.to_dict(current_user.id))


@games.route('/<string:game_id>', methods=['DELETE'])
@login_required
def delete_game(game_id):
    lifecycle = _lifecycle()
    game = _owner_game(lifecycle, game_id, 'delete the game')
    if not game.is_terminal:
        raise InvalidTransition('Only completed or cancelled games can be deleted')
    lifecycle.delete(game_id)
    return jsonify({'message': 'Game deleted.'}), 200
