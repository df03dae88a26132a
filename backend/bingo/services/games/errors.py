"""
Exceptions raised by the game services.

Hierarchy:
- GameError (base, carries an HTTP status and a machine-readable code)
  - NotFoundError
  - InvalidTransition
  - CapacityError
  - DuplicateError
  - ValidationError
  - PermissionDenied
"""


class GameError(Exception):
    """Base exception for all game service errors."""
    status_code = 400
    code = 'game_error'
    default_message = 'Game error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


# =========================
# Not found
# =========================

class NotFoundError(GameError):
    status_code = 404
    code = 'not_found'
    default_message = 'Not found'


class GameNotFound(NotFoundError):
    code = 'game_not_found'
    default_message = 'Game not found'


class InviteCodeNotFound(NotFoundError):
    code = 'invite_code_not_found'
    default_message = 'No game found with that invite code'


# =========================
# Status transitions
# =========================

class InvalidTransition(GameError):
    status_code = 409
    code = 'invalid_transition'
    default_message = 'Operation not allowed in the current game status'


class AlreadyStarted(InvalidTransition):
    code = 'already_started'
    default_message = 'This game has already started'


class ConcurrentModification(InvalidTransition):
    code = 'concurrent_modification'
    default_message = 'The game was changed by someone else, please retry'


# =========================
# Capacity
# =========================

class CapacityError(GameError):
    code = 'capacity'
    default_message = 'Capacity exceeded'


class GameFull(CapacityError):
    code = 'game_full'
    default_message = 'This game is full'


class NotEnoughItems(CapacityError):
    code = 'not_enough_items'
    default_message = 'Not enough items to fill the board'


# =========================
# Duplicates
# =========================

class DuplicateError(GameError):
    code = 'duplicate'
    default_message = 'Already present'


class AlreadyJoined(DuplicateError):
    code = 'already_joined'
    default_message = 'You are already in this game'


class DuplicateItem(DuplicateError):
    code = 'duplicate_item'
    default_message = 'This item is already on the list'


# =========================
# Validation
# =========================

class ValidationError(GameError):
    code = 'validation'
    default_message = 'Invalid input'


class EmptyItem(ValidationError):
    code = 'empty_item'
    default_message = 'Item text cannot be empty'


class InvalidCell(ValidationError):
    code = 'invalid_cell'
    default_message = 'Cell is outside the board'


class InvalidSettings(ValidationError):
    code = 'invalid_settings'
    default_message = 'Invalid game settings'


# =========================
# Permissions
# =========================

class PermissionDenied(GameError):
    status_code = 403
    code = 'permission_denied'
    default_message = 'You are not allowed to do that'
