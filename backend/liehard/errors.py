"""Errors raised by the game core.

Every error carries a short ``code`` that the session gateway forwards to the
acting client together with the human readable message.
"""


class GameError(Exception):
    code = 'game_error'
    default_message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class RoomNotFoundError(GameError):
    code = 'room_not_found'
    default_message = 'Room does not exist'


class RoomExistsError(GameError):
    code = 'room_exists'
    default_message = 'A room with this id already exists'


class RoomFullError(GameError):
    code = 'room_full'
    default_message = 'Room is full'


class UnauthorizedError(GameError):
    code = 'unauthorized'
    default_message = 'Only the host can do that'


class ValidationError(GameError):
    code = 'invalid_payload'
    default_message = 'Invalid request'


class StaleStateError(GameError):
    code = 'stale_state'
    default_message = 'The room changed while your action was processed, please retry'
