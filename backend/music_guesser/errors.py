"""Error taxonomy for game and session operations.

Every rejection carries a stable ``code`` that clients can switch on and a
human-readable message. Handlers turn these into failure acks; none of them
are broadcast.
"""


class GameError(Exception):
    code = 'GameError'
    default_message = 'Request could not be completed'

    def __init__(self, message=None, code=None):
        if code:
            self.code = code
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_ack(self):
        return {'success': False, 'message': self.message, 'code': self.code}


class ValidationError(GameError):
    code = 'ValidationError'
    default_message = 'Invalid request'


class AuthorizationError(GameError):
    code = 'AuthorizationError'
    default_message = 'Not allowed'


class StateConflictError(GameError):
    code = 'StateConflict'
    default_message = 'Action not allowed right now'


class NotFoundError(GameError):
    code = 'NotFound'
    default_message = 'Not found'


class ExternalDependencyError(GameError):
    code = 'ExternalDependencyError'
    default_message = 'An external service failed'


# Concrete rejections used across the codebase

def missing_fields(*names):
    return ValidationError(f"{' and '.join(names)} required", code='MissingFields')


def nickname_too_long(limit):
    return ValidationError(f'Nickname too long (max {limit} chars)', code='NicknameTooLong')


def duplicate_nickname():
    return ValidationError('Nickname already taken in this room', code='DuplicateNickname')


def already_joined():
    return ValidationError('You have already joined this room', code='AlreadyJoined')


def invalid_duration(low, high):
    return ValidationError(
        f'Invalid turn duration. Must be a number between {low} and {high} seconds.',
        code='InvalidDuration',
    )


def not_host(action):
    return AuthorizationError(f'Only the host can {action}.', code='NotHost')


def invalid_session():
    return AuthorizationError('Session is invalid or expired', code='InvalidSession')


def room_not_found():
    return NotFoundError('Room not found', code='RoomNotFound')


def player_not_found():
    return NotFoundError('Player not found in room.', code='PlayerNotFound')


def metadata_lookup_failed(detail=None):
    message = 'Failed to look up track'
    if detail:
        message = f'{message}: {detail}'
    return ExternalDependencyError(message, code='MetadataLookupFailed')


def auth_provider_error(detail=None):
    message = 'Authentication provider error'
    if detail:
        message = f'{message}: {detail}'
    return ExternalDependencyError(message, code='AuthProviderError')
