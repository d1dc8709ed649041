"""Typed failures raised by the charades engine.

Every failure carries a short machine-readable ``code`` which the HTTP and
Socket.IO layers hand back to clients, plus the HTTP status it maps to.
"""


class CharadesError(Exception):
    code = 'error'
    status = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.code

    def to_dict(self):
        return {'ok': False, 'error': self.code, 'message': self.message}


# (a) configuration

class ConfigurationError(CharadesError):
    code = 'invalid_config'


class InsufficientTasksError(ConfigurationError):
    code = 'not_enough_tasks'

    def __init__(self, needed: int, available: int):
        super().__init__(f'Not enough tasks: need {needed}, have {available}')
        self.needed = needed
        self.available = available


# (b) authorization and phase

class AuthorizationError(CharadesError):
    code = 'not_authorized'
    status = 403


class NotNarratorError(AuthorizationError):
    def __init__(self, actor_id, narrator_id):
        super().__init__(f'Player {actor_id} is not the narrator ({narrator_id})')
        self.actor_id = actor_id
        self.narrator_id = narrator_id


class NotHostError(AuthorizationError):
    pass


class NotMemberError(AuthorizationError):
    pass


class InvalidGuessError(CharadesError):
    code = 'invalid_guess'


class InvalidPhaseError(CharadesError):
    code = 'invalid_phase'
    status = 409

    def __init__(self, action: str, phase: str):
        super().__init__(f'Cannot {action} while phase is {phase}')
        self.action = action
        self.phase = phase


# (c) synchronization

class SyncError(CharadesError):
    code = 'sync_failed'
    status = 503


class StaleStateError(SyncError):
    code = 'stale_state'
    status = 409

    def __init__(self, expected_version, actual_version):
        super().__init__(f'State version moved from {expected_version} to {actual_version}')
        self.expected_version = expected_version
        self.actual_version = actual_version


# (d) integrity

class LobbyGoneError(CharadesError):
    code = 'lobby_not_found'
    status = 404
