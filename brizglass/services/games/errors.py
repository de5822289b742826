"""Errors raised by the game services.

Each error carries the HTTP status the API layer answers with and a short
``kind`` so clients can tell "fix your input" apart from "re-fetch status".
None of these leave state behind: callers roll back before raising.
"""


class GameError(Exception):
    status_code = 400
    kind = 'error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    default_message = 'Request rejected'

    @property
    def message(self):
        return str(self)


class ValidationError(GameError):
    """Malformed input; the caller must correct it and retry."""
    kind = 'validation'
    default_message = 'Invalid request'


class StateConflict(GameError):
    """The action does not fit the game's current phase."""
    kind = 'state_conflict'
    default_message = 'Action not allowed in the current phase'


class DuplicateVote(StateConflict):
    default_message = 'Already voted this round'


class SelfVote(StateConflict):
    default_message = 'Cannot vote on your own statements'


class AuthorizationError(GameError):
    status_code = 403
    kind = 'authorization'
    default_message = 'Invalid admin token'


class GameNotFound(GameError):
    status_code = 404
    kind = 'not_found'
    default_message = 'Game not found'


class InvalidTransition(RuntimeError):
    """A transition tried to move a game backwards. Always a bug."""
