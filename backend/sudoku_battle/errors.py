"""Errors raised by the match layer.

Handlers turn any ``MatchError`` into an event for the connection that
triggered it. Actions arriving in the wrong game state are not errors: the
coordinator ignores them and returns None.
"""


class MatchError(Exception):
    """Base class for user-facing match errors."""

    event = 'error'
    default_message = 'Request could not be processed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self):
        return {'msg': self.message}


class SessionNotFound(MatchError):
    default_message = 'Session not found or expired'


class SessionFinished(MatchError):
    default_message = 'This match has already finished'


class HintExhausted(MatchError):
    event = 'hint_denied'
    default_message = 'No hints remaining'


class InvalidMove(MatchError):
    default_message = 'Invalid cell'


class SpectatorAction(MatchError):
    default_message = 'Spectators cannot play'


class PuzzleUnavailable(MatchError):
    default_message = 'Could not generate a puzzle, please try again'
