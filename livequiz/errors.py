"""Error taxonomy for the game session engine.

Every error carries the HTTP status the API answers with, so routes can
let them propagate and rely on the handlers registered here.
"""

from flask import jsonify


class GameError(Exception):
    status_code = 400

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(GameError):
    """Malformed input or document; nothing was written."""
    status_code = 400


class AlreadyAnsweredError(ValidationError):
    status_code = 409


class NotFoundError(GameError):
    status_code = 404


class InvalidTransitionError(GameError):
    """A phase-guarded operation was called from the wrong phase."""
    status_code = 409


class ForbiddenError(GameError):
    status_code = 403


class TransientStoreError(GameError):
    """The document store could not be reached; the caller may retry."""
    status_code = 503


def register_error_handlers(app) -> None:
    @app.errorhandler(GameError)
    def handle_game_error(exc: GameError):
        if isinstance(exc, TransientStoreError):
            app.logger.warning(f"[store-unavailable] {exc.message}")
        return jsonify({'error': exc.message}), exc.status_code
