class GameError(Exception):
    """Base exception for rejected player actions."""
    status_code: int = 400

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidMoveError(GameError):
    """A submission, vote or abstention that the current round does not accept."""
    status_code = 400


class NotAPlayerError(GameError):
    status_code = 403

    def __init__(self, message: str = 'You are not a player in this lobby'):
        super().__init__(message, self.status_code)
