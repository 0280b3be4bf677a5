"""
Custom exceptions for the results engine with user-friendly error messages.
"""

from dataclasses import dataclass


class ScoreboardException(Exception):
    """Base exception for results-engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class ValidationError(ScoreboardException):
    """Raised when telemetry or a roster/schedule reference fails validation."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message, user_message)

class ConflictError(ScoreboardException):
    """Raised when an upload collides with an already recorded match."""
    def __init__(self, game_id: str, reason: str = None):
        super().__init__(
            reason or f"Match with game id '{game_id}' already exists",
            f"Match '{game_id}' was already uploaded."
        )
        self.game_id = game_id

class DatabaseError(ScoreboardException):
    """Raised when database operations fail."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "Database error occurred. Please try again later."
        )


@dataclass(frozen=True)
class DiagnosticWarning:
    """Non-fatal ingestion finding, reported alongside a successful upload."""
    uid: str
    reason: str
