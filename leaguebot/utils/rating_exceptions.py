"""
Custom exceptions for rating operations with user-friendly error messages.
"""

class RatingException(Exception):
    """Base exception for rating-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class InvalidOutcomeComposition(RatingException):
    """Raised when a submitted result cannot be rated (no winner, no loser, duplicates)."""
    def __init__(self, reason: str):
        super().__init__(
            f"Invalid result composition: {reason}",
            f"❌ {reason}"
        )
        self.reason = reason

class PersistenceFailure(RatingException):
    """Raised when a rating mutation could not be written to the store."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Store write failed during {operation}: {details}",
            "❌ Database error occurred. Nothing was changed, please try again."
        )
        self.operation = operation

class UnknownTargetError(RatingException):
    """Raised when a manual edit names a participant or contest that does not exist."""
    def __init__(self, target_type: str, target_id: str):
        super().__init__(
            f"{target_type} '{target_id}' not found",
            f"❌ No {target_type} named '{target_id}' was found!"
        )

class InvalidEditError(RatingException):
    """Raised when manual edit fields are missing, unknown or out of range."""
    def __init__(self, reason: str):
        super().__init__(
            f"Invalid edit: {reason}",
            f"❌ {reason}"
        )

class ParticipantRestricted(RatingException):
    """Raised when a submitted result includes a restricted player."""
    def __init__(self, participant_id: str):
        super().__init__(
            f"Participant {participant_id} is restricted",
            f"🚫 {participant_id} is restricted from ranked games and cannot be included."
        )
        self.participant_id = participant_id
