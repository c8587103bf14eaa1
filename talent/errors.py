"""Exception hierarchy raised by the Talking Talent services."""
import logging
from typing import List, Optional

logger = logging.getLogger('talent.errors')

DEFAULT_ERROR_MESSAGE = 'An unexpected error occurred. Please try again.'
STORAGE_ERROR_MESSAGE = ('Storage is full or unavailable. '
                         'Please clear some space and try again.')


class TalentError(Exception):
    """Base class for every error raised by the service layer.

    Attributes:
        code:         Machine-readable error code (``'GENERIC_ERROR'`` etc.).
        user_message: Optional text safe to show to the end user; falls back
                      to the exception message.
    """

    code = 'GENERIC_ERROR'

    def __init__(self, message: str, code: Optional[str] = None,
                 user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.user_message = user_message


class ValidationError(TalentError):
    """Raised when a create/update payload fails validation."""

    code = 'VALIDATION_ERROR'

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class NotFoundError(TalentError):
    """Raised when a referenced record does not exist."""

    code = 'NOT_FOUND'


class ConflictError(TalentError):
    """Raised for duplicates and circular reporting lines."""

    code = 'CONFLICT'


class StateError(TalentError):
    """Raised for illegal round lifecycle transitions."""

    code = 'INVALID_STATE'


class StorageError(TalentError):
    """Raised when a storage write fails."""

    code = 'STORAGE_ERROR'

    def __init__(self, message: str = 'Storage quota exceeded or storage unavailable') -> None:
        super().__init__(message, user_message=STORAGE_ERROR_MESSAGE)


def handle_error(error: BaseException, fallback: Optional[str] = None) -> str:
    """Log *error* and return a message suitable for the end user."""
    logger.error("Application error: %s", error)

    if isinstance(error, TalentError):
        return error.user_message or error.message

    message = str(error)
    if 'Validation failed' in message:
        return message
    return fallback or DEFAULT_ERROR_MESSAGE
