"""Custom exceptions for the workflow block engine."""


class BlockEngineError(Exception):
    """Base exception for the block engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code the calling layer should map this to
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(BlockEngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ForbiddenError(BlockEngineError):
    """Resource belongs to another tenant."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize ForbiddenError with 403 status code."""
        super().__init__(message, 403)


class ValidationError(BlockEngineError):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed", errors: list[str] | None = None):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)
        self.errors = errors or [message]


class InvalidPhaseTransitionError(BlockEngineError):
    """A lifecycle phase was fired out of order."""

    def __init__(self, message: str = "Invalid phase transition"):
        super().__init__(message, 409)
