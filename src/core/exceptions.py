"""Custom exception classes for the Classroom Invite service.

This module defines application-specific exceptions following Google Python
Style Guide.
"""


class ClassroomError(Exception):
    """Base exception for all Classroom Invite service errors."""

    pass


class ValidationError(ClassroomError):
    """Raised when a request is missing a field or carries a bad value."""

    pass


class NotAuthorizedError(ClassroomError):
    """Raised when the caller's role or ownership does not permit an operation.

    The message is always the same so denials do not reveal which check failed.
    """

    def __init__(self, operation: str):
        """Initialize the exception.

        Args:
            operation: The operation category that was denied.
        """
        self.operation = operation
        super().__init__("Forbidden")


class ClassNotFoundError(ClassroomError):
    """Raised when a requested class cannot be found."""

    def __init__(self, class_id: str):
        """Initialize the exception.

        Args:
            class_id: The ID of the class that was not found.
        """
        self.class_id = class_id
        super().__init__(f"Class '{class_id}' not found")


class InvalidInviteError(ClassroomError):
    """Raised for any invite code that cannot be redeemed.

    Unknown, revoked, expired and usage-limited codes all raise this error
    with the same message.
    """

    MESSAGE = "Invalid, expired, or usage-limited invite code"

    def __init__(self):
        super().__init__(self.MESSAGE)


class RateLimitedError(ClassroomError):
    """Raised when a caller exceeds a rate limit policy."""

    def __init__(self, key: str):
        self.key = key
        super().__init__("Rate limit exceeded. Please try again later.")


class StoreFailureError(ClassroomError):
    """Raised when a durable read or write fails."""

    pass


class InviteGenerationError(StoreFailureError):
    """Raised when a fresh invite could not be stored after bounded retries."""

    def __init__(self, class_id: str, attempts: int):
        self.class_id = class_id
        self.attempts = attempts
        super().__init__(
            f"Could not generate invite for class '{class_id}' after {attempts} attempts"
        )
