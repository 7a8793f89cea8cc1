class DomainError(Exception):
    """Base domain error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDenied(DomainError):
    """Raised when the user has insufficient permissions."""


class NotFound(DomainError):
    """Raised when a required entity is missing."""


class InvalidRequest(DomainError):
    """Raised when the request is not in a valid state."""


class Conflict(DomainError):
    """Raised when a unique value is already taken."""


class InvalidTransition(InvalidRequest):
    """Raised when a workflow action is not allowed from the current status."""

    def __init__(self, message: str, status: str, action: str) -> None:
        super().__init__(message)
        self.status = status
        self.action = action
