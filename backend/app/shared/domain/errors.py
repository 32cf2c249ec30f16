class DomainError(Exception):
    """Base domain error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(DomainError):
    """Raised when input is malformed (empty items, negative cost, missing reason)."""


class AuthorizationError(DomainError):
    """Raised when the acting user's role may not perform the action."""


class NotFound(DomainError):
    """Raised when a required entity is missing."""


class InvalidTransitionError(DomainError):
    """Raised when no workflow rule matches the request's current status."""


class ConflictError(DomainError):
    """Raised when the aggregate changed since it was read; re-read and retry."""


class ExternalServiceError(DomainError):
    """Raised when an external collaborator times out or answers garbage."""
