"""Domain-specific exceptions.

These exceptions represent storage failures and reconciliation rule
violations. They are raised by the local store and the sync engine and
handled by the caller (CLI runner or embedding application).
"""


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize domain exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StorageError(DomainException):
    """Raised when the local store cannot read or write data."""

    pass


class StoreExistsError(StorageError):
    """Raised when initializing a store whose database file already exists."""

    pass


class ReconciliationInvariantViolationError(DomainException):
    """Raised when local and remote versions cannot be reconciled at all.

    For example when the two sides disagree on id or entity kind.
    """

    pass


class InvalidUrlError(DomainException):
    """Raised when a URL cannot be queued for saving."""

    pass
