"""Custom exceptions for the RevealMatch service."""

from typing import Any, Dict, Optional


class RevealMatchError(Exception):
    """Base exception for all RevealMatch errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the error with a message and optional details.

        Args:
            message (str): Error message describing what went wrong.
            status_code (int): HTTP status code associated with the error (default 500).
            details (Optional[Dict[str, Any]]): Additional context or debug information.
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for an API response body."""
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "details": self.details,
        }


class ConfigurationError(RevealMatchError):
    """Raised when there's an issue with the application configuration."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 500, details)


class DatabaseError(RevealMatchError):
    """Raised when a store operation fails."""

    code = "DATABASE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: int = 500) -> None:
        super().__init__(message, status_code, details)


class StoreTimeoutError(DatabaseError):
    """Raised when a store operation exceeds its time budget."""

    code = "STORE_TIMEOUT"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details, status_code=504)


class ValidationError(RevealMatchError):
    """Raised when data validation fails."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 400, details)


class AuthenticationError(RevealMatchError):
    """Raised when the caller's identity is missing or invalid."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 401, details)


class ForbiddenError(RevealMatchError):
    """Raised when the caller may not perform an operation."""

    code = "FORBIDDEN"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 403, details)


class NotFoundError(RevealMatchError):
    """Raised when a requested resource is not found."""

    code = "NOT_FOUND"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 404, details)


class MatchingError(RevealMatchError):
    """Raised when a match attempt fails; the caller may issue a new request."""

    code = "MATCHING_FAILED"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: int = 500) -> None:
        error_details = details or {}
        error_details.setdefault("retryable", True)
        super().__init__(message, status_code, error_details)


class ReservationConflictError(MatchingError):
    """Raised when the selected counterpart was reserved by a concurrent request."""

    code = "RESERVATION_CONFLICT"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details, status_code=409)


class TransactionStateError(RevealMatchError):
    """Raised when a credit transaction is not in the state an operation requires."""

    code = "TRANSACTION_STATE"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 409, details)


class PendingTransactionExistsError(TransactionStateError):
    """Raised when a user already has an open pending transaction."""

    code = "PENDING_TRANSACTION_EXISTS"


class InsufficientCreditsError(RevealMatchError):
    """Raised when a debit would take a balance below zero."""

    code = "INSUFFICIENT_CREDITS"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 402, details)


class ConversationClosedError(RevealMatchError):
    """Raised when writing to a conversation that has ended."""

    code = "CONVERSATION_CLOSED"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 409, details)


class ConversationExistsError(RevealMatchError):
    """Raised when a match already has an active conversation."""

    code = "CONVERSATION_EXISTS"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 409, details)
