"""Utils package for the RevealMatch service."""

from revealmatch.utils.cache import delete_cache, get_cache, get_cache_model, set_cache
from revealmatch.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    ConversationClosedError,
    ConversationExistsError,
    DatabaseError,
    ForbiddenError,
    InsufficientCreditsError,
    MatchingError,
    NotFoundError,
    PendingTransactionExistsError,
    ReservationConflictError,
    RevealMatchError,
    StoreTimeoutError,
    TransactionStateError,
    ValidationError,
)
from revealmatch.utils.geo import format_distance, haversine_distance, is_valid_coordinates, is_within_radius
from revealmatch.utils.logging import configure_logging, get_logger, log_error
from revealmatch.utils.security import escape_html, sanitize_message

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ConversationClosedError",
    "ConversationExistsError",
    "DatabaseError",
    "ForbiddenError",
    "InsufficientCreditsError",
    "MatchingError",
    "NotFoundError",
    "PendingTransactionExistsError",
    "ReservationConflictError",
    "RevealMatchError",
    "StoreTimeoutError",
    "TransactionStateError",
    "ValidationError",
    "configure_logging",
    "delete_cache",
    "escape_html",
    "format_distance",
    "get_cache",
    "get_cache_model",
    "get_logger",
    "haversine_distance",
    "is_valid_coordinates",
    "is_within_radius",
    "log_error",
    "sanitize_message",
    "set_cache",
]
