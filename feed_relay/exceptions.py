"""Error definitions for the feed relay engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of errors that can occur in the engine."""

    VALIDATION_ERROR = "validation_error"
    FETCH_ERROR = "fetch_error"
    PARSE_ERROR = "parse_error"
    STORAGE_ERROR = "storage_error"
    DELIVERY_ERROR = "delivery_error"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FeedRelayError(Exception):
    """Base error class for all feed relay errors."""

    category = ErrorCategory.VALIDATION_ERROR
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize base error.

        Args:
            message: Error message
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Return a log-friendly representation of the error."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class InvalidURLError(FeedRelayError):
    """Raised when a feed URL is not an http(s) URL."""


class InvalidIntervalError(FeedRelayError):
    """Raised when a polling interval is outside the allowed bounds."""


class AlreadyExistsError(FeedRelayError):
    """Raised when a feed is already registered for a destination."""


class NotFoundError(FeedRelayError):
    """Raised when a feed is not registered for a destination."""


class LimitExceededError(FeedRelayError):
    """Raised when a destination already holds the maximum number of feeds."""


class InvalidFeedError(FeedRelayError):
    """Raised when the validation poll of a new feed fails."""


class FetchError(FeedRelayError):
    """Raised when a feed document cannot be retrieved."""

    category = ErrorCategory.FETCH_ERROR
    severity = ErrorSeverity.MEDIUM


class ParseError(FeedRelayError):
    """Raised when a feed document cannot be parsed."""

    category = ErrorCategory.PARSE_ERROR
    severity = ErrorSeverity.MEDIUM


class PersistenceError(FeedRelayError):
    """Raised when the registry snapshot cannot be read or written."""

    category = ErrorCategory.STORAGE_ERROR
    severity = ErrorSeverity.HIGH


class DeliveryError(FeedRelayError):
    """Raised when an item cannot be delivered to its destination."""

    category = ErrorCategory.DELIVERY_ERROR
    severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class SnapshotLockedError(FeedRelayError):
    """Raised when another process holds the registry snapshot."""

    category = ErrorCategory.STORAGE_ERROR
    severity = ErrorSeverity.MEDIUM
