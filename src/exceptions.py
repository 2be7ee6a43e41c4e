"""
Custom exception hierarchy for the portfolio reconciler.

Every error raised by the engine or its collaborators derives from
PortfolioTrackerError so callers can catch all of them with one clause
while still handling specific failures (validation vs. missing holding
vs. storage) individually.

Exception Hierarchy:
    PortfolioTrackerError (base)
    ├── ValidationError
    │   └── InvalidTransactionError
    ├── NotFoundError
    │   └── HoldingNotFoundError
    ├── StorageError
    ├── QuoteError
    │   ├── QuoteFetchError
    │   └── QuoteSourceUnavailableError
    └── ConfigurationError
"""

from typing import Any, Optional, Dict


class PortfolioTrackerError(Exception):
    """
    Base exception for all portfolio reconciler errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (field, symbol, holding id, etc.)
        cause: Original exception if this wraps another error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with details."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} [{detail_str}]"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {self.cause})"
        return msg


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(PortfolioTrackerError):
    """
    Raised when transaction or edit input is malformed or out of range.

    Raised before any state is derived, so the portfolio the caller holds
    is never partially updated. The offending field is available as
    ``error.field`` so a UI can highlight it.

    Examples:
        - Non-positive quantity
        - Negative price or fees
        - Missing symbol or unparseable date
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        if expected:
            details["expected"] = expected
        self.field = field
        super().__init__(message, details=details, **kwargs)


class InvalidTransactionError(ValidationError):
    """
    Raised by the holding aggregator when handed a transaction it cannot apply.

    Same category as ValidationError; the aggregator checks its own inputs
    so it stays safe to call directly, outside the orchestrator.
    """
    pass


# =============================================================================
# Lookup Exceptions
# =============================================================================

class NotFoundError(PortfolioTrackerError):
    """Base exception for unresolvable symbols or holdings."""
    pass


class HoldingNotFoundError(NotFoundError):
    """
    Raised when a holding cannot be located.

    Examples:
        - Editing or deleting an unknown holding id
        - Selling a symbol that is not held under the REJECT sell policy
    """

    def __init__(
        self,
        message: str,
        holding_id: Optional[str] = None,
        symbol: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if holding_id:
            details["holding_id"] = holding_id
        if symbol:
            details["symbol"] = symbol
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Persistence Exceptions
# =============================================================================

class StorageError(PortfolioTrackerError):
    """Raised when the persistence collaborator cannot save or load."""
    pass


# =============================================================================
# Quote Exceptions
# =============================================================================

class QuoteError(PortfolioTrackerError):
    """Base exception for the quote collaborator."""
    pass


class QuoteFetchError(QuoteError):
    """
    Raised when a quote cannot be fetched for a symbol.

    Examples:
        - Network timeout
        - Provider returned no price
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        source: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if symbol:
            details["symbol"] = symbol
        if source:
            details["source"] = source
        super().__init__(message, details=details, **kwargs)


class QuoteSourceUnavailableError(QuoteError):
    """Raised when a quote source is down or misconfigured."""

    def __init__(
        self,
        message: str,
        source: str,
        reason: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["source"] = source
        if reason:
            details["reason"] = reason
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Configuration Exceptions
# =============================================================================

class ConfigurationError(PortfolioTrackerError):
    """
    Raised when configuration is invalid.

    Examples:
        - Unknown untracked-sell policy
        - Non-integer timeout
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Utility Functions
# =============================================================================

def is_retryable(error: Exception) -> bool:
    """
    Determine if an error is likely transient and worth retrying.

    Args:
        error: The exception to check

    Returns:
        True if the error is likely transient, False otherwise
    """
    retryable_types = (
        QuoteFetchError,
        QuoteSourceUnavailableError,
        TimeoutError,
        ConnectionError,
    )
    return isinstance(error, retryable_types)


def get_retry_delay(error: Exception, attempt: int = 1, base_delay: float = 1.0) -> float:
    """
    Get suggested retry delay in seconds based on error type.

    Args:
        error: The exception to get delay for
        attempt: Current retry attempt number (1-based)
        base_delay: Delay for the first retry of a transient fetch error

    Returns:
        Suggested delay in seconds
    """
    if isinstance(error, QuoteSourceUnavailableError):
        base_delay = base_delay * 5

    # Exponential backoff with cap at 1 minute
    return min(base_delay * (2 ** (attempt - 1)), 60.0)
