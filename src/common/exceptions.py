"""
ArrSync Exception Hierarchy

Provides structured exception types for the sync service.
All ArrSync-specific exceptions inherit from ArrSyncError.

Usage:
    from src.common.exceptions import ExternalServiceError, UnexpectedStatusError

    try:
        media_id = await client.lookup_media_id(603, "movie")
    except ExternalServiceError as e:
        logger.error(f"Upstream call failed: {e}")
"""

from __future__ import annotations


class ArrSyncError(Exception):
    """
    Base exception for all ArrSync errors.

    Attributes:
        message: Human-readable error description
        code: Optional machine-readable error code for programmatic handling
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ArrSyncError):
    """Base class for configuration-related errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid or malformed."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        super().__init__(
            f"Invalid configuration for '{field}': {value}. {reason}",
            code="CONFIG_INVALID",
        )
        self.field = field
        self.value = value
        self.reason = reason


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    def __init__(self, field: str, hint: str | None = None) -> None:
        message = f"Missing required configuration: '{field}'"
        if hint:
            message += f". {hint}"
        super().__init__(message, code="CONFIG_MISSING")
        self.field = field


# =============================================================================
# External Service Errors
# =============================================================================


class ExternalServiceError(ArrSyncError):
    """Base class for upstream service errors."""

    pass


class CircuitOpenError(ExternalServiceError):
    """Circuit breaker is open, rejecting requests."""

    def __init__(self, service: str, retry_after: float | None = None) -> None:
        message = f"Circuit breaker open for {service}"
        if retry_after:
            message += f", retry after {retry_after:.1f}s"
        super().__init__(message, code="CIRCUIT_OPEN")
        self.service = service
        self.retry_after = retry_after


class UpstreamTimeoutError(ExternalServiceError):
    """A single attempt exceeded its time limit."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            f"'{operation}' timed out after {timeout_seconds}s",
            code="UPSTREAM_TIMEOUT",
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class UnexpectedStatusError(ExternalServiceError):
    """Upstream answered with a status the operation cannot use."""

    def __init__(self, status_code: int, body: str = "") -> None:
        message = f"Unexpected status {status_code}"
        if body:
            message += f": {body[:200]}"
        super().__init__(message, code="UPSTREAM_STATUS")
        self.status_code = status_code
        self.body = body


class MalformedResponseError(ExternalServiceError):
    """Upstream answered 2xx but the body carried no usable data."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Malformed upstream response: {reason}", code="UPSTREAM_MALFORMED")
        self.reason = reason
