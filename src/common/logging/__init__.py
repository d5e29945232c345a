"""
Common Logging Utilities

Provides log sanitization for API keys, webhook secrets and URL credentials.
"""

from src.common.logging.sanitizer import (
    REDACTION_PLACEHOLDER,
    SanitizingFilter,
    configure_sanitized_logging,
    get_sanitized_logger,
)

__all__ = [
    "REDACTION_PLACEHOLDER",
    "SanitizingFilter",
    "configure_sanitized_logging",
    "get_sanitized_logger",
]
