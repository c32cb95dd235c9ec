"""Shared utilities for logging and secret sanitization."""

from hookpost.utils.logging import (
    CorrelationIDFilter,
    SecretRedactingFilter,
    configure_logging,
    correlation_scope,
    get_correlation_id,
)
from hookpost.utils.sanitization import (
    REDACTED,
    is_sensitive_field,
    sanitize_exception,
    sanitize_url,
    sanitize_value,
)

__all__ = [
    # Logging
    "CorrelationIDFilter",
    "SecretRedactingFilter",
    "configure_logging",
    "correlation_scope",
    "get_correlation_id",
    # Sanitization
    "REDACTED",
    "is_sensitive_field",
    "sanitize_exception",
    "sanitize_url",
    "sanitize_value",
]
