"""Secret sanitization utilities for logging and error messages.

Webhook endpoints embed their secret token as the final path segment, so any
URL, log argument, or error text that may contain one is passed through these
helpers before it is logged or attached to an exception.

Examples:
    >>> sanitize_url("https://discord.com/api/webhooks/123/secret_token")
    'https://discord.com/api/webhooks/123/<REDACTED>'

    >>> sanitize_value({"webhook_url": "https://example.com/hook", "count": 42})
    {'webhook_url': '<REDACTED>', 'count': 42}
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Final, TypeIs

# Redaction marker for sanitized values
REDACTED: Final[str] = "<REDACTED>"

# Matches: https://discord.com/api/webhooks/<id>/<token>
#          https://discordapp.com/api/v10/webhooks/<id>/<token>/messages/<message_id>
_WEBHOOK_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(https?://[^\s/]+(?:/[^\s/?#]+)*?/webhooks/\d+/)([^/?#\s]+)",
    re.IGNORECASE,
)

# Tokens passed as query parameters
_TOKEN_IN_QUERY: Final[re.Pattern[str]] = re.compile(
    r"([?&](?:token|api[-_]?key|secret)=)([^&\s]+)",
    re.IGNORECASE,
)

# Field names whose values are always redacted. "author" must stay readable,
# so authentication headers are matched exactly.
_SENSITIVE_FIELD_PATTERNS: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r".*token.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r".*api[-_]?key.*",
        r"^authorization$",
        r"^webhook(_url)?$",
    )
)


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Examples:
        >>> is_sensitive_field("webhook_url")
        True
        >>> is_sensitive_field("author")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def sanitize_url(url: str) -> str:
    """Redact webhook tokens (and token query parameters) from a string.

    The scheme, host and webhook id are preserved so the output remains
    useful for debugging.

    Args:
        url: The URL, or any text that may contain one

    Returns:
        The text with every token replaced by the REDACTED marker
    """
    if not url:
        return url

    sanitized = _WEBHOOK_TOKEN_PATTERN.sub(rf"\1{REDACTED}", url)
    return _TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", sanitized)


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by REDACTED marker
    """
    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_url(value)
        return value

    if _is_mapping(value):
        return {key: sanitize_value(val, field_name=str(key)) for key, val in value.items()}

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    return sanitize_url(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Render an exception as ``Type: message`` with secrets removed."""
    return f"{type(exc).__name__}: {sanitize_url(str(exc))}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments."""
    return tuple(sanitize_value(arg) for arg in args)
