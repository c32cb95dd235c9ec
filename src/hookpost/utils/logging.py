"""Logging infrastructure with correlation ID tracking and secret redaction.

Every batch delivery runs under its own correlation ID so that the log lines
of the individual sends (including their rate-limit waits) can be grouped
back together. Webhook tokens are stripped from messages, arguments and
``extra`` fields before any handler formats them.
"""

import contextvars
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Final, override

from hookpost.utils.sanitization import sanitize_args, sanitize_value

# Correlation ID context variable, inherited by asyncio tasks
correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)

DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"

# Attributes every LogRecord carries; anything else arrived through extra={}
_STANDARD_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
    }
)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds the current correlation ID to log records."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = correlation_id_var.get()
        record.correlation_id = correlation_id if correlation_id is not None else "N/A"
        return True


class SecretRedactingFilter(logging.Filter):
    """Logging filter that redacts webhook tokens from log records.

    Sanitizes the message text, the %-formatting arguments, and any
    structured context passed through ``extra``.

    Examples:
        >>> logger.info("POST to %s", "https://discord.com/api/webhooks/123/token")
        # Logged as: "POST to https://discord.com/api/webhooks/123/<REDACTED>"
    """

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            sanitized_msg = sanitize_value(record.msg)
            if isinstance(sanitized_msg, str):
                record.msg = sanitized_msg

        if record.args and isinstance(record.args, tuple):
            record.args = sanitize_args(record.args)

        for attr_name in list(record.__dict__.keys()):
            if attr_name in _STANDARD_RECORD_ATTRS or attr_name.startswith("_"):
                continue
            attr_value: object = getattr(record, attr_name)  # pyright: ignore[reportAny]
            setattr(record, attr_name, sanitize_value(attr_value, field_name=attr_name))

        return True


def configure_logging(
    *,
    log_level: str = "INFO",
    enable_console: bool = True,
    log_format: str = DEFAULT_LOG_FORMAT,
) -> None:
    """Configure package logging with correlation IDs and secret redaction.

    Handlers are attached to the ``hookpost`` logger rather than the root
    logger so that applications embedding the client keep control of their
    own logging setup.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_console: Enable the stderr console handler
        log_format: Format string; may reference ``%(correlation_id)s``

    Example:
        >>> configure_logging(log_level="DEBUG")
        >>> logging.getLogger("hookpost.client").info("Batch started")
    """
    package_logger = logging.getLogger("hookpost")
    package_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates on reconfiguration
    package_logger.handlers.clear()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(log_format))
        console_handler.addFilter(CorrelationIDFilter())
        console_handler.addFilter(SecretRedactingFilter())
        package_logger.addHandler(console_handler)
    else:
        package_logger.addHandler(logging.NullHandler())


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID, restoring the previous one after.

    Args:
        correlation_id: Identifier to use; a short random one when omitted

    Yields:
        The active correlation ID
    """
    active = correlation_id or uuid.uuid4().hex[:12]
    token = correlation_id_var.set(active)
    try:
        yield active
    finally:
        correlation_id_var.reset(token)
