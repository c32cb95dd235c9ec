"""hookpost - deliver messages to a Discord-style webhook.

This package composes webhook payloads (text, embeds, file attachments),
validates them against the provider's limits, and delivers them with
rate-limit aware retries and per-message failure reporting for batches.
"""

from hookpost.client import WebhookClient, create_client, resolve_message_id
from hookpost.config import WebhookSettings, load_settings
from hookpost.errors import ErrorKind, HookpostError, ValidationIssue
from hookpost.models import Embed, EmbedAuthor, EmbedField, EmbedFooter, EmbedMedia, Message
from hookpost.transport import MultipartBody, WebhookTransport
from hookpost.utils.logging import configure_logging
from hookpost.validation import ensure_valid, validate_payload

__all__ = [
    # Client
    "WebhookClient",
    "create_client",
    "resolve_message_id",
    # Configuration
    "WebhookSettings",
    "load_settings",
    "configure_logging",
    # Errors
    "ErrorKind",
    "HookpostError",
    "ValidationIssue",
    # Models
    "Embed",
    "EmbedAuthor",
    "EmbedField",
    "EmbedFooter",
    "EmbedMedia",
    "Message",
    # Transport
    "MultipartBody",
    "WebhookTransport",
    # Validation
    "ensure_valid",
    "validate_payload",
]
