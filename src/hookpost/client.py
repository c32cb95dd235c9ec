"""Webhook client: message queue, batch delivery and one-shot senders.

Batch delivery validates every queued message before the first request is
issued, so an invalid message never leaves earlier messages of the same
batch half-delivered. Once sending starts, each message is delivered in queue
order and a failure does not stop the remaining sends; failed messages stay
queued for the next :meth:`WebhookClient.send_all` call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Final, Self

from hookpost.config import WebhookSettings
from hookpost.errors import HookpostError
from hookpost.models import Embed, Message
from hookpost.transport import MultipartBody, WebhookTransport
from hookpost.utils.logging import correlation_scope
from hookpost.validation import ensure_valid

if TYPE_CHECKING:
    import httpx

    from hookpost.transport import HttpMethod

__all__ = [
    "ERROR_COLOR",
    "INFO_COLOR",
    "SUCCESS_COLOR",
    "WARNING_COLOR",
    "WebhookClient",
    "create_client",
    "resolve_message_id",
]

logger = logging.getLogger(__name__)

INFO_COLOR: Final[int] = 0x3498DB
SUCCESS_COLOR: Final[int] = 0x2ECC71
WARNING_COLOR: Final[int] = 0xF1C40F
ERROR_COLOR: Final[int] = 0xE74C3C

_TRAILING_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"/([0-9]+)/?$")


def resolve_message_id(message_id_or_link: str) -> str:
    """Return the message id from an id or a message link.

    A link contributes its trailing numeric path segment; any other input is
    taken to be the id itself.

    Examples:
        >>> resolve_message_id("https://discord.com/channels/1/2/123456789")
        '123456789'
        >>> resolve_message_id("987")
        '987'
    """
    candidate = message_id_or_link.strip()
    match = _TRAILING_ID_PATTERN.search(candidate)
    return match.group(1) if match else candidate


class WebhookClient:
    """Delivers messages to one webhook endpoint.

    Example:
        >>> async with create_client("https://discord.com/api/webhooks/1/abc") as client:
        ...     client.enqueue(Message(content="first"))
        ...     client.enqueue(Message(content="second"))
        ...     await client.send_all()
    """

    def __init__(
        self,
        settings: WebhookSettings,
        *,
        transport: WebhookTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Endpoint settings
            transport: Transport to deliver through; built from ``settings``
                when omitted
            http_client: HTTP client for the built transport (ignored when
                ``transport`` is given)
        """
        self.settings: WebhookSettings = settings
        self._transport: WebhookTransport = transport or WebhookTransport.from_settings(
            settings,
            client=http_client,
        )
        self._queue: list[Message] = []

    @classmethod
    def from_settings(cls, settings: WebhookSettings, *, http_client: httpx.AsyncClient | None = None) -> Self:
        """Build a client for already validated settings.

        Raises:
            HookpostError: With ``kind=ErrorKind.CONFIGURATION`` when the
                webhook URL does not end in ``/<id>/<token>``
        """
        return cls(settings, http_client=http_client)

    @classmethod
    def from_url(cls, webhook_url: str, **overrides: object) -> Self:
        """Build a client for an endpoint URL.

        Raises:
            HookpostError: With ``kind=ErrorKind.CONFIGURATION`` when the URL
                does not end in ``/<id>/<token>``
        """
        return cls(WebhookSettings.from_url(webhook_url, **overrides))

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    # Queue management

    @property
    def pending(self) -> tuple[Message, ...]:
        """Snapshot of the messages waiting to be delivered, in send order."""
        return tuple(self._queue)

    def enqueue(self, message: Message) -> Self:
        """Append a message to the queue. Validation happens at send time."""
        self._queue.append(message)
        return self

    def clear(self) -> None:
        self._queue.clear()

    def peek_payloads(self) -> list[dict[str, object]]:
        """Serialized payloads of the queued messages; the queue is not modified."""
        return [self._serialize(message) for message in self._queue]

    # Delivery

    async def send_all(self) -> list[object]:
        """Deliver every queued message in order.

        Returns:
            Response bodies of the delivered messages, in send order

        Raises:
            HookpostError: ``kind=VALIDATION`` if any queued message is invalid
                (nothing is sent); ``kind=BATCH`` if one or more sends failed,
                in which case exactly the failed messages remain queued
        """
        batch = list(self._queue)
        payloads = [self._serialize(message) for message in batch]
        for index, payload in enumerate(payloads):
            ensure_valid(payload, index=index)

        with correlation_scope() as batch_id:
            logger.info("Sending batch of %d message(s) (batch=%s)", len(batch), batch_id)

            responses: list[object] = []
            failures: list[HookpostError] = []
            remaining: list[Message] = []
            for index, (message, payload) in enumerate(zip(batch, payloads, strict=True)):
                try:
                    responses.append(await self._deliver(message, payload))
                except HookpostError as exc:
                    logger.warning("Message #%d of batch failed: %s", index + 1, exc.message)
                    failures.append(exc)
                    remaining.append(message)

            # Messages enqueued while the batch was in flight keep their place after it
            self._queue[: len(batch)] = remaining

            if failures:
                logger.error("Batch finished with %d of %d message(s) failed", len(failures), len(batch))
                raise HookpostError.batch(failures, attempted=len(batch))

            logger.info("Batch of %d message(s) delivered", len(batch))
            return responses

    async def send(self, message: Message) -> object:
        """Validate and deliver a single message without touching the queue.

        Raises:
            HookpostError: ``kind=VALIDATION`` or ``kind=TRANSPORT``
        """
        payload = self._serialize(message)
        ensure_valid(payload)
        return await self._deliver(message, payload)

    async def send_file(self, file_path: str | Path, message: Message | None = None) -> object:
        """Upload a file, optionally together with a message.

        The message (if any) is validated before the file is read.

        Raises:
            HookpostError: ``kind=VALIDATION`` for an invalid message,
                ``kind=FILE_SYSTEM`` when the file cannot be read,
                ``kind=TRANSPORT`` for delivery failures
        """
        path = Path(file_path)
        fields: dict[str, str] = {}
        if message is not None:
            payload = self._serialize(message)
            ensure_valid(payload)
            fields["payload_json"] = json.dumps(payload, ensure_ascii=False)

        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            msg = f"Could not read attachment {path}: {exc.strerror or exc}"
            raise HookpostError.file_system(msg, path=str(path)) from exc

        method, route = self._route(message)
        logger.debug("Uploading %s (%d bytes)", path.name, len(content))
        return await self._transport.send(
            method,
            MultipartBody(fields=fields, files={"files[0]": (path.name, content)}),
            path=route,
        )

    async def delete(self, message_id_or_link: str) -> None:
        """Delete a message previously sent through this webhook."""
        message_id = resolve_message_id(message_id_or_link)
        _ = await self._transport.send("DELETE", path=f"/messages/{message_id}")
        logger.debug("Deleted message %s", message_id)

    # Convenience senders

    async def info(self, title: str, description: str | None = None) -> object:
        return await self._send_notice(title, description, INFO_COLOR)

    async def success(self, title: str, description: str | None = None) -> object:
        return await self._send_notice(title, description, SUCCESS_COLOR)

    async def warning(self, title: str, description: str | None = None) -> object:
        return await self._send_notice(title, description, WARNING_COLOR)

    async def error(self, title: str, description: str | None = None) -> object:
        return await self._send_notice(title, description, ERROR_COLOR)

    async def _send_notice(self, title: str, description: str | None, color: int) -> object:
        try:
            embed = Embed(title=title, description=description, color=color).stamp()
            return await self.send(Message(embeds=[embed]))
        except HookpostError:
            raise
        except Exception as exc:
            raise HookpostError.unknown(exc) from exc

    # Internals

    def _serialize(self, message: Message) -> dict[str, object]:
        payload = message.to_payload()
        if self.settings.username and "username" not in payload:
            payload["username"] = self.settings.username
        if self.settings.avatar_url and "avatar_url" not in payload:
            payload["avatar_url"] = self.settings.avatar_url
        return payload

    def _route(self, message: Message | None) -> tuple[HttpMethod, str | None]:
        if message is None or not message.edit_target:
            return "POST", None
        return "PATCH", f"/messages/{resolve_message_id(message.edit_target)}"

    async def _deliver(self, message: Message, payload: dict[str, object]) -> object:
        method, route = self._route(message)
        return await self._transport.send(method, payload, path=route)


def create_client(webhook_url: str, **overrides: object) -> WebhookClient:
    """Create a client for a webhook endpoint URL.

    Args:
        webhook_url: Endpoint URL ending in ``/<id>/<token>``
        **overrides: Any other :class:`~hookpost.config.WebhookSettings` field

    Raises:
        HookpostError: With ``kind=ErrorKind.CONFIGURATION`` for a malformed URL
    """
    return WebhookClient.from_url(webhook_url, **overrides)
