"""HTTP transport for a single webhook endpoint.

The transport issues one logical request per :meth:`WebhookTransport.send`
call. When the provider answers HTTP 429 the identical request is re-issued
after the wait the provider asked for, up to a bounded number of times; every
other failure is translated into a :class:`~hookpost.errors.HookpostError`
with ``kind=ErrorKind.TRANSPORT``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal, Self

import httpx

from hookpost.errors import HookpostError
from hookpost.utils.sanitization import sanitize_url

if TYPE_CHECKING:
    from hookpost.config import WebhookSettings

__all__ = [
    "HttpMethod",
    "MultipartBody",
    "WebhookTransport",
]

logger = logging.getLogger(__name__)

type HttpMethod = Literal["GET", "POST", "PATCH", "DELETE"]

RATE_LIMIT_STATUS: Final[int] = 429
# Checked in order; the first parseable value wins
RETRY_AFTER_HEADERS: Final[tuple[str, ...]] = ("retry-after", "x-ratelimit-reset-after")
USER_AGENT: Final[str] = "hookpost/0.1.0"


@dataclass(slots=True)
class MultipartBody:
    """Form-data request body.

    ``files`` maps part names to ``(filename, content)`` pairs; ``fields``
    holds plain text parts such as ``payload_json``.
    """

    fields: Mapping[str, str] = field(default_factory=dict)
    files: Mapping[str, tuple[str, bytes]] = field(default_factory=dict)


type RequestBody = Mapping[str, object] | MultipartBody


class WebhookTransport:
    """Rate-limit aware HTTP transport bound to one webhook base address.

    Example:
        >>> async with WebhookTransport("https://discord.com/api/webhooks/1/abc") as transport:
        ...     await transport.send("POST", {"content": "hello"})
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        max_rate_limit_retries: int = 60,
        default_retry_after: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Address every request path is appended to
            timeout: Timeout for a single HTTP request in seconds
            max_rate_limit_retries: Retry ceiling for one rate-limited request
            default_retry_after: Wait used when no usable retry-after header is sent
            client: Pre-configured client to use instead of creating one; the
                caller keeps ownership of it
        """
        if max_rate_limit_retries < 0:
            msg = "max_rate_limit_retries must not be negative"
            raise ValueError(msg)
        if default_retry_after < 0:
            msg = "default_retry_after must not be negative"
            raise ValueError(msg)

        self.base_url: str = base_url.rstrip("/")
        self.max_rate_limit_retries: int = max_rate_limit_retries
        self.default_retry_after: float = default_retry_after
        self._owns_client: bool = client is None
        self._client: httpx.AsyncClient = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )

    @classmethod
    def from_settings(
        cls,
        settings: WebhookSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> Self:
        return cls(
            settings.base_url,
            timeout=settings.request_timeout,
            max_rate_limit_retries=settings.max_rate_limit_retries,
            default_retry_after=settings.default_retry_after,
            client=client,
        )

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
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def send(
        self,
        method: HttpMethod = "GET",
        body: RequestBody | None = None,
        headers: Mapping[str, str] | None = None,
        path: str | None = None,
    ) -> object:
        """Send one logical request, transparently retrying on HTTP 429.

        Args:
            method: HTTP method
            body: JSON mapping or multipart body
            headers: Extra request headers
            path: Suffix appended to the base address, e.g. ``/messages/123``

        Returns:
            Parsed JSON response body, the raw text for non-JSON bodies, or
            ``None`` for an empty body

        Raises:
            HookpostError: ``kind=TRANSPORT`` for non-2xx responses (including
                a 429 once the retry ceiling is reached) and network failures,
                ``kind=UNKNOWN`` for any other failure
        """
        url = f"{self.base_url}{path or ''}"
        request_options = self._request_options(body, headers)

        retries = 0
        while True:
            response = await self._issue(method, url, request_options)
            if response.status_code == RATE_LIMIT_STATUS and retries < self.max_rate_limit_retries:
                retries += 1
                delay = self._retry_after(response.headers)
                logger.warning(
                    "Rate limited on %s %s, retrying after %.2fs (retry %d/%d)",
                    method,
                    url,
                    delay,
                    retries,
                    self.max_rate_limit_retries,
                )
                await asyncio.sleep(delay)
                continue

            return self._handle_response(method, url, response)

    async def _issue(
        self,
        method: HttpMethod,
        url: str,
        request_options: Mapping[str, object],
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, **request_options)  # pyright: ignore[reportArgumentType]
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out: %s", method, url, exc)
            msg = f"Request Error: [TIMEOUT] - {sanitize_url(str(exc)) or 'request timed out'}"
            raise HookpostError.transport(msg, code="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            msg = f"Request Error: [NETWORK_ERROR] - {sanitize_url(str(exc)) or type(exc).__name__}"
            raise HookpostError.transport(msg, code="NETWORK_ERROR") from exc
        except Exception as exc:
            logger.error("Unexpected error during %s %s: %s", method, url, exc)
            raise HookpostError.unknown(exc) from exc

    def _request_options(
        self,
        body: RequestBody | None,
        headers: Mapping[str, str] | None,
    ) -> dict[str, object]:
        options: dict[str, object] = {}
        if headers:
            options["headers"] = dict(headers)
        if isinstance(body, MultipartBody):
            options["data"] = dict(body.fields)
            options["files"] = {name: (filename, content) for name, (filename, content) in body.files.items()}
        elif body is not None:
            options["json"] = dict(body)
        return options

    def _handle_response(self, method: HttpMethod, url: str, response: httpx.Response) -> object:
        parsed = self._parse_body(response)
        if response.is_success:
            logger.debug("%s %s delivered (status=%d)", method, url, response.status_code)
            return parsed

        error = self._build_error(response, parsed)
        logger.warning("%s %s rejected: %s", method, url, error.message)
        raise error

    def _parse_body(self, response: httpx.Response) -> object:
        if not response.content:
            return None
        try:
            return response.json()  # pyright: ignore[reportAny]
        except ValueError:
            return response.text

    def _build_error(self, response: httpx.Response, parsed: object) -> HookpostError:
        """Create a transport error from a non-successful response."""
        body: Mapping[str, object] = parsed if isinstance(parsed, Mapping) else {}  # pyright: ignore[reportUnknownVariableType]
        provider_message = body.get("message")
        if not isinstance(provider_message, str):
            provider_message = None

        provider_code = body.get("code")
        code = str(provider_code) if isinstance(provider_code, (int, str)) and provider_code != "" else None

        detail = provider_message or response.reason_phrase or "request failed"
        details = self._format_error_details(body.get("errors"))
        if details:
            detail = f"{detail}: {details}"

        return HookpostError.transport(
            sanitize_url(f"Request Error: [{response.status_code}] - {detail}"),
            status=response.status_code,
            provider_message=provider_message,
            code=code or f"HTTP_{response.status_code}",
        )

    def _format_error_details(self, details: object) -> str | None:
        """Serialize nested provider error structures into a readable string."""
        if details is None:
            return None
        try:
            return json.dumps(details, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return str(details)

    def _retry_after(self, headers: httpx.Headers) -> float:
        """Wait requested by a 429 response, or the default when unusable."""
        for name in RETRY_AFTER_HEADERS:
            raw_value = headers.get(name)
            if raw_value is None:
                continue
            try:
                delay = float(raw_value)
            except ValueError:
                logger.debug("Ignoring malformed %s header: %r", name, raw_value)
                continue
            if math.isfinite(delay) and delay >= 0:
                return delay
            logger.debug("Ignoring out-of-range %s header: %r", name, raw_value)
        return self.default_retry_after
