"""Tests for the rate-limit aware webhook transport."""

from __future__ import annotations

import json
import time

import httpx
import pytest

from hookpost.errors import ErrorKind, HookpostError
from hookpost.transport import MultipartBody, WebhookTransport
from tests.fixtures.webhook_server import WEBHOOK_PATH, FakeWebhookServer, provider_error, rate_limited


class TestTransportInitialization:
    """WebhookTransport construction and validation."""

    def test_rejects_negative_retry_ceiling(self) -> None:
        with pytest.raises(ValueError, match="max_rate_limit_retries must not be negative"):
            _ = WebhookTransport("https://discord.com/api/webhooks/1/t", max_rate_limit_retries=-1)

    def test_rejects_negative_default_wait(self) -> None:
        with pytest.raises(ValueError, match="default_retry_after must not be negative"):
            _ = WebhookTransport("https://discord.com/api/webhooks/1/t", default_retry_after=-0.5)

    def test_strips_trailing_slash(self) -> None:
        transport = WebhookTransport("https://discord.com/api/webhooks/1/t/")

        assert transport.base_url == "https://discord.com/api/webhooks/1/t"

    async def test_does_not_close_injected_client(self, http_client: httpx.AsyncClient) -> None:
        async with WebhookTransport("https://discord.com/api/webhooks/1/t", client=http_client):
            pass

        assert not http_client.is_closed

    async def test_closes_own_client(self) -> None:
        transport = WebhookTransport("https://discord.com/api/webhooks/1/t")

        await transport.aclose()

        assert transport._client.is_closed  # pyright: ignore[reportPrivateUsage]


class TestSend:
    """Successful request handling."""

    async def test_posts_json_to_base_address(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
    ) -> None:
        result = await transport.send("POST", {"content": "hello"})

        assert result is None
        assert server.methods() == ["POST"]
        assert server.paths() == [WEBHOOK_PATH]
        assert server.json_bodies() == [{"content": "hello"}]
        assert server.requests[0].headers["content-type"] == "application/json"

    async def test_appends_path_suffix(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        _ = await transport.send("DELETE", path="/messages/42")

        assert server.methods() == ["DELETE"]
        assert server.paths() == [f"{WEBHOOK_PATH}/messages/42"]
        assert server.requests[0].content == b""

    async def test_returns_parsed_json_body(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        server.responses.append(httpx.Response(200, json={"id": "987", "content": "hello"}))

        result = await transport.send("PATCH", {"content": "hello"}, path="/messages/987")

        assert result == {"id": "987", "content": "hello"}

    async def test_returns_text_for_non_json_body(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
    ) -> None:
        server.responses.append(httpx.Response(200, text="ok"))

        assert await transport.send("POST", {"content": "x"}) == "ok"

    async def test_forwards_extra_headers(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        _ = await transport.send("POST", {"content": "x"}, headers={"X-Audit-Log-Reason": "deploy"})

        assert server.requests[0].headers["x-audit-log-reason"] == "deploy"

    async def test_sends_multipart_body(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        body = MultipartBody(
            fields={"payload_json": json.dumps({"content": "report"})},
            files={"files[0]": ("report.txt", b"line one\n")},
        )

        _ = await transport.send("POST", body)

        request = server.requests[0]
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="payload_json"' in request.content
        assert b'name="files[0]"; filename="report.txt"' in request.content
        assert b"line one\n" in request.content


class TestRateLimiting:
    """HTTP 429 handling."""

    async def test_retries_after_header_delay(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
        sleeps: list[float],
    ) -> None:
        server.responses.extend(
            [
                rate_limited(retry_after="2"),
                httpx.Response(200, json={"id": "1"}),
            ]
        )

        result = await transport.send("POST", {"content": "hello"})

        assert result == {"id": "1"}
        assert sleeps == [2.0]
        assert len(server.requests) == 2
        assert server.json_bodies() == [{"content": "hello"}, {"content": "hello"}]
        assert server.paths() == [WEBHOOK_PATH, WEBHOOK_PATH]

    async def test_uses_ratelimit_reset_after_header(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
        sleeps: list[float],
    ) -> None:
        server.responses.append(httpx.Response(429, headers={"X-RateLimit-Reset-After": "1.25"}))

        _ = await transport.send("POST", {"content": "hello"})

        assert sleeps == [1.25]

    @pytest.mark.parametrize("header", [None, "soon", "-4", "nan"])
    async def test_falls_back_to_default_wait(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
        sleeps: list[float],
        header: str | None,
    ) -> None:
        server.responses.append(rate_limited(retry_after=header))

        _ = await transport.send("POST", {"content": "hello"})

        assert sleeps == [3.0]
        assert len(server.requests) == 2

    async def test_retry_ceiling_surfaces_the_429(
        self,
        server: FakeWebhookServer,
        http_client: httpx.AsyncClient,
        sleeps: list[float],
    ) -> None:
        transport = WebhookTransport(
            "https://discord.com/api/webhooks/123456789/secret-token",
            max_rate_limit_retries=3,
            client=http_client,
        )
        server.default = rate_limited(retry_after="0")

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        error = exc_info.value
        assert error.kind is ErrorKind.TRANSPORT
        assert error.status == 429
        assert error.provider_message == "You are being rate limited."
        assert len(server.requests) == 4
        assert sleeps == [0.0, 0.0, 0.0]

    async def test_retry_counter_starts_fresh_for_each_request(
        self,
        server: FakeWebhookServer,
        http_client: httpx.AsyncClient,
        sleeps: list[float],
    ) -> None:
        transport = WebhookTransport(
            "https://discord.com/api/webhooks/123456789/secret-token",
            max_rate_limit_retries=1,
            client=http_client,
        )
        server.responses.extend([rate_limited(), httpx.Response(204), rate_limited(), httpx.Response(204)])

        _ = await transport.send("POST", {"content": "first"})
        _ = await transport.send("POST", {"content": "second"})

        assert len(server.requests) == 4
        assert len(sleeps) == 2

    async def test_zero_ceiling_never_retries(
        self,
        server: FakeWebhookServer,
        http_client: httpx.AsyncClient,
        sleeps: list[float],
    ) -> None:
        transport = WebhookTransport(
            "https://discord.com/api/webhooks/123456789/secret-token",
            max_rate_limit_retries=0,
            client=http_client,
        )
        server.responses.append(rate_limited())

        with pytest.raises(HookpostError, match=r"\[429\]"):
            _ = await transport.send("POST", {"content": "hello"})

        assert sleeps == []


class TestErrorTranslation:
    """Failures become transport errors with status, provider message and code."""

    async def test_provider_error_fields(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        server.responses.append(provider_error(404, "Unknown Webhook", code=10015))

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        error = exc_info.value
        assert error.kind is ErrorKind.TRANSPORT
        assert error.status == 404
        assert error.provider_message == "Unknown Webhook"
        assert error.code == "10015"
        assert error.message == "Request Error: [404] - Unknown Webhook"

    async def test_nested_error_details_are_appended(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
    ) -> None:
        server.responses.append(
            httpx.Response(
                400,
                json={
                    "message": "Invalid Form Body",
                    "code": 50035,
                    "errors": {"content": {"_errors": [{"code": "BASE_TYPE_MAX_LENGTH"}]}},
                },
            )
        )

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        assert "Invalid Form Body" in exc_info.value.message
        assert "BASE_TYPE_MAX_LENGTH" in exc_info.value.message

    async def test_status_code_used_without_provider_body(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
    ) -> None:
        server.responses.append(httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        error = exc_info.value
        assert error.status == 502
        assert error.provider_message is None
        assert error.code == "HTTP_502"
        assert error.message == "Request Error: [502] - Bad Gateway"

    async def test_server_errors_are_not_retried(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
        sleeps: list[float],
    ) -> None:
        server.responses.append(provider_error(500, "Internal Server Error"))

        with pytest.raises(HookpostError):
            _ = await transport.send("POST", {"content": "hello"})

        assert len(server.requests) == 1
        assert sleeps == []

    async def test_timeout(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        server.responses.append(httpx.ReadTimeout("timed out"))

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        error = exc_info.value
        assert error.kind is ErrorKind.TRANSPORT
        assert error.code == "TIMEOUT"
        assert error.status is None
        assert isinstance(error.__cause__, httpx.ReadTimeout)

    async def test_network_error(self, transport: WebhookTransport, server: FakeWebhookServer) -> None:
        server.responses.append(httpx.ConnectError("connection refused"))

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        assert exc_info.value.code == "NETWORK_ERROR"
        assert "connection refused" in exc_info.value.message

    async def test_unrecognized_exception_is_wrapped(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
    ) -> None:
        server.responses.append(RuntimeError("handler crashed"))

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        error = exc_info.value
        assert error.kind is ErrorKind.UNKNOWN
        assert error.code == "UNKNOWN_ERROR"
        assert error.message == "An unknown error occurred: handler crashed"

    async def test_error_messages_never_contain_the_token(
        self,
        transport: WebhookTransport,
        server: FakeWebhookServer,
    ) -> None:
        server.responses.append(
            httpx.ConnectError("could not reach https://discord.com/api/webhooks/123456789/secret-token")
        )

        with pytest.raises(HookpostError) as exc_info:
            _ = await transport.send("POST", {"content": "hello"})

        assert "secret-token" not in exc_info.value.message


@pytest.mark.slow
async def test_retry_waits_in_real_time(transport: WebhookTransport, server: FakeWebhookServer) -> None:
    """The retried request is issued only after the requested delay has elapsed."""
    server.responses.extend([rate_limited(retry_after="2"), httpx.Response(200, json={"id": "2"})])

    started = time.monotonic()
    result = await transport.send("POST", {"content": "hello"})
    elapsed = time.monotonic() - started

    assert result == {"id": "2"}
    assert len(server.requests) == 2
    assert 1.9 <= elapsed < 3.0
