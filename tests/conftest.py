"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import httpx
import pytest

from hookpost.client import WebhookClient
from hookpost.config import WebhookSettings
from hookpost.transport import WebhookTransport
from tests.fixtures.webhook_server import WEBHOOK_URL, FakeWebhookServer


@pytest.fixture
def server() -> FakeWebhookServer:
    """Provide a fake webhook endpoint that answers 204 unless scripted."""
    return FakeWebhookServer()


@pytest.fixture
async def http_client(server: FakeWebhookServer) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        yield client


@pytest.fixture
def settings() -> WebhookSettings:
    return WebhookSettings(webhook_url=WEBHOOK_URL)


@pytest.fixture
def transport(settings: WebhookSettings, http_client: httpx.AsyncClient) -> WebhookTransport:
    return WebhookTransport.from_settings(settings, client=http_client)


@pytest.fixture
def client(settings: WebhookSettings, transport: WebhookTransport) -> WebhookClient:
    return WebhookClient(settings, transport=transport)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace asyncio.sleep with a recorder so backoff waits are instant."""
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded
