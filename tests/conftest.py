"""
tests/conftest.py

Shared pytest fixtures for the unit test suite.
All HTTP fixtures use respx.mock or httpx.MockTransport — no real network
calls are made in any test.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from config import FetcherSettings

PROVIDER_URL = "https://ip.example.test/"


# ---------------------------------------------------------------------------
# HTTP mock fixture — intercepts all httpx calls
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_http():
    """
    Yields a respx router that intercepts all httpx.AsyncClient calls.

    No real network traffic is allowed during tests. Use this fixture
    wherever the fetcher would normally make an outbound request.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


# ---------------------------------------------------------------------------
# Settings fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> FetcherSettings:
    """Settings pointing at a test-only provider URL with a short timeout."""
    return FetcherSettings(url=PROVIDER_URL, timeout=1.0, user_agent="ip-fetcher-tests")


@pytest.fixture()
def hanging_transport() -> httpx.MockTransport:
    """
    A transport whose handler never answers within any test's timeout.

    Use it to simulate a provider that accepts the connection but hangs.
    """

    async def _hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200, text="203.0.113.42")

    return httpx.MockTransport(_hang)
