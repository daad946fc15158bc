"""Shared test fixtures: settings, recorded sleeps, and mock HTTP transports."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from src.core.config import ConnectivitySettings, RateSettings, RetrySettings

ENDPOINTS = [
    "https://rates-a.test/latest/USD",
    "https://rates-b.test/latest/USD",
    "https://rates-c.test/latest/USD",
]


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RoutedTransport(httpx.MockTransport):
    """MockTransport answering per host; records every request it sees.

    A route value may be an exception instance to raise, an int status code
    (empty body), a str (raw body, status 200), or a dict (JSON, status 200).
    Unrouted hosts get a 404.
    """

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = dict(routes)
        self.requests: list[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.host)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, int):
            return httpx.Response(route)
        if isinstance(route, str):
            return httpx.Response(200, content=route.encode())
        if isinstance(route, dict):
            return httpx.Response(200, content=json.dumps(route).encode())
        return httpx.Response(404)

    @property
    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_settings() -> RetrySettings:
    return RetrySettings(max_attempts=3, base_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)


@pytest.fixture
def rate_settings() -> RateSettings:
    return RateSettings(
        endpoints=list(ENDPOINTS),
        default_rate=1300.0,
        request_timeout=1.0,
        refresh_interval=60.0,
        retry_delay=5.0,
        max_scheduled_retries=3,
        cycle_retry=RetrySettings(max_attempts=1, base_delay=0.0),
    )


@pytest.fixture
def connectivity_settings() -> ConnectivitySettings:
    return ConnectivitySettings(probe_url="https://probe.test/generate_204", probe_timeout=1.0)


@pytest.fixture
def make_client() -> Callable[[dict[str, object]], tuple[httpx.AsyncClient, RoutedTransport]]:
    """Factory: ``make_client({host: route})`` → (client, transport)."""

    def _make(routes: dict[str, object]) -> tuple[httpx.AsyncClient, RoutedTransport]:
        transport = RoutedTransport(routes)
        return httpx.AsyncClient(transport=transport), transport

    return _make
