"""Exchange-rate client — ordered endpoint fallback over httpx, structured logging."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from src.core.config import RateSettings
from src.core.errors import RateEndpointError, RateFetchError
from src.stats.formatting import is_valid_rate

log = structlog.get_logger()

# Providers nest the quote under different keys.
_RATE_CONTAINERS = ("rates", "conversion_rates")


# ── Parsing ───────────────────────────────────────────────────────────


def parse_rate(payload: Any, code: str) -> float | None:
    """Pull ``code`` out of a provider payload, or None if the shape is unknown.

    Accepts ``{"rates": {CODE: x}}`` and ``{"conversion_rates": {CODE: x}}``.
    The value is returned as-is; validity is checked by the caller.
    """
    if not isinstance(payload, Mapping):
        return None
    for key in _RATE_CONTAINERS:
        container = payload.get(key)
        if isinstance(container, Mapping) and code in container:
            return container[code]
    return None


# ── Client ────────────────────────────────────────────────────────────


class RateClient:
    """Walks the configured endpoints in priority order.

    Endpoints are not retried individually; the caller retries the whole
    walk.  Each request carries ``settings.request_timeout`` as a hard limit.
    """

    def __init__(
        self, settings: RateSettings, *, client: httpx.AsyncClient | None = None
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=settings.request_timeout,
        )
        self._log = log.bind(
            client="exchange_rate",
            base=settings.base_currency,
            quote=settings.quote_currency,
        )

    async def aclose(self) -> None:
        """Close the HTTP client when owned."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch_from(self, endpoint: str) -> float:
        """Fetch and validate a rate from one endpoint.

        Raises RateEndpointError on any status, transport, or payload problem.
        """
        code = self._settings.quote_currency
        try:
            response = await self._client.get(endpoint, timeout=self._settings.request_timeout)
        except httpx.TimeoutException as exc:
            raise RateEndpointError(
                f"timeout after {self._settings.request_timeout}s", endpoint=endpoint
            ) from exc
        except httpx.HTTPError as exc:
            raise RateEndpointError(
                f"connection failed: {exc}", endpoint=endpoint
            ) from exc

        if not response.is_success:
            raise RateEndpointError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                endpoint=endpoint,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RateEndpointError(
                "invalid JSON response", endpoint=endpoint, status_code=response.status_code
            ) from exc

        rate = parse_rate(payload, code)
        if rate is None:
            raise RateEndpointError(
                f"no {code} rate in response", endpoint=endpoint, status_code=response.status_code
            )
        if not is_valid_rate(rate):
            raise RateEndpointError(
                f"invalid {code} rate {rate!r}", endpoint=endpoint, status_code=response.status_code
            )
        return float(rate)

    async def fetch_rate(self) -> float:
        """Return the first valid rate; skip the remaining endpoints.

        Raises RateFetchError when every endpoint fails.
        """
        endpoints = self._settings.endpoints
        last_error: RateEndpointError | None = None
        for endpoint in endpoints:
            try:
                rate = await self.fetch_from(endpoint)
            except RateEndpointError as exc:
                last_error = exc
                self._log.warning(
                    "rate_endpoint_failed",
                    endpoint=endpoint,
                    status_code=exc.status_code,
                    error=str(exc),
                )
                continue
            self._log.info("rate_fetched", endpoint=endpoint, rate=rate)
            return rate

        raise RateFetchError(
            f"exchange rate fetch failed on all {len(endpoints)} endpoints"
            f" (last error: {last_error})"
        )
