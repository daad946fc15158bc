"""Exception hierarchy — every error raised inside the core has a typed home.

These are *internal* errors.  Nothing here crosses into UI-facing code:
failures are converted to ``AppError`` records by
``src.resilience.messages.generate_app_error`` before they leave the core.
"""

from __future__ import annotations

from typing import Any


class SubscriptionCoreError(Exception):
    """Base for all application errors."""


class ConfigError(SubscriptionCoreError):
    """Bad config, missing keys, invalid values."""


class ConnectivityError(SubscriptionCoreError):
    """The device is offline or the connectivity probe failed. Retryable."""


# ── Exchange-rate errors ───────────────────────────────────────────────


class RateFetchError(SubscriptionCoreError):
    """No endpoint produced a usable exchange rate."""


class RateEndpointError(RateFetchError):
    """A single endpoint failed (HTTP status, transport, or payload shape)."""

    def __init__(
        self, message: str, *, endpoint: str, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


# ── Remote data errors ─────────────────────────────────────────────────


class RemoteOperationError(SubscriptionCoreError):
    """A remote data call returned an error payload instead of data.

    ``payload`` is the provider's error object, kept so classification can
    look at its message and code.
    """

    def __init__(self, message: str, *, code: str | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload
