"""Core — shared errors, config loading, logging, and task handles."""

from src.core.config import (
    AppSettings,
    ConnectivitySettings,
    Environment,
    RateSettings,
    RetrySettings,
    Settings,
    load_settings,
)
from src.core.errors import (
    ConfigError,
    ConnectivityError,
    RateEndpointError,
    RateFetchError,
    RemoteOperationError,
    SubscriptionCoreError,
)
from src.core.logging import bind_session, clear_session, setup_logging
from src.core.tasks import TaskHandle, TaskScope, call_every, call_later, spawn

__all__ = [
    "AppSettings",
    "ConfigError",
    "ConnectivityError",
    "ConnectivitySettings",
    "Environment",
    "RateEndpointError",
    "RateFetchError",
    "RateSettings",
    "RemoteOperationError",
    "RetrySettings",
    "Settings",
    "SubscriptionCoreError",
    "TaskHandle",
    "TaskScope",
    "bind_session",
    "call_every",
    "call_later",
    "clear_session",
    "load_settings",
    "setup_logging",
    "spawn",
]
