"""Connectivity monitor — online/offline tracking with explicit lifecycle.

The platform's passive online/offline signal is abstracted behind
``ConnectivitySource``.  The host application owns one ``ConnectivityMonitor``,
calls ``init()`` at startup and ``dispose()`` at shutdown, and injects it into
consumers (e.g. ``RetryExecutor``).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

import httpx
import structlog

from src.core.config import ConnectivitySettings
from src.core.errors import ConnectivityError

logger = structlog.get_logger(__name__)

Listener = Callable[[bool], None]
Unsubscribe = Callable[[], None]


# ── Platform signal ──────────────────────────────────────────────────


class ConnectivitySource(Protocol):
    """Platform-level connectivity flag plus transition notifications."""

    def is_online(self) -> bool: ...

    def subscribe(self, callback: Listener) -> Unsubscribe: ...


class ManualConnectivitySource:
    """In-process source driven by the host (OS hooks, UI shell, tests).

    Like a real platform it may report the same state twice in a row; the
    monitor is responsible for de-duplicating.
    """

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._callbacks: list[Listener] = []

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Listener) -> Unsubscribe:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def set_online(self, online: bool) -> None:
        """Fire an online/offline event, even if nothing changed."""
        self._online = online
        for callback in list(self._callbacks):
            callback(online)


# ── Monitor ──────────────────────────────────────────────────────────


class ListenerHandle:
    """Returned by ``add_listener``; ``cancel()`` deregisters."""

    def __init__(self, monitor: ConnectivityMonitor, listener: Listener) -> None:
        self._monitor = monitor
        self._listener = listener

    def cancel(self) -> bool:
        return self._monitor.remove_listener(self._listener)


class ConnectivityMonitor:
    """Tracks ``is_online`` and broadcasts genuine transitions.

    Listeners run in insertion order.  A listener that raises is logged and
    the rest still run.
    """

    def __init__(
        self,
        source: ConnectivitySource,
        settings: ConnectivitySettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._source = source
        self._settings = settings or ConnectivitySettings()
        self._client = client
        self._listeners: dict[Listener, None] = {}
        self._unsubscribe: Unsubscribe | None = None
        self._online = self._settings.initially_online
        self.recovery_attempts = 0

    # ── Lifecycle ────────────────────────────────────────────────────

    def init(self) -> None:
        """Read the current flag and subscribe to the source. Idempotent."""
        if self._unsubscribe is not None:
            return
        self._online = self._source.is_online()
        self._unsubscribe = self._source.subscribe(self._on_platform_event)
        logger.info("connectivity_monitor_started", online=self._online)

    def dispose(self) -> None:
        """Unsubscribe from the source and drop every listener."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        dropped = len(self._listeners)
        self._listeners.clear()
        logger.info("connectivity_monitor_disposed", dropped_listeners=dropped)

    @property
    def initialized(self) -> bool:
        return self._unsubscribe is not None

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Listener) -> ListenerHandle:
        self._listeners[listener] = None
        return ListenerHandle(self, listener)

    def remove_listener(self, listener: Listener) -> bool:
        if listener not in self._listeners:
            return False
        del self._listeners[listener]
        return True

    def _on_platform_event(self, online: bool) -> None:
        if online == self._online:
            logger.debug("connectivity_duplicate_event", online=online)
            return
        self._online = online
        logger.info("connectivity_restored" if online else "connectivity_lost")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as exc:
                logger.error("connectivity_listener_failed", error=str(exc))

    # ── Active probe ─────────────────────────────────────────────────

    async def test_connectivity(self) -> bool:
        """Send a lightweight HEAD to the probe URL. Never raises."""
        url = self._settings.probe_url
        timeout = self._settings.probe_timeout
        try:
            if self._client is not None:
                response = await self._client.head(url, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.head(url)
        except httpx.HTTPError as exc:
            logger.warning("connectivity_probe_failed", url=url, error=str(exc))
            return False
        ok = response.is_success
        logger.debug("connectivity_probe", url=url, status=response.status_code, ok=ok)
        return ok

    async def attempt_recovery(self) -> bool:
        """Check the passive flag, then the probe.

        Raises ConnectivityError when either says the network is unusable.
        """
        self.recovery_attempts += 1
        if not self._online:
            raise ConnectivityError("network offline: no connection available")
        if not await self.test_connectivity():
            raise ConnectivityError("network connection failed: server unreachable")
        return True

    def reset_recovery_attempts(self) -> None:
        self.recovery_attempts = 0
