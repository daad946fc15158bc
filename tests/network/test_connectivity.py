"""Tests for ConnectivityMonitor."""

from __future__ import annotations

import httpx
import pytest

from src.core.config import ConnectivitySettings
from src.core.errors import ConnectivityError
from src.network.connectivity import ConnectivityMonitor, ManualConnectivitySource


@pytest.fixture
def source() -> ManualConnectivitySource:
    return ManualConnectivitySource(online=True)


@pytest.fixture
def monitor(source, connectivity_settings) -> ConnectivityMonitor:
    m = ConnectivityMonitor(source, connectivity_settings)
    m.init()
    return m


# ── Lifecycle ─────────────────────────────────────────────────────────


class TestLifecycle:
    def test_init_reads_source_flag(self):
        src = ManualConnectivitySource(online=False)
        m = ConnectivityMonitor(src)
        assert m.is_online is True  # initially_online default until init()
        m.init()
        assert m.is_online is False
        assert m.initialized

    def test_init_idempotent(self, source, monitor):
        monitor.init()
        assert source.subscriber_count == 1

    def test_dispose_unsubscribes_and_drops_listeners(self, source, monitor):
        seen: list[bool] = []
        monitor.add_listener(seen.append)

        monitor.dispose()
        source.set_online(False)

        assert source.subscriber_count == 0
        assert monitor.listener_count == 0
        assert seen == []
        assert not monitor.initialized

    def test_dispose_twice_is_harmless(self, monitor):
        monitor.dispose()
        monitor.dispose()


# ── Transitions ───────────────────────────────────────────────────────


class TestTransitions:
    def test_one_notification_per_transition(self, source, monitor):
        seen: list[bool] = []
        monitor.add_listener(seen.append)

        source.set_online(False)
        source.set_online(False)
        source.set_online(True)
        source.set_online(True)

        assert seen == [False, True]
        assert monitor.is_online is True

    def test_duplicate_initial_state_not_broadcast(self, source, monitor):
        seen: list[bool] = []
        monitor.add_listener(seen.append)
        source.set_online(True)
        assert seen == []

    def test_listeners_run_in_insertion_order(self, source, monitor):
        order: list[str] = []
        monitor.add_listener(lambda online: order.append("a"))
        monitor.add_listener(lambda online: order.append("b"))
        monitor.add_listener(lambda online: order.append("c"))

        source.set_online(False)

        assert order == ["a", "b", "c"]

    def test_raising_listener_does_not_stop_others(self, source, monitor):
        seen: list[bool] = []

        def bad(online: bool) -> None:
            raise RuntimeError("listener bug")

        monitor.add_listener(bad)
        monitor.add_listener(seen.append)

        source.set_online(False)

        assert seen == [False]

    def test_handle_cancel_removes_listener(self, source, monitor):
        seen: list[bool] = []
        handle = monitor.add_listener(seen.append)

        assert handle.cancel() is True
        assert handle.cancel() is False
        source.set_online(False)

        assert seen == []

    def test_remove_unknown_listener(self, monitor):
        assert monitor.remove_listener(lambda online: None) is False

    def test_same_listener_registered_once(self, source, monitor):
        seen: list[bool] = []
        monitor.add_listener(seen.append)
        monitor.add_listener(seen.append)
        assert monitor.listener_count == 1


# ── Probe ─────────────────────────────────────────────────────────────


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_success(self, source, connectivity_settings, make_client):
        client, transport = make_client({"probe.test": 204})
        async with client:
            m = ConnectivityMonitor(source, connectivity_settings, client=client)
            assert await m.test_connectivity() is True
        assert transport.requests[0].method == "HEAD"

    @pytest.mark.asyncio
    async def test_probe_http_error_status(self, source, connectivity_settings, make_client):
        client, _ = make_client({"probe.test": 503})
        async with client:
            m = ConnectivityMonitor(source, connectivity_settings, client=client)
            assert await m.test_connectivity() is False

    @pytest.mark.asyncio
    async def test_probe_transport_error_never_raises(self, source, connectivity_settings, make_client):
        client, _ = make_client({"probe.test": httpx.ConnectError("refused")})
        async with client:
            m = ConnectivityMonitor(source, connectivity_settings, client=client)
            assert await m.test_connectivity() is False


class TestAttemptRecovery:
    @pytest.mark.asyncio
    async def test_offline_raises(self, connectivity_settings):
        src = ManualConnectivitySource(online=False)
        m = ConnectivityMonitor(src, connectivity_settings)
        m.init()
        with pytest.raises(ConnectivityError, match="network offline"):
            await m.attempt_recovery()
        assert m.recovery_attempts == 1

    @pytest.mark.asyncio
    async def test_probe_failure_raises(self, source, connectivity_settings, make_client):
        client, _ = make_client({"probe.test": httpx.ConnectError("refused")})
        async with client:
            m = ConnectivityMonitor(source, connectivity_settings, client=client)
            m.init()
            with pytest.raises(ConnectivityError, match="network connection failed"):
                await m.attempt_recovery()

    @pytest.mark.asyncio
    async def test_success_and_reset(self, source, connectivity_settings, make_client):
        client, _ = make_client({"probe.test": 204})
        async with client:
            m = ConnectivityMonitor(source, connectivity_settings, client=client)
            m.init()
            assert await m.attempt_recovery() is True
            assert await m.attempt_recovery() is True
        assert m.recovery_attempts == 2
        m.reset_recovery_attempts()
        assert m.recovery_attempts == 0

    def test_default_settings(self, source):
        m = ConnectivityMonitor(source)
        assert m.is_online is ConnectivitySettings().initially_online
