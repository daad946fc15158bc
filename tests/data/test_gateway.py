"""Tests for the remote data gateway."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from src.core.errors import RemoteOperationError
from src.data.gateway import (
    AUTH_POLICY,
    DELETE_POLICY,
    READ_POLICY,
    WRITE_POLICY,
    DataGateway,
    DataResult,
    LatestRequestGate,
    unwrap,
)
from src.resilience.models import ErrorKind
from src.resilience.retry import RetryExecutor


class _Remote:
    """Plays back ``(data, error)`` responses, repeating the last one."""

    def __init__(self, responses: list[object]) -> None:
        self.responses = list(responses)
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def gateway(sleep) -> DataGateway:
    return DataGateway(RetryExecutor(sleep=sleep))


# ── unwrap ────────────────────────────────────────────────────────────


class TestUnwrap:
    def test_tuple(self):
        assert unwrap(([1, 2], None)) == [1, 2]

    def test_mapping(self):
        assert unwrap({"data": {"id": 1}, "error": None}) == {"id": 1}

    def test_attributes(self):
        assert unwrap(SimpleNamespace(data="x", error=None)) == "x"

    def test_bare_value(self):
        assert unwrap(42) == 42

    def test_error_payload_raises(self):
        with pytest.raises(RemoteOperationError) as info:
            unwrap((None, {"message": "duplicate key value", "code": "23505"}))
        assert info.value.code == "23505"
        assert info.value.message == "duplicate key value"

    def test_nested_error_payload(self):
        with pytest.raises(RemoteOperationError, match="JWT expired"):
            unwrap({"data": None, "error": {"error": {"message": "JWT expired"}}})

    def test_exception_error_raised_as_is(self):
        boom = ConnectionError("network down")
        with pytest.raises(ConnectionError) as info:
            unwrap((None, boom))
        assert info.value is boom


# ── Policies ──────────────────────────────────────────────────────────


class TestPolicies:
    def test_read(self):
        assert READ_POLICY.max_attempts == 3
        assert READ_POLICY.base_delay == 1.0

    def test_write_retries_less(self):
        assert WRITE_POLICY.max_attempts == 2
        assert WRITE_POLICY.base_delay == 0.5
        assert DELETE_POLICY == WRITE_POLICY

    def test_auth_retries_auth_messages(self):
        assert "auth" in AUTH_POLICY.retryable_message_patterns


# ── Gateway ───────────────────────────────────────────────────────────


class TestGateway:
    @pytest.mark.asyncio
    async def test_fetch_success(self, gateway):
        remote = _Remote([([{"id": 1}], None)])
        result = await gateway.fetch_data(remote, "fetch_subscriptions")
        assert result.ok
        assert result.data == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_fetch_retries_network_errors(self, gateway, sleep):
        remote = _Remote(
            [
                (None, {"message": "Network request failed"}),
                (None, {"message": "Network request failed"}),
                (["row"], None),
            ]
        )
        result = await gateway.fetch_data(remote, "fetch_subscriptions")
        assert result.data == ["row"]
        assert remote.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_insert_database_error_not_retried(self, gateway):
        remote = _Remote([(None, {"message": 'duplicate key value violates unique constraint'})])
        result = await gateway.insert_data(remote, "add_subscription")
        assert not result.ok
        assert remote.calls == 1
        assert result.error.kind == ErrorKind.DATABASE
        assert result.error.message == "이미 존재하는 항목입니다. 다른 이름을 사용해주세요."
        assert result.error.context == "add_subscription"

    @pytest.mark.asyncio
    async def test_update_gives_up_after_two(self, gateway, sleep):
        remote = _Remote([(None, {"message": "timeout"})])
        result = await gateway.update_data(remote, "update_subscription")
        assert remote.calls == 2
        assert sleep.delays == [0.5]
        assert result.error.kind == ErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_delete_success_returns_true(self, gateway):
        result = await gateway.delete_data(_Remote([(None, None)]), "delete_subscription")
        assert result.data is True
        assert result.ok

    @pytest.mark.asyncio
    async def test_delete_failure(self, gateway):
        result = await gateway.delete_data(_Remote([(None, {"message": "forbidden"})]), "delete")
        assert result.data is None
        assert result.error.kind == ErrorKind.PERMISSION

    @pytest.mark.asyncio
    async def test_auth_operation_retries_auth_errors(self, gateway):
        remote = _Remote([(None, {"message": "auth service unavailable"}), ({"user": "u1"}, None)])
        result = await gateway.auth_operation(remote, "sign_in")
        assert result.data == {"user": "u1"}
        assert remote.calls == 2

    @pytest.mark.asyncio
    async def test_raised_exception_is_converted(self, gateway):
        remote = _Remote([RuntimeError("Unauthorized")])
        result = await gateway.fetch_data(remote, "fetch_profile")
        assert result.error.kind == ErrorKind.AUTH
        assert remote.calls == 1


class TestCheckSession:
    @pytest.mark.asyncio
    async def test_healthy(self, gateway):
        assert await gateway.check_session(_Remote([({"session": 1}, None)])) is None

    @pytest.mark.asyncio
    async def test_failure_returns_app_error_without_retry(self, gateway):
        remote = _Remote([ConnectionError("network unreachable")])
        err = await gateway.check_session(remote)
        assert remote.calls == 1
        assert err.kind == ErrorKind.NETWORK
        assert err.context == "network_check"
        assert err.details is None

    @pytest.mark.asyncio
    async def test_details(self, gateway):
        err = await gateway.check_session(_Remote([(None, "boom")]), include_details=True)
        assert err.details == "RemoteOperationError: boom"


# ── Latest request wins ───────────────────────────────────────────────


class TestLatestRequestGate:
    @pytest.mark.asyncio
    async def test_newer_request_supersedes_older(self):
        gate = LatestRequestGate()
        release_first = asyncio.Event()

        async def slow() -> DataResult:
            await release_first.wait()
            return DataResult(data="stale")

        async def fast() -> DataResult:
            return DataResult(data="fresh")

        first = asyncio.ensure_future(gate.run("subscriptions", slow))
        await asyncio.sleep(0)
        assert gate.inflight_keys == ["subscriptions"]

        second = await gate.run("subscriptions", fast)
        stale = await first

        assert second.data == "fresh"
        assert stale.superseded
        assert not stale.ok
        assert gate.inflight_keys == []

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        gate = LatestRequestGate()

        async def value(v: str) -> DataResult:
            return DataResult(data=v)

        a, b = await asyncio.gather(
            gate.run("a", lambda: value("A")), gate.run("b", lambda: value("B"))
        )
        assert (a.data, b.data) == ("A", "B")

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        gate = LatestRequestGate()
        started = asyncio.Event()

        async def forever() -> DataResult:
            started.set()
            await asyncio.Event().wait()
            return DataResult()

        waiter = asyncio.ensure_future(gate.run("k", forever))
        await started.wait()
        await gate.cancel_all()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert gate.inflight_keys == []
