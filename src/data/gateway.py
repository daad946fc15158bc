"""Remote data gateway — uniform retry/classification around ``(data, error)`` calls.

Screens call remote reads/writes through here.  Whatever the remote client
returns or raises, the caller gets a ``DataResult`` whose ``error`` is an
``AppError``; raw provider errors never leave this module.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from src.core.errors import RemoteOperationError
from src.resilience.classify import extract_message, to_error_source
from src.resilience.messages import generate_app_error
from src.resilience.models import AppError, RetryPolicy
from src.resilience.retry import RetryExecutor

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RemoteCall = Callable[[], Awaitable[Any]]

# ── Per-operation policies ───────────────────────────────────────────

READ_POLICY = RetryPolicy(
    max_attempts=3,
    base_delay=1.0,
    retryable_message_patterns=("network", "timeout", "fetch failed", "failed to fetch", "connection failed"),
)
# Writes retry less to limit duplicate side effects.
WRITE_POLICY = RetryPolicy(
    max_attempts=2,
    base_delay=0.5,
    retryable_message_patterns=("network", "timeout", "fetch failed", "failed to fetch"),
)
DELETE_POLICY = WRITE_POLICY
AUTH_POLICY = RetryPolicy(
    max_attempts=3,
    base_delay=1.0,
    retryable_message_patterns=("network", "timeout", "fetch failed", "failed to fetch", "auth"),
)


# ── Result type ──────────────────────────────────────────────────────


class DataResult(BaseModel, Generic[T]):
    """Outcome handed back to UI code."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: T | None = None
    error: AppError | None = None
    superseded: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.superseded


# ── Unwrapping ───────────────────────────────────────────────────────


def unwrap(result: Any) -> Any:
    """Return the data from a ``(data, error)``-shaped result or raise.

    Accepts a ``(data, error)`` tuple, a mapping with ``data``/``error``
    keys, or an object with ``data``/``error`` attributes.  Anything else is
    treated as bare data.  A present error raises RemoteOperationError.
    """
    if isinstance(result, tuple) and len(result) == 2:
        data, error = result
    elif isinstance(result, Mapping) and ("data" in result or "error" in result):
        data, error = result.get("data"), result.get("error")
    elif hasattr(result, "data") or hasattr(result, "error"):
        data, error = getattr(result, "data", None), getattr(result, "error", None)
    else:
        return result

    if error:
        if isinstance(error, BaseException):
            raise error
        source = to_error_source(error)
        code = getattr(source, "code", None) or getattr(source, "provider_code", None)
        raise RemoteOperationError(extract_message(error), code=code, payload=error)
    return data


# ── Gateway ──────────────────────────────────────────────────────────


class DataGateway:
    """Wraps remote calls with the retry executor and error conversion."""

    def __init__(self, executor: RetryExecutor | None = None) -> None:
        self._executor = executor or RetryExecutor()

    async def _run(self, call: RemoteCall, policy: RetryPolicy, context: str) -> DataResult[Any]:
        async def _attempt() -> Any:
            return unwrap(await call())

        outcome = await self._executor.run(_attempt, policy, context=context)
        if outcome.succeeded:
            return DataResult(data=outcome.value)
        return DataResult(error=outcome.error)

    async def fetch_data(self, call: RemoteCall, context: str) -> DataResult[Any]:
        return await self._run(call, READ_POLICY, context)

    async def insert_data(self, call: RemoteCall, context: str) -> DataResult[Any]:
        return await self._run(call, WRITE_POLICY, context)

    async def update_data(self, call: RemoteCall, context: str) -> DataResult[Any]:
        return await self._run(call, WRITE_POLICY, context)

    async def delete_data(self, call: RemoteCall, context: str) -> DataResult[Any]:
        result = await self._run(call, DELETE_POLICY, context)
        if result.error is None:
            return DataResult(data=True)
        return result

    async def auth_operation(self, call: RemoteCall, context: str) -> DataResult[Any]:
        return await self._run(call, AUTH_POLICY, context)

    async def check_session(self, probe: RemoteCall, *, include_details: bool = False) -> AppError | None:
        """Run a session probe once; return an AppError if it fails.

        No retries: this is the "can we reach the backend at all" check.
        """
        try:
            unwrap(await probe())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("session_check_failed", error=extract_message(exc))
            return generate_app_error(exc, "network_check", include_details=include_details)
        return None


# ── Latest-request-wins ──────────────────────────────────────────────


class LatestRequestGate:
    """Per-key "latest request wins" for sequential fetches of one resource.

    Starting a request for a key cancels the one still in flight for that
    key, so a slow stale response can never land after a newer one.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self._superseded: set[asyncio.Task[Any]] = set()

    @property
    def inflight_keys(self) -> list[str]:
        return [k for k, t in self._inflight.items() if not t.done()]

    async def run(self, key: str, factory: Callable[[], Awaitable[DataResult[T]]]) -> DataResult[T]:
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            self._superseded.add(previous)
            previous.cancel()
            logger.debug("request_superseded", key=key)

        task: asyncio.Task[DataResult[T]] = asyncio.ensure_future(factory())
        self._inflight[key] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._superseded:
                return DataResult(superseded=True)
            raise
        finally:
            self._superseded.discard(task)
            if self._inflight.get(key) is task:
                del self._inflight[key]

    async def cancel_all(self) -> None:
        """Abort every in-flight request (teardown)."""
        tasks = list(self._inflight.values())
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
