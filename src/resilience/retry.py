"""Retry executor — run an async operation under an exponential backoff policy.

This is the only place backoff is computed.  Rate refreshes and remote data
reads/writes all route through ``RetryExecutor.run`` rather than looping on
their own.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.core.errors import ConnectivityError
from src.resilience.classify import extract_message
from src.resilience.messages import generate_app_error
from src.resilience.models import RetryOutcome, RetryPolicy

if TYPE_CHECKING:
    from src.network.connectivity import ConnectivityMonitor

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]

OFFLINE_MESSAGE = "network offline: request not attempted"


def is_retryable_error(error: BaseException, policy: RetryPolicy) -> bool:
    """True when any policy pattern is a case-insensitive substring of the message."""
    if not isinstance(error, Exception):
        # CancelledError, KeyboardInterrupt, ...
        return False
    message = extract_message(error).lower()
    return any(p.lower() in message for p in policy.retryable_message_patterns)


class RetryExecutor:
    """Runs operations under a ``RetryPolicy`` and reports a ``RetryOutcome``.

    Attempts are strictly sequential.  Backoff sleeps go through ``sleep``
    (``asyncio.sleep`` by default) and are cancelled with the calling task.

    Args:
        default_policy:  Policy used when ``run`` is not given one.
        monitor:         Optional connectivity monitor.  While it reports
                         offline, attempts are not sent and count as network
                         failures.
        sleep:           Awaitable sleep, injectable for tests.
        include_details: Attach developer details to generated ``AppError``s.
    """

    def __init__(
        self,
        default_policy: RetryPolicy | None = None,
        *,
        monitor: ConnectivityMonitor | None = None,
        sleep: SleepFn = asyncio.sleep,
        include_details: bool = False,
    ) -> None:
        self.default_policy = default_policy or RetryPolicy()
        self._monitor = monitor
        self._sleep = sleep
        self._include_details = include_details

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        context: str | None = None,
        **overrides: Any,
    ) -> RetryOutcome[T]:
        """Run ``operation`` until it succeeds, fails non-retryably, or runs out.

        Keyword ``overrides`` replace individual policy fields for this call
        (``max_attempts=2``, ``base_delay=0.5``...).
        """
        policy = policy or self.default_policy
        if overrides:
            policy = policy.model_copy(update=overrides)

        run_log = logger.bind(context=context, max_attempts=policy.max_attempts)
        t0 = time.monotonic()
        attempts = 0

        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            run_log.warning(
                "retry_scheduled",
                attempt=state.attempt_number,
                delay_secs=state.next_action.sleep if state.next_action else None,
                error=extract_message(exc) if exc else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay,
                exp_base=policy.backoff_multiplier,
                max=policy.max_delay,
            ),
            retry=retry_if_exception(lambda exc: is_retryable_error(exc, policy)),
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self._check_online()
                    value = await operation()
        except asyncio.CancelledError:
            run_log.info("retry_cancelled", attempts=attempts)
            raise
        except Exception as exc:
            elapsed_ms = round((time.monotonic() - t0) * 1000, 2)
            app_error = generate_app_error(
                exc, context, include_details=self._include_details
            )
            run_log.error(
                "operation_failed",
                attempts=attempts,
                elapsed_ms=elapsed_ms,
                kind=app_error.kind.value,
                retryable=is_retryable_error(exc, policy),
                error=extract_message(exc),
                online=self._monitor.is_online if self._monitor else None,
            )
            return RetryOutcome(
                succeeded=False,
                error=app_error,
                attempts_made=attempts,
                elapsed_ms=elapsed_ms,
            )

        elapsed_ms = round((time.monotonic() - t0) * 1000, 2)
        if attempts > 1:
            run_log.info("operation_recovered", attempts=attempts, elapsed_ms=elapsed_ms)
        return RetryOutcome(
            succeeded=True,
            value=value,
            attempts_made=attempts,
            elapsed_ms=elapsed_ms,
        )

    def _check_online(self) -> None:
        if self._monitor is not None and not self._monitor.is_online:
            raise ConnectivityError(OFFLINE_MESSAGE)
