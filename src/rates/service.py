"""Exchange-rate service — session-scoped rate state with refresh, retry and fallback.

State machine::

    idle → refreshing → valid | failed
    valid → stale            (refresh_interval elapsed without a success)
    failed → refreshing      (scheduled retry or manual retry())
    any → refreshing         (manual retry(), cancelling a pending retry)

``RateState.rate`` is always a positive finite number: it starts at the
configured default and is only overwritten by a validated fetch.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.core.config import RateSettings
from src.core.errors import RateFetchError
from src.core.tasks import TaskHandle, TaskScope, call_every, call_later, spawn
from src.rates.client import RateClient
from src.resilience.messages import generate_app_error
from src.resilience.models import AppError, RetryPolicy
from src.resilience.retry import RetryExecutor
from src.stats.formatting import is_valid_rate

logger = structlog.get_logger(__name__)


class RateStatus(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    VALID = "valid"
    STALE = "stale"
    FAILED = "failed"


class RateState(BaseModel):
    """Mutable, validated on assignment so ``rate`` can never go bad."""

    model_config = ConfigDict(validate_assignment=True)

    rate: float = Field(gt=0, allow_inf_nan=False)
    is_refreshing: bool = False
    last_error: AppError | None = None
    last_updated_at: datetime | None = None
    consecutive_failures: int = Field(default=0, ge=0)


class ExchangeRateService:
    """Owns one ``RateState`` for the lifetime of a session.

    Only one refresh runs at a time; a refresh requested while another is in
    flight returns immediately without queueing.  Each refresh walks every
    endpoint and is retried as a whole through ``RetryExecutor``.  On total
    failure the previous rate is kept, ``last_error`` is set and one retry is
    scheduled ``retry_delay`` seconds later.

    Args:
        settings:  Endpoints, default rate, timers.
        executor:  Retry executor for the refresh cycle.
        client:    Optional shared ``httpx.AsyncClient``.
        rate_client: Optional pre-built ``RateClient`` (overrides ``client``).
    """

    def __init__(
        self,
        settings: RateSettings | None = None,
        *,
        executor: RetryExecutor | None = None,
        client: httpx.AsyncClient | None = None,
        rate_client: RateClient | None = None,
    ) -> None:
        self._settings = settings or RateSettings()
        self._executor = executor or RetryExecutor()
        self._rate_client = rate_client or RateClient(self._settings, client=client)
        self._policy = RetryPolicy.from_settings(self._settings.cycle_retry)
        self.state = RateState(rate=self._settings.default_rate)
        self._scope = TaskScope()
        self._periodic: TaskHandle | None = None
        self._pending_retry: TaskHandle | None = None
        self._inflight: TaskHandle | None = None
        self._refresh_tasks: set[asyncio.Task] = set()
        self._disposed = False
        self._log = logger.bind(
            base=self._settings.base_currency, quote=self._settings.quote_currency
        )

    # ── Read side ────────────────────────────────────────────────────

    @property
    def rate(self) -> float:
        return self.state.rate

    @property
    def retry_pending(self) -> bool:
        return self._pending_retry is not None and not self._pending_retry.done

    @property
    def running(self) -> bool:
        return self._periodic is not None and not self._periodic.done

    def status(self, now: datetime | None = None) -> RateStatus:
        state = self.state
        if state.is_refreshing:
            return RateStatus.REFRESHING
        if state.last_error is not None:
            return RateStatus.FAILED
        if state.last_updated_at is None:
            return RateStatus.IDLE
        now = now or datetime.now(timezone.utc)
        age = now - state.last_updated_at
        if age >= timedelta(seconds=self._settings.refresh_interval):
            return RateStatus.STALE
        return RateStatus.VALID

    # ── Refresh ──────────────────────────────────────────────────────

    async def refresh(self) -> RateState:
        """Run one refresh cycle unless one is already in flight."""
        if self._disposed:
            raise RuntimeError("ExchangeRateService has been disposed")
        if self.state.is_refreshing:
            self._log.debug("rate_refresh_skipped", reason="in_flight")
            return self.state

        task = asyncio.current_task()
        if task is not None:
            self._refresh_tasks.add(task)
        self.state.is_refreshing = True
        try:
            outcome = await self._executor.run(
                self._rate_client.fetch_rate, self._policy, context="exchange_rate"
            )
        finally:
            self._refresh_tasks.discard(task)
            self.state.is_refreshing = False

        if self._disposed:
            self._log.debug("rate_refresh_discarded", reason="disposed")
            return self.state

        if outcome.succeeded and is_valid_rate(outcome.value):
            self._apply_rate(outcome.value)
        elif outcome.succeeded:
            code = self._settings.quote_currency
            self._record_failure(
                generate_app_error(
                    RateFetchError(f"invalid {code} rate {outcome.value!r}"), "exchange_rate"
                )
            )
        else:
            self._record_failure(outcome.error)
        return self.state

    async def retry(self) -> RateState:
        """Manual retry: drop any scheduled retry and refresh now.

        A scheduled retry that is already mid-refresh is cancelled and
        awaited first so the manual refresh is not skipped as re-entrant.
        """
        handle = self._pending_retry
        self._cancel_pending_retry()
        if handle is not None and handle.task is not asyncio.current_task():
            await handle.wait()
        return await self.refresh()

    def _apply_rate(self, rate: float) -> None:
        previous = self.state.rate
        self.state.rate = rate  # validated on assignment
        self.state.last_error = None
        self.state.consecutive_failures = 0
        self.state.last_updated_at = datetime.now(timezone.utc)
        self._cancel_pending_retry()
        self._log.info("rate_updated", rate=rate, previous=previous)

    def _record_failure(self, error: AppError | None) -> None:
        self.state.last_error = error
        self.state.consecutive_failures += 1
        failures = self.state.consecutive_failures
        self._log.warning(
            "rate_refresh_failed",
            kept_rate=self.state.rate,
            consecutive_failures=failures,
            kind=error.kind.value if error else None,
        )
        if failures <= self._settings.max_scheduled_retries:
            self._schedule_retry()
        else:
            self._cancel_pending_retry()
            self._log.error("rate_retries_exhausted", consecutive_failures=failures)

    def _schedule_retry(self) -> None:
        if self._disposed:
            return
        self._cancel_pending_retry()
        delay = self._settings.retry_delay
        self._pending_retry = self._scope.track(
            call_later(delay, self.refresh, name="exchange_rate.retry")
        )
        self._log.info("rate_retry_scheduled", delay_secs=delay)

    def _cancel_pending_retry(self) -> None:
        handle, self._pending_retry = self._pending_retry, None
        if handle is None or handle.done:
            return
        # The scheduled retry itself lands here via refresh(); never cancel
        # the task we are running in.
        if handle.task is asyncio.current_task():
            return
        handle.cancel()

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        """Kick off an initial refresh and the periodic refresh timer."""
        if self._disposed:
            raise RuntimeError("ExchangeRateService has been disposed")
        if self.running:
            return
        self._inflight = self._scope.track(spawn(self.refresh(), name="exchange_rate.initial"))
        self._periodic = self._scope.track(
            call_every(self._settings.refresh_interval, self.refresh, name="exchange_rate.periodic")
        )
        self._log.info("rate_service_started", interval_secs=self._settings.refresh_interval)

    async def dispose(self) -> None:
        """Cancel every timer and in-flight refresh; close an owned HTTP client."""
        if self._disposed:
            return
        self._disposed = True
        self._periodic = None
        self._pending_retry = None
        self._inflight = None
        # Refreshes awaited directly by callers live outside the scope.
        current = asyncio.current_task()
        for task in list(self._refresh_tasks):
            if task is not current:
                task.cancel()
        await self._scope.cancel_all()
        await self._rate_client.aclose()
        self.state.is_refreshing = False
        self._log.info("rate_service_disposed")
