"""Session wiring — build the core services from Settings and tear them down together."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from src.core.config import Settings
from src.core.logging import bind_session, clear_session
from src.data.gateway import DataGateway, LatestRequestGate
from src.network.connectivity import ConnectivityMonitor, ConnectivitySource, ManualConnectivitySource
from src.rates.service import ExchangeRateService
from src.resilience.models import RetryPolicy
from src.resilience.retry import RetryExecutor
from src.resilience.tracker import ErrorTracker
from src.stats.aggregator import AggregateResult, aggregate

logger = structlog.get_logger(__name__)


class CoreSession:
    """Everything one signed-in session needs, with one ``start``/``close``.

    The host creates this on sign-in and closes it on sign-out; closing
    cancels every timer and in-flight request the session owns.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        source: ConnectivitySource | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.session_id = uuid.uuid4().hex[:12]
        include_details = bool(settings.app.show_developer_details)

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(headers={"Accept": "application/json"})

        self.monitor = ConnectivityMonitor(
            source or ManualConnectivitySource(settings.connectivity.initially_online),
            settings.connectivity,
            client=self._client,
        )
        self.executor = RetryExecutor(
            RetryPolicy.from_settings(settings.retry),
            monitor=self.monitor,
            include_details=include_details,
        )
        self.rates = ExchangeRateService(
            settings.rates, executor=self.executor, client=self._client
        )
        self.gateway = DataGateway(self.executor)
        self.latest = LatestRequestGate()
        self.errors = ErrorTracker(
            history_size=settings.app.error_history_size, include_details=include_details
        )

    def start(self) -> None:
        bind_session(self.session_id)
        self.monitor.init()
        self.rates.start()
        logger.info("session_started", env=self.settings.app.env.value)

    async def close(self) -> None:
        await self.latest.cancel_all()
        await self.rates.dispose()
        self.monitor.dispose()
        if self._owns_client:
            await self._client.aclose()
        logger.info("session_closed")
        clear_session()

    def statistics(self, items: Iterable[Any], **kwargs: Any) -> AggregateResult:
        """Aggregate ``items`` at the current rate, default rate as fallback."""
        cfg = self.settings.rates
        return aggregate(
            items,
            self.rates.rate,
            cfg.default_rate,
            home_currency=cfg.quote_currency,
            rate_currency=cfg.base_currency,
            **kwargs,
        )
