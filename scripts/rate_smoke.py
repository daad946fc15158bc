"""Smoke test: config → connectivity probe → rate refresh → aggregate → exit cleanly."""

from __future__ import annotations

import asyncio
import sys

import structlog

from src.app import CoreSession
from src.core import load_settings, setup_logging

log = structlog.get_logger()

SAMPLE = [
    {"id": 1, "name": "Netflix", "price": 17000, "currency": "KRW"},
    {"id": 2, "name": "ChatGPT", "price": 20, "currency": "USD"},
    {"id": 3, "name": "Spotify", "price": 10.99, "currency": "EUR"},
    {"id": 4, "name": "Broken", "price": float("nan"), "currency": "USD"},
]


async def run() -> int:
    setup_logging()
    log.info("smoke_test_start")

    cfg = load_settings()
    log.info("config_loaded", env=cfg.app.env.value, endpoints=len(cfg.rates.endpoints))

    session = CoreSession(cfg)
    try:
        session.monitor.init()
        online = await session.monitor.test_connectivity()
        log.info("probe_done", online=online)

        state = await session.rates.refresh()
        log.info(
            "rate_ok" if state.last_error is None else "rate_fallback",
            rate=state.rate,
            status=session.rates.status().value,
            error=state.last_error.message if state.last_error else None,
        )

        stats = session.statistics(SAMPLE)
        log.info(
            "stats_ok",
            total=stats.total_formatted,
            average=stats.average_formatted,
            failed=stats.failed_item_count,
        )
    finally:
        await session.close()

    log.info("smoke_test_pass")
    return 0


def main() -> int:
    return asyncio.run(run())


if __name__ == "__main__":
    sys.exit(main())
