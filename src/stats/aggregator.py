"""Statistics aggregator — fault-isolated totals over subscription records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

from src.stats.formatting import format_amount, is_valid_number, is_valid_rate

logger = structlog.get_logger(__name__)

INVALID_PRICE = "invalid price"
INVALID_CURRENCY = "invalid currency"
CONVERSION_FAILED = "conversion failed"


# ── Result types ──────────────────────────────────────────────────────


class CurrencyBreakdown(BaseModel):
    """Raw (unconverted) count and sum for one currency."""

    model_config = ConfigDict(frozen=True)

    count: int
    raw_total: float


class FailedItem(BaseModel):
    """Structured record of a single item excluded from the total."""

    model_config = ConfigDict(frozen=True)

    item_id: str | int | None
    reason: str
    name: str | None = None


class AggregateResult(BaseModel):
    """Dashboard totals.  Built once; never mutated."""

    model_config = ConfigDict(frozen=True)

    total: float
    average: float
    item_count: int
    active_item_count: int
    per_currency_breakdown: dict[str, CurrencyBreakdown]
    failed_item_count: int
    failed_items: tuple[FailedItem, ...]
    rate_used: float | None = None

    @property
    def has_errors(self) -> bool:
        return self.failed_item_count > 0

    @property
    def total_formatted(self) -> str:
        return format_amount(self.total)

    @property
    def average_formatted(self) -> str:
        return format_amount(self.average)


# ── Internals ────────────────────────────────────────────────────────


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _effective_rate(current_rate: Any, fallback_rate: Any) -> float | None:
    """``current_rate`` if valid, else ``fallback_rate`` if valid, else None."""
    if is_valid_rate(current_rate):
        return float(current_rate)
    if is_valid_rate(fallback_rate):
        logger.warning("stats_rate_fallback", current_rate=repr(current_rate), fallback=fallback_rate)
        return float(fallback_rate)
    logger.error(
        "stats_no_valid_rate", current_rate=repr(current_rate), fallback=repr(fallback_rate)
    )
    return None


def _convert(
    price: float,
    currency: str,
    rate: float | None,
    *,
    home_currency: str,
    rate_currency: str,
    cross_rates: Mapping[str, float],
) -> float | None:
    """Price in the home currency, or None when it cannot be converted."""
    if currency == home_currency:
        return float(price)
    if rate is None:
        return None
    if currency == rate_currency:
        converted = price * rate
    else:
        factor = cross_rates.get(currency)
        if not is_valid_rate(factor):
            return None
        converted = price * factor * rate
    return converted if is_valid_number(converted) else None


# ── Aggregation ───────────────────────────────────────────────────────


def aggregate(
    items: Iterable[Any],
    current_rate: Any,
    fallback_rate: Any,
    *,
    home_currency: str = "KRW",
    rate_currency: str = "USD",
    cross_rates: Mapping[str, float] | None = None,
) -> AggregateResult:
    """Total subscription prices in ``home_currency``, isolating bad records.

    Fault isolation: an item with a bad price, a missing currency, or a failed
    conversion is listed in ``failed_items`` and contributes nothing to
    ``total``.  It never aborts the batch.

    Args:
        items:          Mappings or objects with ``id``, ``name``, ``price``,
                        ``currency`` and optional ``is_active``.
        current_rate:   Units of ``home_currency`` per unit of ``rate_currency``.
        fallback_rate:  Used when ``current_rate`` is not a positive finite number.
        home_currency:  Currency of the total.
        rate_currency:  Currency ``current_rate`` converts from.
        cross_rates:    Optional ``{currency: units of rate_currency}`` for
                        other currencies.  Without a factor they fail conversion.

    Returns:
        AggregateResult.  Pure: identical inputs give equal results and the
        inputs are not modified.
    """
    records = list(items)
    cross_rates = cross_rates or {}
    home_currency = home_currency.upper()
    rate_currency = rate_currency.upper()

    rate = _effective_rate(current_rate, fallback_rate)

    total = 0.0
    active_count = 0
    raw_counts: dict[str, int] = {}
    raw_totals: dict[str, float] = {}
    failures: list[FailedItem] = []

    for item in records:
        if _field(item, "is_active") is False:
            continue
        active_count += 1

        item_id = _field(item, "id")
        name = _field(item, "name")
        price = _field(item, "price")
        currency = _field(item, "currency")

        if not is_valid_number(price) or price < 0:
            failures.append(FailedItem(item_id=item_id, reason=INVALID_PRICE, name=name))
            continue
        if not isinstance(currency, str) or not currency.strip():
            failures.append(FailedItem(item_id=item_id, reason=INVALID_CURRENCY, name=name))
            continue

        code = currency.strip().upper()
        # Breakdown counts every valid price, converted or not.
        raw_counts[code] = raw_counts.get(code, 0) + 1
        raw_totals[code] = raw_totals.get(code, 0.0) + price

        converted = _convert(
            price,
            code,
            rate,
            home_currency=home_currency,
            rate_currency=rate_currency,
            cross_rates=cross_rates,
        )
        if converted is None:
            failures.append(FailedItem(item_id=item_id, reason=CONVERSION_FAILED, name=name))
            continue
        total += converted

    if not is_valid_number(total):
        # Every addend was finite; only overflow can get here.
        logger.error("stats_total_overflow", active=active_count)
        total = 0.0

    average = total / active_count if active_count > 0 else 0.0

    if failures:
        logger.warning(
            "stats_items_excluded",
            failed=len(failures),
            reasons=sorted({f.reason for f in failures}),
        )

    return AggregateResult(
        total=total,
        average=average,
        item_count=len(records),
        active_item_count=active_count,
        per_currency_breakdown={
            code: CurrencyBreakdown(count=raw_counts[code], raw_total=raw_totals[code])
            for code in raw_counts
        },
        failed_item_count=len(failures),
        failed_items=tuple(failures),
        rate_used=rate,
    )
