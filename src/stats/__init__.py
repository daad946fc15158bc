"""Stats — fault-isolated aggregation and display formatting."""

from src.stats.aggregator import (
    AggregateResult,
    CurrencyBreakdown,
    FailedItem,
    aggregate,
)
from src.stats.formatting import (
    CALCULATION_ERROR,
    format_amount,
    format_currency,
    is_valid_number,
    is_valid_rate,
)

__all__ = [
    "AggregateResult",
    "CALCULATION_ERROR",
    "CurrencyBreakdown",
    "FailedItem",
    "aggregate",
    "format_amount",
    "format_currency",
    "is_valid_number",
    "is_valid_rate",
]
