"""Rates — exchange-rate endpoints with fallback, and the session rate service."""

from src.rates.client import RateClient, parse_rate
from src.rates.service import ExchangeRateService, RateState, RateStatus

__all__ = [
    "ExchangeRateService",
    "RateClient",
    "RateState",
    "RateStatus",
    "parse_rate",
]
