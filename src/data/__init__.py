"""Data — retrying, classifying gateway around remote store calls."""

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

__all__ = [
    "AUTH_POLICY",
    "DELETE_POLICY",
    "DataGateway",
    "DataResult",
    "LatestRequestGate",
    "READ_POLICY",
    "WRITE_POLICY",
    "unwrap",
]
