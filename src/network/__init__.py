"""Network — connectivity monitoring."""

from src.network.connectivity import (
    ConnectivityMonitor,
    ConnectivitySource,
    ListenerHandle,
    ManualConnectivitySource,
)

__all__ = [
    "ConnectivityMonitor",
    "ConnectivitySource",
    "ListenerHandle",
    "ManualConnectivitySource",
]
