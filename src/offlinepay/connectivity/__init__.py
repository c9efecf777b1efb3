from .monitor import (
    ConnectivityChange,
    ConnectivityListener,
    ConnectivityMonitor,
    ConnectivityState,
    LinkQuality,
)
from .probe import HttpConnectivityProbe

__all__ = [
    "ConnectivityChange",
    "ConnectivityListener",
    "ConnectivityMonitor",
    "ConnectivityState",
    "HttpConnectivityProbe",
    "LinkQuality",
]
