"""Online/offline state tracking with change notifications.

The host platform (or :class:`~offlinepay.connectivity.probe.HttpConnectivityProbe`)
pushes observations through :meth:`ConnectivityMonitor.update`; subscribers
receive one :class:`ConnectivityChange` per observed transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkQuality:
    """Optional link hints; ``None`` when the platform does not report them."""

    effective_type: str | None = None
    downlink_mbps: float | None = None
    rtt_ms: float | None = None


@dataclass(frozen=True)
class ConnectivityState:
    is_online: bool
    link: LinkQuality = field(default_factory=LinkQuality)


@dataclass(frozen=True)
class ConnectivityChange:
    previous: ConnectivityState
    current: ConnectivityState

    @property
    def became_online(self) -> bool:
        return self.current.is_online and not self.previous.is_online

    @property
    def went_offline(self) -> bool:
        return self.previous.is_online and not self.current.is_online


ConnectivityListener = Callable[[ConnectivityChange], None]


class ConnectivityMonitor:
    """Holds the current connectivity state; holds no transfer data."""

    def __init__(self, *, initial_online: bool = False) -> None:
        self._state = ConnectivityState(is_online=initial_online)
        self._listeners: list[ConnectivityListener] = []

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update(
        self,
        is_online: bool,
        *,
        effective_type: str | None = None,
        downlink_mbps: float | None = None,
        rtt_ms: float | None = None,
    ) -> ConnectivityChange | None:
        """Record a new observation and notify listeners if anything changed."""
        current = ConnectivityState(
            is_online=is_online,
            link=LinkQuality(
                effective_type=effective_type,
                downlink_mbps=downlink_mbps,
                rtt_ms=rtt_ms,
            ),
        )
        if current == self._state:
            return None

        change = ConnectivityChange(previous=self._state, current=current)
        self._state = current
        if change.became_online or change.went_offline:
            logger.info(
                "Network %s",
                "online" if is_online else "offline",
                extra={"is_online": is_online},
            )

        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)
        return change


__all__ = [
    "ConnectivityChange",
    "ConnectivityListener",
    "ConnectivityMonitor",
    "ConnectivityState",
    "LinkQuality",
]
