"""Connectivity monitor.

Tracks whether the backend is reachable and notifies listeners on
online/offline transitions. Transitions come from two sources:
- set_online(), for state observed elsewhere (OS events, failed requests)
- an optional probe thread polling a health check every probe_interval
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Online/offline state with transition listeners.

    Usage:
        monitor = ConnectivityMonitor(probe=client.health_check, probe_interval=5.0)
        monitor.add_listener(lambda online: print("online" if online else "offline"))
        monitor.start()
    """

    def __init__(
        self,
        online: bool = True,
        probe: Callable[[], bool] | None = None,
        probe_interval: float = 0.0,
    ) -> None:
        """Initialize the monitor.

        Args:
            online: Initial state
            probe: Health check returning True when the backend is reachable
            probe_interval: Seconds between probes (0 = never probe)
        """
        self._online = online
        self._probe = probe
        self._probe_interval = probe_interval
        self._lock = threading.Lock()
        self._listeners: list[ConnectivityListener] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_online(self) -> bool:
        """Current reachability state."""
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Call listener(is_online) on every transition."""
        self._listeners.append(listener)

    def set_online(self, online: bool) -> bool:
        """Record the current state.

        Returns:
            True if this was a transition
        """
        with self._lock:
            if online == self._online:
                return False
            self._online = online

        logger.info("Connectivity %s", "restored" if online else "lost")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Error in connectivity listener")
        return True

    def check(self) -> bool:
        """Run the probe once and record the result."""
        if self._probe is None:
            return self._online
        try:
            reachable = bool(self._probe())
        except Exception:
            logger.debug("Connectivity probe raised", exc_info=True)
            reachable = False
        self.set_online(reachable)
        return reachable

    def start(self) -> None:
        """Start the probe thread (no-op without a probe)."""
        if self._probe is None or self._probe_interval <= 0:
            return
        if self._thread and self._thread.is_alive():
            logger.warning("ConnectivityMonitor already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="ConnectivityMonitor",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Connectivity probing every %.1fs", self._probe_interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the probe thread."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._probe_interval):
            self.check()
