"""Dependency registry — the injection point for the connectivity monitor.

A :class:`DependencyRegistry` is an explicit context object handed to
the machine (and session) at construction.  It holds the monitor that
the *next* machine start will subscribe to.  Replacing the monitor does
not reach into a machine that is already running: the machine keeps the
instance it captured at start.

Each access is a single atomic read or replace under a lock, so
``get()`` and ``set()`` may be called from any thread.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING, Self

from stoplight._monitor import ConnectivityMonitor, LiveMonitor, NullMonitor, Probe

if TYPE_CHECKING:
    from stoplight._settings import ConnectivitySettings

logger = logging.getLogger(__name__)


class DependencyRegistry:
    """Mutable slot holding the active :class:`ConnectivityMonitor`.

    Usage::

        registry = DependencyRegistry(FixedMonitor.unsatisfied())
        machine = TrafficLightMachine(clock=clock, registry=registry)

        with registry.override(ControllableMonitor()):
            ...  # machines started here use the controllable monitor
    """

    def __init__(self, monitor: ConnectivityMonitor | None = None) -> None:
        self._monitor: ConnectivityMonitor = (
            monitor if monitor is not None else NullMonitor()
        )
        self._lock = threading.Lock()

    @classmethod
    def live(
        cls,
        settings: ConnectivitySettings,
        *,
        probe: Probe | None = None,
    ) -> Self:
        """Registry pre-loaded with a :class:`LiveMonitor` from settings."""
        return cls(LiveMonitor.from_settings(settings, probe=probe))

    def get(self) -> ConnectivityMonitor:
        """Return the monitor the next machine start will use."""
        with self._lock:
            return self._monitor

    def set(self, monitor: ConnectivityMonitor) -> None:
        """Replace the monitor used by subsequent machine starts."""
        with self._lock:
            self._monitor = monitor
        logger.debug("Connectivity monitor set to %r", monitor)

    @property
    def monitor(self) -> ConnectivityMonitor:
        """Alias for :meth:`get`."""
        return self.get()

    @monitor.setter
    def monitor(self, monitor: ConnectivityMonitor) -> None:
        self.set(monitor)

    @contextlib.contextmanager
    def override(self, monitor: ConnectivityMonitor) -> Iterator[ConnectivityMonitor]:
        """Temporarily install *monitor*, restoring the previous one on exit."""
        with self._lock:
            previous = self._monitor
            self._monitor = monitor
        try:
            yield monitor
        finally:
            self.set(previous)
