"""Consumer-facing session around one traffic-light machine.

A view layer (or the CLI) talks to the controller only through a
:class:`TrafficLightSession`: it reads :class:`SessionSnapshot`
projections and calls one of the two control entry points.

- :meth:`TrafficLightSession.request_simulated_toggle` pins the
  connectivity signal to the opposite of the current direction.
- :meth:`TrafficLightSession.request_real_connectivity` goes back to
  the live monitor.

Both calls rebind the running machine to the new monitor and, once
that succeeds, store it in the registry.  Listeners hear about every
change to the projection, including the real-connectivity flag.  A bare
``registry.set()`` from elsewhere only affects the next machine start.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Self

from stoplight._clock import ClockPort
from stoplight._machine import (
    DEFAULT_TIMINGS,
    LightSnapshot,
    LightState,
    LightTimings,
    TrafficLightMachine,
)
from stoplight._monitor import ConnectivityMonitor, FixedMonitor, LiveMonitor
from stoplight._registry import DependencyRegistry

logger = logging.getLogger(__name__)

SIMULATE_CONNECTED = "Simulate Internet Connected"
SIMULATE_DISCONNECTED = "Simulate Internet Disconnected"

MonitorFactory = Callable[[], ConnectivityMonitor]
"""Zero-argument factory returning a fresh monitor."""


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Everything a view needs to render the controller."""

    light: LightState
    reversed: bool
    using_real_connectivity: bool

    @property
    def toggle_label(self) -> str:
        """Caption for the simulate-connectivity control."""
        return SIMULATE_CONNECTED if self.reversed else SIMULATE_DISCONNECTED

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dictionary."""
        return {
            "light": self.light.value,
            "reversed": self.reversed,
            "using_real_connectivity": self.using_real_connectivity,
            "toggle_label": self.toggle_label,
        }


SessionListener = Callable[[SessionSnapshot], None]


class TrafficLightSession:
    """Owns a running machine and exposes its read/write surface.

    Args:
        clock: Clock driving the machine's timers.
        registry: Injection context; its current monitor is used at start.
        live_monitor_factory: Builds the monitor installed by
            :meth:`request_real_connectivity`.  Defaults to
            :class:`LiveMonitor` with default probe settings.
        timings: Light durations.
        name: Machine name used in log messages.
    """

    def __init__(
        self,
        *,
        clock: ClockPort,
        registry: DependencyRegistry,
        live_monitor_factory: MonitorFactory | None = None,
        timings: LightTimings = DEFAULT_TIMINGS,
        name: str = "stoplight",
    ) -> None:
        self._registry = registry
        self._live_monitor_factory: MonitorFactory = (
            live_monitor_factory if live_monitor_factory is not None else LiveMonitor
        )
        self._using_real_connectivity = True
        self._listeners: list[SessionListener] = []
        self._machine = TrafficLightMachine(
            clock=clock,
            registry=registry,
            timings=timings,
            name=name,
        )
        self._machine.add_listener(self._forward)
        self._published = self.snapshot

    # -- Read side ----------------------------------------------------------

    @property
    def machine(self) -> TrafficLightMachine:
        """The underlying machine."""
        return self._machine

    @property
    def using_real_connectivity(self) -> bool:
        """False after a simulated toggle, until real connectivity is re-armed."""
        return self._using_real_connectivity

    @property
    def snapshot(self) -> SessionSnapshot:
        """Current projection for the view layer."""
        return self._project(self._machine.snapshot)

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Call *listener* with a new snapshot on every change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _project(self, snapshot: LightSnapshot) -> SessionSnapshot:
        return SessionSnapshot(
            light=snapshot.light,
            reversed=snapshot.reversed,
            using_real_connectivity=self._using_real_connectivity,
        )

    def _forward(self, snapshot: LightSnapshot) -> None:
        projected = self._project(snapshot)
        self._published = projected
        for listener in list(self._listeners):
            try:
                listener(projected)
            except Exception:
                logger.exception("Error in session listener")

    # -- Write side ---------------------------------------------------------

    def request_simulated_toggle(self) -> None:
        """Pin connectivity to the opposite of the current direction.

        Reversed (network down) becomes a satisfied monitor and vice
        versa.  The light and its countdown are left alone.
        """
        monitor = (
            FixedMonitor.satisfied()
            if self._machine.reversed
            else FixedMonitor.unsatisfied()
        )
        logger.info("Simulating connectivity with %r", monitor)
        self._install(monitor, real=False)

    def request_real_connectivity(self) -> None:
        """Go back to the live monitor.

        Raises:
            RuntimeError: If the live monitor cannot be subscribed (e.g.
                a :class:`LiveMonitor` outside a running event loop).
                The session keeps its previous monitor and flag.
        """
        monitor = self._live_monitor_factory()
        logger.info("Using real connectivity (%r)", monitor)
        self._install(monitor, real=True)

    def _install(self, monitor: ConnectivityMonitor, *, real: bool) -> None:
        # Snapshots emitted during the rebind carry the new flag.
        previous = self._using_real_connectivity
        self._using_real_connectivity = real
        if self._machine.running:
            try:
                self._machine.attach_monitor(monitor)
            except Exception:
                self._using_real_connectivity = previous
                raise
        self._registry.set(monitor)
        if self.snapshot != self._published:
            self._forward(self._machine.snapshot)

    # -- Lifecycle ----------------------------------------------------------

    def stop(self) -> None:
        """Stop the machine.  Idempotent."""
        self._machine.stop()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
