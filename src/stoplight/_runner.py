"""Async lifecycle for running the controller as a process.

:func:`run_controller` is the composition root: it resolves settings,
configures logging, builds the clock and dependency registry, starts a
:class:`~stoplight._session.TrafficLightSession`, and blocks until
shutdown.  :func:`run` is the blocking wrapper used by the CLI.

Orchestration order:

1. Bootstrap (settings, logging, clock, registry).
2. Start the session and log every snapshot change.
3. Block until the shutdown event is set (SIGTERM / SIGINT, or
   *duration* elapsed).
4. Stop the session (cancel timer, release monitor) and remove the
   signal handlers and *duration* timer.

Parameters are provided for testability — inject a
:class:`~stoplight.testing.FakeClock`, a registry holding a
controllable monitor, and a manual :class:`asyncio.Event` to avoid real
time and real networking in tests.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import signal

from stoplight._clock import ClockPort, SystemClock
from stoplight._logging import configure_logging
from stoplight._monitor import LiveMonitor
from stoplight._registry import DependencyRegistry
from stoplight._session import MonitorFactory, SessionSnapshot, TrafficLightSession
from stoplight._settings import Settings

logger = logging.getLogger(__name__)


_SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def _install_signal_handlers(shutdown_event: asyncio.Event | None) -> asyncio.Event:
    """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
    if shutdown_event is not None:
        return shutdown_event
    event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in _SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, event.set)
    return event


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in _SHUTDOWN_SIGNALS:
        loop.remove_signal_handler(sig)


def _log_snapshot(snapshot: SessionSnapshot) -> None:
    logger.info(
        "Light %s (reversed=%s, real connectivity=%s)",
        snapshot.light,
        snapshot.reversed,
        snapshot.using_real_connectivity,
        extra={"light": snapshot.light.value, "reversed": snapshot.reversed},
    )


async def run_controller(
    settings: Settings | None = None,
    *,
    shutdown_event: asyncio.Event | None = None,
    clock: ClockPort | None = None,
    registry: DependencyRegistry | None = None,
    live_monitor_factory: MonitorFactory | None = None,
    duration: float | None = None,
    name: str = "stoplight",
    version: str = "",
) -> SessionSnapshot:
    """Run one traffic light until shutdown.

    Args:
        settings: Override settings (skip env loading).
        shutdown_event: Override shutdown event (skip signal handlers).
        clock: Override clock (e.g. ``FakeClock`` for tests).
        registry: Override the dependency registry.  Defaults to one
            holding a live monitor built from ``settings.connectivity``.
        live_monitor_factory: Factory used when the session re-arms
            real connectivity.  Defaults to a live monitor from settings.
        duration: Stop automatically after this many seconds.
        name: Service name for logs.
        version: Service version for logs.

    Returns:
        The last snapshot before the session stopped.
    """
    # --- Phase 1: Bootstrap ---
    resolved_settings = settings if settings is not None else Settings()
    configure_logging(resolved_settings.logging, service=name, version=version)

    resolved_clock = clock if clock is not None else SystemClock()
    live_factory: MonitorFactory = (
        live_monitor_factory
        if live_monitor_factory is not None
        else functools.partial(LiveMonitor.from_settings, resolved_settings.connectivity)
    )
    resolved_registry = (
        registry if registry is not None else DependencyRegistry(live_factory())
    )
    owns_signals = shutdown_event is None
    shutdown_event = _install_signal_handlers(shutdown_event)
    deadline = (
        asyncio.get_running_loop().call_later(duration, shutdown_event.set)
        if duration is not None
        else None
    )

    # --- Phase 2: Start ---
    session = TrafficLightSession(
        clock=resolved_clock,
        registry=resolved_registry,
        live_monitor_factory=live_factory,
        timings=resolved_settings.timings.to_timings(),
        name=name,
    )
    remove_listener = session.add_listener(_log_snapshot)
    _log_snapshot(session.snapshot)

    # --- Phase 3: Run / Phase 4: Tear down ---
    try:
        await shutdown_event.wait()
    finally:
        if deadline is not None:
            deadline.cancel()
        if owns_signals:
            _remove_signal_handlers()
        remove_listener()
        final = session.snapshot
        session.stop()

    logger.info("Shutdown complete")
    return final


def run(
    settings: Settings | None = None,
    *,
    shutdown_event: asyncio.Event | None = None,
    clock: ClockPort | None = None,
    registry: DependencyRegistry | None = None,
    duration: float | None = None,
    name: str = "stoplight",
    version: str = "",
) -> None:
    """Run the controller (blocking, synchronous entrypoint).

    Wraps :func:`run_controller` in :func:`asyncio.run`, handling
    ``KeyboardInterrupt`` for clean Ctrl-C shutdown.
    """
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(
            run_controller(
                settings,
                shutdown_event=shutdown_event,
                clock=clock,
                registry=registry,
                duration=duration,
                name=name,
                version=version,
            ),
        )
