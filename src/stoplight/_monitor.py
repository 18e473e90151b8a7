"""Connectivity monitor port and adapters.

Provides ConnectivityMonitor (Protocol) and four implementations:

- LiveMonitor — polls real network reachability with an async probe
- FixedMonitor — pins the signal to "satisfied" or "unsatisfied"
- ControllableMonitor — test double driven by ``push()``
- NullMonitor — silent adapter that never emits

Design decisions:

- One subscriber per monitor instance.  A second ``subscribe()`` while
  the first subscription is active raises :class:`SubscriptionError`.
- ``Subscription.unsubscribe()`` releases backend resources (the live
  polling task) and ignores redundant calls.
- Backend failures never raise into the subscriber.  They are reported
  through the optional ``on_error`` callback as a
  :class:`~stoplight._errors.MonitorFailure` and produce no event.
- Subscriber exceptions are logged and dropped so a faulty consumer
  cannot break the backend.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable

from stoplight._errors import (
    MonitorErrorCallback,
    SubscriptionError,
    build_monitor_failure,
    report_failure,
)

if TYPE_CHECKING:
    from stoplight._settings import ConnectivitySettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Events and type aliases
# ---------------------------------------------------------------------------


class ConnectivityEvent(StrEnum):
    """Reachability change reported by a monitor."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

    @classmethod
    def from_reachable(cls, reachable: bool) -> ConnectivityEvent:
        """Map a boolean reachability result to an event."""
        return cls.CONNECTED if reachable else cls.DISCONNECTED


EventCallback = Callable[[ConnectivityEvent], None]
"""Callback receiving each connectivity event."""

Probe = Callable[[], Awaitable[bool]]
"""Async callable returning True when the network is reachable."""


# ---------------------------------------------------------------------------
# Subscription handle
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by :meth:`ConnectivityMonitor.subscribe`."""

    def __init__(self, release: Callable[[], None], *, monitor: str) -> None:
        self._release = release
        self._monitor = monitor
        self._active = True

    @property
    def active(self) -> bool:
        """True until :meth:`unsubscribe` is called."""
        return self._active

    def unsubscribe(self) -> None:
        """Release the subscription.  Redundant calls are ignored."""
        if not self._active:
            logger.debug("Redundant unsubscribe from %s monitor ignored", self._monitor)
            return
        self._active = False
        self._release()


# ---------------------------------------------------------------------------
# Port (Protocol)
# ---------------------------------------------------------------------------


@runtime_checkable
class ConnectivityMonitor(Protocol):
    """Port contract for a subscribable connectivity signal.

    All reachability input goes through this protocol so backends are
    swappable without touching the machine.
    """

    def subscribe(
        self,
        on_event: EventCallback,
        *,
        on_error: MonitorErrorCallback | None = None,
    ) -> Subscription: ...


# ---------------------------------------------------------------------------
# Shared single-subscriber plumbing
# ---------------------------------------------------------------------------


class _SingleSubscriberMonitor:
    """Bookkeeping shared by the bundled adapters."""

    name = "monitor"

    def __init__(self) -> None:
        self._on_event: EventCallback | None = None
        self._on_error: MonitorErrorCallback | None = None
        self._subscription: Subscription | None = None

    @property
    def subscribed(self) -> bool:
        """True while a subscriber is attached."""
        return self._subscription is not None and self._subscription.active

    def _attach(
        self,
        on_event: EventCallback,
        on_error: MonitorErrorCallback | None,
    ) -> Subscription:
        if self.subscribed:
            msg = f"{self.name} monitor already has an active subscriber"
            raise SubscriptionError(msg)
        self._on_event = on_event
        self._on_error = on_error
        self._subscription = Subscription(self._detach, monitor=self.name)
        return self._subscription

    def _detach(self) -> None:
        self._on_event = None
        self._on_error = None
        self._subscription = None
        self._on_release()

    def _on_release(self) -> None:
        """Hook for adapters that hold backend resources."""

    def _emit(self, event: ConnectivityEvent) -> None:
        callback = self._on_event
        if callback is None:
            return
        try:
            callback(event)
        except Exception:
            logger.exception("Error in connectivity callback (%s monitor)", self.name)

    def _fail(self, error: BaseException) -> None:
        report_failure(self._on_error, build_monitor_failure(error, monitor=self.name))


# ---------------------------------------------------------------------------
# Null adapter
# ---------------------------------------------------------------------------


class NullMonitor(_SingleSubscriberMonitor):
    """Monitor that never emits.  The machine keeps its default direction."""

    name = "null"

    def subscribe(
        self,
        on_event: EventCallback,
        *,
        on_error: MonitorErrorCallback | None = None,
    ) -> Subscription:
        """Attach a subscriber that will never be called."""
        return self._attach(on_event, on_error)


# ---------------------------------------------------------------------------
# Fixed adapter
# ---------------------------------------------------------------------------


class FixedMonitor(_SingleSubscriberMonitor):
    """Monitor pinned to a steady state.

    Reports its state once, synchronously, when subscribed and never
    again.  Use :meth:`satisfied` / :meth:`unsatisfied` to pin a run to
    "internet always on" / "always off".
    """

    def __init__(self, event: ConnectivityEvent) -> None:
        super().__init__()
        self.event = ConnectivityEvent(event)
        self.name = f"fixed-{self.event}"

    @classmethod
    def satisfied(cls) -> Self:
        """Monitor that always reports :attr:`ConnectivityEvent.CONNECTED`."""
        return cls(ConnectivityEvent.CONNECTED)

    @classmethod
    def unsatisfied(cls) -> Self:
        """Monitor that always reports :attr:`ConnectivityEvent.DISCONNECTED`."""
        return cls(ConnectivityEvent.DISCONNECTED)

    def subscribe(
        self,
        on_event: EventCallback,
        *,
        on_error: MonitorErrorCallback | None = None,
    ) -> Subscription:
        """Attach the subscriber and report the steady state."""
        subscription = self._attach(on_event, on_error)
        self._emit(self.event)
        return subscription

    def __repr__(self) -> str:
        return f"FixedMonitor({self.event.value!r})"


# ---------------------------------------------------------------------------
# Controllable / test-double adapter
# ---------------------------------------------------------------------------


class ControllableMonitor(_SingleSubscriberMonitor):
    """Manually driven monitor that replays its latest value.

    Events pushed with :meth:`push` are delivered synchronously to the
    current subscriber.  The most recent event (or *initial*) is
    replayed to a new subscriber, so a monitor created with
    ``ControllableMonitor(ConnectivityEvent.DISCONNECTED)`` behaves like
    a network that is already down when the machine starts.
    """

    name = "controllable"

    def __init__(self, initial: ConnectivityEvent | None = None) -> None:
        super().__init__()
        self._latest = ConnectivityEvent(initial) if initial is not None else None
        self.history: list[ConnectivityEvent] = []

    @property
    def latest(self) -> ConnectivityEvent | None:
        """Most recent event, replayed to new subscribers."""
        return self._latest

    def subscribe(
        self,
        on_event: EventCallback,
        *,
        on_error: MonitorErrorCallback | None = None,
    ) -> Subscription:
        """Attach the subscriber and replay the latest event, if any."""
        subscription = self._attach(on_event, on_error)
        if self._latest is not None:
            self._emit(self._latest)
        return subscription

    # -- Test helpers -------------------------------------------------------

    def push(self, event: ConnectivityEvent) -> None:
        """Record *event* and deliver it to the subscriber, if any."""
        event = ConnectivityEvent(event)
        self._latest = event
        self.history.append(event)
        self._emit(event)

    def satisfied(self) -> None:
        """Push :attr:`ConnectivityEvent.CONNECTED`."""
        self.push(ConnectivityEvent.CONNECTED)

    def unsatisfied(self) -> None:
        """Push :attr:`ConnectivityEvent.DISCONNECTED`."""
        self.push(ConnectivityEvent.DISCONNECTED)

    def fail(self, error: BaseException) -> None:
        """Simulate a backend failure (reported via ``on_error``)."""
        self._fail(error)


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


async def tcp_probe(host: str, port: int, *, timeout: float = 2.0) -> bool:
    """Return True when a TCP connection to *host*:*port* succeeds.

    Connection errors and timeouts mean "unreachable".  Anything else
    propagates to the caller as a backend failure.
    """
    try:
        async with asyncio.timeout(timeout):
            _reader, writer = await asyncio.open_connection(host, port)
    except (TimeoutError, OSError):
        return False
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return True


class LiveMonitor(_SingleSubscriberMonitor):
    """Production monitor polling real reachability.

    On subscribe a background task probes immediately and reports the
    result, then re-probes every *interval* seconds and reports only
    changes.  Unsubscribing cancels the task.

    Probe exceptions other than connection errors are backend failures:
    they are reported via ``on_error``, produce no event, and polling
    continues.

    Must be subscribed from within a running event loop.
    """

    name = "live"

    def __init__(
        self,
        *,
        probe: Probe | None = None,
        interval: float = 5.0,
        host: str = "1.1.1.1",
        port: int = 53,
        timeout: float = 2.0,
    ) -> None:
        super().__init__()
        if interval <= 0:
            msg = f"interval must be positive, got {interval}"
            raise ValueError(msg)
        self._probe: Probe = (
            probe
            if probe is not None
            else functools.partial(tcp_probe, host, port, timeout=timeout)
        )
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._last: ConnectivityEvent | None = None

    @classmethod
    def from_settings(
        cls,
        settings: ConnectivitySettings,
        *,
        probe: Probe | None = None,
    ) -> Self:
        """Build a monitor from :class:`ConnectivitySettings`."""
        return cls(
            probe=probe,
            interval=settings.probe_interval,
            host=settings.probe_host,
            port=settings.probe_port,
            timeout=settings.probe_timeout,
        )

    @property
    def last_event(self) -> ConnectivityEvent | None:
        """Most recent reachability reported to the subscriber."""
        return self._last

    def subscribe(
        self,
        on_event: EventCallback,
        *,
        on_error: MonitorErrorCallback | None = None,
    ) -> Subscription:
        """Attach the subscriber and start the polling task.

        Raises:
            RuntimeError: If called outside a running event loop.
            SubscriptionError: If already subscribed.
        """
        loop = asyncio.get_running_loop()
        subscription = self._attach(on_event, on_error)
        self._last = None
        self._task = loop.create_task(self._poll_loop())
        return subscription

    def _on_release(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def poll_once(self) -> ConnectivityEvent | None:
        """Probe once and report a change.

        Returns:
            The probed event, or None when the probe failed.
        """
        try:
            reachable = await self._probe()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(exc)
            return None

        event = ConnectivityEvent.from_reachable(reachable)
        if event != self._last:
            self._last = event
            logger.info("Network reachability changed: %s", event)
            self._emit(event)
        return event

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._interval)
