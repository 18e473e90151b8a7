"""Traffic-light state machine — the controller core.

The machine cycles a light through ``green``, ``yellow`` and ``red`` on
fixed delays and runs the cycle backwards while the network is down.

Two independent inputs drive it:

* **Timer** — when the current light's delay elapses, the next light is
  looked up in :data:`TRANSITIONS` using the *current* direction.
* **Connectivity events** — ``disconnected`` sets ``reversed``,
  ``connected`` clears it.  An event never moves the light and never
  restarts the running countdown; it only changes the target of the
  next transition.

Transition table::

    from     delay   forward   reversed
    green    2.0 s   yellow    red
    yellow   2.0 s   red       green
    red      3.5 s   green     yellow

All state changes happen on the thread that started the machine.
Connectivity events arriving on any other thread are re-posted through
:meth:`ClockPort.post`.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType, TracebackType
from typing import Self

from stoplight._clock import ClockPort, TimerHandle
from stoplight._errors import MonitorFailure
from stoplight._monitor import ConnectivityEvent, ConnectivityMonitor, Subscription
from stoplight._registry import DependencyRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States, timings, transitions
# ---------------------------------------------------------------------------


class LightState(StrEnum):
    """The three mutually exclusive light positions."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True, slots=True)
class LightTimings:
    """Seconds each light stays on.  Fixed for the life of a machine."""

    green: float = 2.0
    yellow: float = 2.0
    red: float = 3.5

    def __post_init__(self) -> None:
        for state in LightState:
            delay = getattr(self, state.value)
            if delay <= 0:
                msg = f"{state.value} delay must be positive, got {delay}"
                raise ValueError(msg)

    def delay_for(self, state: LightState) -> float:
        """Return the delay of *state*."""
        return getattr(self, LightState(state).value)


DEFAULT_TIMINGS = LightTimings()

TRANSITIONS: Mapping[tuple[LightState, bool], LightState] = MappingProxyType(
    {
        (LightState.GREEN, False): LightState.YELLOW,
        (LightState.GREEN, True): LightState.RED,
        (LightState.YELLOW, False): LightState.RED,
        (LightState.YELLOW, True): LightState.GREEN,
        (LightState.RED, False): LightState.GREEN,
        (LightState.RED, True): LightState.YELLOW,
    }
)
"""``(state, reversed) -> next state``."""


def next_state(state: LightState, *, reversed: bool) -> LightState:  # noqa: A002
    """Look up the light that follows *state* in the given direction."""
    return TRANSITIONS[(LightState(state), reversed)]


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LightSnapshot:
    """Read-only view of the machine: current light and direction."""

    light: LightState
    reversed: bool

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dictionary."""
        return {"light": self.light.value, "reversed": self.reversed}


SnapshotListener = Callable[[LightSnapshot], None]
"""Callback receiving a fresh snapshot after every state change."""


# ---------------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------------


class TrafficLightMachine:
    """Timer- and connectivity-driven traffic light.

    Creating the machine starts it: it enters ``green`` with
    ``reversed=False``, subscribes to the monitor currently held by
    *registry*, and schedules the green timer.  It runs until
    :meth:`stop`.

    A monitor that reports synchronously on subscribe (e.g.
    :class:`~stoplight._monitor.FixedMonitor`) sets the direction before
    the first timer is scheduled.

    Usage::

        clock = FakeClock()
        registry = DependencyRegistry(FixedMonitor.unsatisfied())
        machine = TrafficLightMachine(clock=clock, registry=registry)
        clock.advance(2.0)
        assert machine.light is LightState.RED

    Raises:
        SubscriptionError: If the registry's monitor already has a
            subscriber.  The machine is left stopped.
    """

    def __init__(
        self,
        *,
        clock: ClockPort,
        registry: DependencyRegistry,
        timings: LightTimings = DEFAULT_TIMINGS,
        name: str = "stoplight",
    ) -> None:
        self._clock = clock
        self._registry = registry
        self._timings = timings
        self._name = name
        self._light = LightState.GREEN
        self._reversed = False
        self._listeners: list[SnapshotListener] = []
        self._timer: TimerHandle | None = None
        self._timer_seq = 0
        self._monitor: ConnectivityMonitor | None = None
        self._subscription: Subscription | None = None
        self._subscription_seq = 0
        self._last_failure: MonitorFailure | None = None
        self._owner_thread = threading.get_ident()
        self._running = True

        logger.info("Starting traffic light %r", name)
        try:
            self._subscribe(registry.get())
        except BaseException:
            self._running = False
            raise
        self._schedule()

    # -- Read-only properties -----------------------------------------------

    @property
    def name(self) -> str:
        """Machine name used in log messages."""
        return self._name

    @property
    def light(self) -> LightState:
        """Current light."""
        return self._light

    @property
    def reversed(self) -> bool:
        """True while the cycle runs backwards (network down)."""
        return self._reversed

    @property
    def snapshot(self) -> LightSnapshot:
        """Current projection of the machine."""
        return LightSnapshot(light=self._light, reversed=self._reversed)

    @property
    def running(self) -> bool:
        """False once :meth:`stop` has been called."""
        return self._running

    @property
    def timings(self) -> LightTimings:
        """Delays in effect for this machine."""
        return self._timings

    @property
    def monitor(self) -> ConnectivityMonitor | None:
        """Monitor the machine is currently subscribed to."""
        return self._monitor

    @property
    def last_failure(self) -> MonitorFailure | None:
        """Most recent backend failure reported by the monitor."""
        return self._last_failure

    # -- Listeners ----------------------------------------------------------

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call *listener* with a new snapshot on every state change.

        Returns:
            A callable that removes the listener.  Safe to call twice.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Error in snapshot listener for %r", self._name)

    # -- Monitor subscription -----------------------------------------------

    def _subscribe(self, monitor: ConnectivityMonitor) -> None:
        self._subscription_seq += 1
        seq = self._subscription_seq
        subscription = monitor.subscribe(
            functools.partial(self._on_event, seq),
            on_error=functools.partial(self._on_failure, seq),
        )
        self._monitor = monitor
        self._subscription = subscription
        logger.debug("%r subscribed to %r", self._name, monitor)

    def _release_subscription(self) -> None:
        # Bumping the sequence turns late callbacks from the old
        # subscription into no-ops.
        self._subscription_seq += 1
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._subscription = None
        self._monitor = None

    def attach_monitor(self, monitor: ConnectivityMonitor) -> None:
        """Replace the running subscription with one on *monitor*.

        The old subscription is released before the new one is opened,
        so at most one is active.  The light and its countdown are not
        touched.

        If *monitor* refuses the subscription, the machine goes back to
        the previous monitor and the error propagates.  When the
        previous monitor refuses as well, the machine is stopped.

        Raises:
            RuntimeError: If the machine is stopped, or if *monitor*
                cannot be subscribed (e.g. :class:`SubscriptionError`).
        """
        if not self._running:
            msg = f"Traffic light {self._name!r} is stopped"
            raise RuntimeError(msg)
        previous = self._monitor
        self._release_subscription()
        try:
            self._subscribe(monitor)
        except Exception:
            self._restore(previous)
            raise

    def _restore(self, previous: ConnectivityMonitor | None) -> None:
        if previous is None:
            return
        try:
            self._subscribe(previous)
        except Exception:
            logger.exception(
                "Could not resubscribe %r to %r, stopping", self._name, previous
            )
            self.stop()
        else:
            logger.warning("Kept %r on %r after failed rebind", self._name, previous)

    def _on_event(self, seq: int, event: ConnectivityEvent) -> None:
        if threading.get_ident() != self._owner_thread:
            self._clock.post(functools.partial(self._apply_event, seq, event))
            return
        self._apply_event(seq, event)

    def _apply_event(self, seq: int, event: ConnectivityEvent) -> None:
        if not self._running or seq != self._subscription_seq:
            logger.debug("Ignoring %s from a released subscription", event)
            return
        reversed_ = ConnectivityEvent(event) is ConnectivityEvent.DISCONNECTED
        if reversed_ == self._reversed:
            return
        self._reversed = reversed_
        logger.info(
            "Network %s — cycle %s",
            event,
            "reversed" if reversed_ else "forward",
            extra={"light": self._light.value, "reversed": reversed_},
        )
        self._notify()

    def _on_failure(self, seq: int, failure: MonitorFailure) -> None:
        if threading.get_ident() != self._owner_thread:
            self._clock.post(functools.partial(self._record_failure, seq, failure))
            return
        self._record_failure(seq, failure)

    def _record_failure(self, seq: int, failure: MonitorFailure) -> None:
        if not self._running or seq != self._subscription_seq:
            return
        self._last_failure = failure
        logger.warning(
            "Keeping direction reversed=%s after monitor failure: %s",
            self._reversed,
            failure.message,
        )

    # -- Timer --------------------------------------------------------------

    def _schedule(self) -> None:
        self._timer_seq += 1
        self._timer = self._clock.schedule_after(
            self._timings.delay_for(self._light),
            functools.partial(self._on_timer, self._timer_seq),
        )

    def _on_timer(self, seq: int) -> None:
        if not self._running or seq != self._timer_seq:
            logger.debug("Ignoring stale timer for %r", self._name)
            return
        previous = self._light
        self._light = next_state(previous, reversed=self._reversed)
        logger.debug(
            "%s -> %s",
            previous,
            self._light,
            extra={"light": self._light.value, "reversed": self._reversed},
        )
        self._schedule()
        self._notify()

    # -- Lifecycle ----------------------------------------------------------

    def stop(self) -> None:
        """Cancel the pending timer and release the subscription.

        Idempotent.  No timer or event is processed afterwards.
        """
        if not self._running:
            return
        self._running = False
        self._timer_seq += 1
        if self._timer is not None:
            self._clock.cancel(self._timer)
            self._timer = None
        self._release_subscription()
        logger.info("Stopped traffic light %r", self._name)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    def __repr__(self) -> str:
        return (
            f"TrafficLightMachine(name={self._name!r}, light={self._light.value!r}, "
            f"reversed={self._reversed}, running={self._running})"
        )
