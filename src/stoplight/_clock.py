"""Clock port and system adapter.

Provides ClockPort (Protocol), TimerHandle and SystemClock.  The clock
is the only source of time for the traffic-light machine: it reads the
current time, schedules delayed callbacks, and marshals callbacks from
foreign threads onto the machine's execution context.

**Why monotonic?** time.monotonic() is immune to NTP adjustments and
manual system-clock changes, making it suitable for measuring elapsed
durations. The epoch is arbitrary — only *differences* between now()
calls are meaningful (PEP 418).

All durations are in **seconds**.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

TimerCallback = Callable[[], None]
"""Zero-argument callback invoked when a timer fires."""


@dataclass(eq=False)
class TimerHandle:
    """Opaque handle returned by :meth:`ClockPort.schedule_after`.

    Handles compare by identity.  ``deadline`` is expressed on the
    issuing clock's time axis.
    """

    deadline: float
    callback: TimerCallback = field(repr=False)
    seq: int = 0
    cancelled: bool = False
    fired: bool = False
    _native: Any = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        """True while the timer is neither fired nor cancelled."""
        return not (self.cancelled or self.fired)


@runtime_checkable
class ClockPort(Protocol):
    """Time source and delayed-callback scheduler.

    The default implementation is backed by the running asyncio event
    loop.  Tests inject :class:`~stoplight.testing.FakeClock`, whose
    virtual time only moves when the test calls ``advance()``.
    """

    def now(self) -> float:
        """Return monotonic time in seconds."""
        ...

    def schedule_after(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Invoke *callback* once, *delay* seconds from now."""
        ...

    def cancel(self, handle: TimerHandle) -> None:
        """Cancel a pending timer.  No-op for fired or cancelled handles."""
        ...

    def post(self, callback: TimerCallback) -> None:
        """Run *callback* on the clock's execution context.

        Safe to call from any thread.
        """
        ...


def _check_delay(delay: float) -> None:
    if delay < 0:
        msg = f"delay must be non-negative, got {delay}"
        raise ValueError(msg)


class SystemClock:
    """Production clock wrapping ``time.monotonic()`` and asyncio timers.

    Satisfies :class:`ClockPort` via structural subtyping — no
    base-class inheritance required (PEP 544).

    The event loop is captured on first use (or passed explicitly), so
    the clock must first be used from the loop thread.  After that,
    :meth:`post` may be called from any thread.

    Usage::

        clock = SystemClock()
        handle = clock.schedule_after(2.0, lambda: print("tick"))
        clock.cancel(handle)
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        """Return monotonic time in seconds."""
        return time.monotonic()

    def schedule_after(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Schedule *callback* via ``loop.call_later``.

        Raises:
            ValueError: If *delay* is negative.
            RuntimeError: If no loop was given and none is running.
        """
        _check_delay(delay)
        loop = self._get_loop()
        handle = TimerHandle(deadline=self.now() + delay, callback=callback)

        def _fire() -> None:
            if handle.cancelled:
                return
            handle.fired = True
            callback()

        handle._native = loop.call_later(delay, _fire)
        return handle

    def cancel(self, handle: TimerHandle) -> None:
        """Cancel *handle*.  Idempotent."""
        if not handle.active:
            return
        handle.cancelled = True
        if handle._native is not None:
            handle._native.cancel()

    def post(self, callback: TimerCallback) -> None:
        """Schedule *callback* on the loop thread (``call_soon_threadsafe``)."""
        self._get_loop().call_soon_threadsafe(callback)
