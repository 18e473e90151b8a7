"""Public test-support utilities for stoplight.

Re-exports test doubles and factories so that consumer test suites
can import everything from a single ``stoplight.testing`` namespace
instead of reaching into private modules.

Provided symbols:

- :class:`MachineHarness` — clock, registry and session wired together.
- :class:`FakeClock` — simulated clock advanced by hand.
- :class:`ControllableMonitor` — monitor driven by ``push()``.
- :class:`NullMonitor` — monitor that never emits.
- :func:`make_settings` — factory for ``Settings`` without ``.env`` files.
"""

from stoplight._monitor import ControllableMonitor, NullMonitor
from stoplight.testing._clock import FakeClock
from stoplight.testing._harness import MachineHarness
from stoplight.testing._settings import make_settings

__all__ = [
    "ControllableMonitor",
    "FakeClock",
    "MachineHarness",
    "NullMonitor",
    "make_settings",
]
