"""Exception hierarchy and structured monitor-failure reports.

Failures belong to the connectivity monitor boundary.  A backend that
cannot determine reachability (a probe raising something unexpected, a
native API error) does **not** raise into the machine.  Instead it
builds a :class:`MonitorFailure` and hands it to the subscriber's
``on_error`` callback, so the consumer sees a distinct, non-fatal
event while the light keeps its last-known direction.

Payload schema::

    {
        "monitor": "live",
        "error_type": "RuntimeError",
        "message": "Human-readable error description",
        "timestamp": "2026-02-14T12:34:56+00:00"
    }

Programming-contract violations (subscribing twice to one monitor,
negative delays) raise immediately.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StoplightError(Exception):
    """Base class for all stoplight errors."""


class SubscriptionError(StoplightError, RuntimeError):
    """A monitor was subscribed to while it already had a subscriber."""


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MonitorFailure:
    """Immutable report of a connectivity backend failure."""

    monitor: str
    error_type: str
    message: str
    timestamp: str

    def to_dict(self) -> dict[str, str]:
        """Serialise to a plain dictionary."""
        return asdict(self)

    def to_json(self) -> str:
        """Serialise to a JSON string."""
        return json.dumps(self.to_dict())


MonitorErrorCallback = Callable[[MonitorFailure], None]
"""Callback receiving backend failures from a monitor subscription."""


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_monitor_failure(
    error: BaseException,
    *,
    monitor: str,
    clock: Callable[[], datetime] | None = None,
) -> MonitorFailure:
    """Convert an exception raised by a monitor backend into a report.

    Args:
        error: The exception to convert.
        monitor: Short name of the failing backend (e.g. ``"live"``).
        clock: Optional callable returning a :class:`~datetime.datetime`.
            Defaults to ``datetime.now(UTC)``.

    Returns:
        A frozen dataclass ready for logging or serialisation.
    """
    now = clock() if clock is not None else datetime.now(UTC)
    return MonitorFailure(
        monitor=monitor,
        error_type=type(error).__name__,
        message=str(error),
        timestamp=now.isoformat(),
    )


def report_failure(
    on_error: MonitorErrorCallback | None,
    failure: MonitorFailure,
) -> None:
    """Deliver *failure* to *on_error*, swallowing callback errors.

    A failing error callback must not take the monitor down with it —
    the exception is logged and dropped.
    """
    logger.warning(
        "Connectivity monitor %s failed: %s (%s)",
        failure.monitor,
        failure.message,
        failure.error_type,
    )
    if on_error is None:
        return
    try:
        on_error(failure)
    except Exception:
        logger.exception("Error in monitor failure callback")
