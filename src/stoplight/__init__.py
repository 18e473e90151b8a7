"""stoplight.

A traffic-light controller that cycles green → yellow → red on fixed
delays and runs the cycle backwards while the network is unreachable.
"""

from importlib.metadata import PackageNotFoundError, version

from stoplight._clock import ClockPort, SystemClock, TimerHandle
from stoplight._errors import (
    MonitorFailure,
    StoplightError,
    SubscriptionError,
    build_monitor_failure,
)
from stoplight._logging import JsonFormatter, configure_logging
from stoplight._machine import (
    TRANSITIONS,
    LightSnapshot,
    LightState,
    LightTimings,
    TrafficLightMachine,
    next_state,
)
from stoplight._monitor import (
    ConnectivityEvent,
    ConnectivityMonitor,
    ControllableMonitor,
    FixedMonitor,
    LiveMonitor,
    NullMonitor,
    Subscription,
    tcp_probe,
)
from stoplight._registry import DependencyRegistry
from stoplight._runner import run, run_controller
from stoplight._session import SessionSnapshot, TrafficLightSession
from stoplight._settings import (
    ConnectivitySettings,
    LoggingSettings,
    Settings,
    TimingSettings,
)

try:
    __version__ = version("stoplight")
except PackageNotFoundError:
    # Source checkout without installed metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Clock
    "ClockPort",
    "SystemClock",
    "TimerHandle",
    # Errors
    "MonitorFailure",
    "StoplightError",
    "SubscriptionError",
    "build_monitor_failure",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Machine
    "TRANSITIONS",
    "LightSnapshot",
    "LightState",
    "LightTimings",
    "TrafficLightMachine",
    "next_state",
    # Monitors
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "ControllableMonitor",
    "FixedMonitor",
    "LiveMonitor",
    "NullMonitor",
    "Subscription",
    "tcp_probe",
    # Registry
    "DependencyRegistry",
    # Runner
    "run",
    "run_controller",
    # Session
    "SessionSnapshot",
    "TrafficLightSession",
    # Settings
    "ConnectivitySettings",
    "LoggingSettings",
    "Settings",
    "TimingSettings",
]
