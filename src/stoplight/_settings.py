"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Variables carry the ``STOPLIGHT_`` prefix and nested models use
``__`` as the delimiter, e.g. ``STOPLIGHT_TIMINGS__RED=5``.

The schema covers three concerns:

* **Timings** — how long each light stays on.
* **Connectivity** — how the live monitor probes reachability.
* **Logging** — level, format, optional file sink, rotation.

All durations are in **seconds**.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stoplight._machine import LightTimings

# -------------------------------------------------------------------
# Sub-models (BaseModel, NOT BaseSettings — nested via composition)
# -------------------------------------------------------------------


class TimingSettings(BaseModel):
    """Per-light durations.

    Environment variables (with ``__`` nesting)::

        STOPLIGHT_TIMINGS__GREEN=2
        STOPLIGHT_TIMINGS__YELLOW=2
        STOPLIGHT_TIMINGS__RED=3.5
    """

    green: Annotated[float, Field(gt=0)] = Field(
        default=2.0,
        description="Seconds the green light stays on.",
    )
    yellow: Annotated[float, Field(gt=0)] = Field(
        default=2.0,
        description="Seconds the yellow light stays on.",
    )
    red: Annotated[float, Field(gt=0)] = Field(
        default=3.5,
        description="Seconds the red light stays on.",
    )

    def to_timings(self) -> LightTimings:
        """Return the immutable timings the machine runs with."""
        return LightTimings(green=self.green, yellow=self.yellow, red=self.red)


class ConnectivitySettings(BaseModel):
    """Live reachability probe configuration.

    The live monitor opens a TCP connection to ``probe_host:probe_port``
    every ``probe_interval`` seconds.  A connection that succeeds within
    ``probe_timeout`` counts as *connected*.
    """

    probe_host: str = Field(
        default="1.1.1.1",
        description="Host the live monitor connects to.",
    )
    probe_port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=53,
        description="TCP port the live monitor connects to.",
    )
    probe_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description="Seconds between reachability probes.",
    )
    probe_timeout: Annotated[float, Field(gt=0)] = Field(
        default=2.0,
        description="Seconds before a probe counts as unreachable.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` — structured JSON lines for log aggregators.
    - ``"text"`` (default) — human-readable timestamped lines for
      terminal use.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="text",
        description=(
            "Log output format. "
            "'json' emits structured JSON lines; "
            "'text' emits human-readable timestamped lines."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for the stoplight controller.

    Example ``.env``::

        STOPLIGHT_TIMINGS__RED=5
        STOPLIGHT_CONNECTIVITY__PROBE_HOST=example.com
        STOPLIGHT_CONNECTIVITY__PROBE_PORT=443
        STOPLIGHT_LOGGING__LEVEL=DEBUG
        STOPLIGHT_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="STOPLIGHT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timings: TimingSettings = Field(
        default_factory=TimingSettings,
        description="Light durations.",
    )
    connectivity: ConnectivitySettings = Field(
        default_factory=ConnectivitySettings,
        description="Live connectivity probe settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
