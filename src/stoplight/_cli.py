"""Command-line entry point (Typer-based).

Provides :func:`build_cli`, which constructs a Typer app that parses
the controller's options (``--version``, ``--log-level``,
``--log-format``, ``--env-file``, ``--simulate``, ``--duration``) and
hands off to :func:`~stoplight._runner.run_controller`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import Annotated, get_args

import typer
from pydantic import ValidationError

from stoplight._monitor import ConnectivityEvent, FixedMonitor
from stoplight._registry import DependencyRegistry
from stoplight._runner import run_controller
from stoplight._settings import LoggingSettings, Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 3

# ---------------------------------------------------------------------------
# Allowed values (extracted from LoggingSettings Literal types)
# ---------------------------------------------------------------------------

_VALID_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation,
)
_VALID_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation,
)


def build_cli(*, name: str = "stoplight", version: str | None = None) -> typer.Typer:
    """Construct the Typer CLI.

    Args:
        name: Program name shown in ``--version`` and help output.
        version: Version string.  Defaults to the installed package
            version.

    Returns:
        A configured :class:`typer.Typer` ready to invoke.
    """
    if version is None:
        from stoplight import __version__ as version  # noqa: PLC0415

    cli = typer.Typer(
        help=(
            f"{name} v{version} — traffic light that reverses its cycle "
            "while the network is unreachable."
        ),
    )

    @cli.callback(invoke_without_command=True)
    def main(
        version_flag: Annotated[
            bool | None,
            typer.Option(
                "--version",
                is_eager=True,
                help="Show version and exit.",
            ),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help="Override log level."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="Override log format."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
        simulate: Annotated[
            ConnectivityEvent | None,
            typer.Option(
                "--simulate",
                help="Pin connectivity instead of probing the network.",
            ),
        ] = None,
        duration: Annotated[
            float | None,
            typer.Option(
                "--duration",
                min=0.0,
                help="Stop after this many seconds (default: run until signalled).",
            ),
        ] = None,
    ) -> None:
        # -- version ---------------------------------------------------------
        if version_flag:
            typer.echo(f"{name} v{version}")
            raise typer.Exit()

        # -- validate enum-like options -------------------------------------
        if log_level is not None and log_level.upper() not in _VALID_LOG_LEVELS:
            raise typer.BadParameter(
                f"Invalid log level '{log_level}'. "
                f"Choose from: {', '.join(_VALID_LOG_LEVELS)}",
                param_hint="'--log-level'",
            )

        if log_format is not None and log_format.lower() not in _VALID_LOG_FORMATS:
            raise typer.BadParameter(
                f"Invalid log format '{log_format}'. "
                f"Choose from: {', '.join(_VALID_LOG_FORMATS)}",
                param_hint="'--log-format'",
            )

        # -- build settings -------------------------------------------------
        try:
            settings = Settings(_env_file=env_file)  # type: ignore[call-arg]
        except ValidationError as exc:
            logger.error("Configuration error: %s", exc)
            raise SystemExit(EXIT_CONFIG_ERROR) from exc

        # -- apply CLI overrides --------------------------------------------
        if log_level is not None:
            settings.logging = settings.logging.model_copy(
                update={"level": log_level.upper()},
            )

        if log_format is not None:
            settings.logging = settings.logging.model_copy(
                update={"format": log_format.lower()},
            )

        registry = (
            DependencyRegistry(FixedMonitor(simulate)) if simulate is not None else None
        )

        # -- run the async lifecycle ----------------------------------------
        try:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(
                    run_controller(
                        settings,
                        registry=registry,
                        duration=duration,
                        name=name,
                        version=version,
                    ),
                )
        except SystemExit:
            raise
        except Exception as exc:
            logger.error("Runtime error: %s", exc)
            sys.exit(EXIT_RUNTIME_ERROR)

    return cli


def main() -> None:
    """Console-script entry point."""
    build_cli()(standalone_mode=True)
