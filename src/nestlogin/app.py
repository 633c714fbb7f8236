"""Typer application and CLI entry point for nestlogin.

This module wires together the top-level Typer application and registers
the two flows as commands:

* ``nestlogin token`` -- sign in and print a Google refresh token.
* ``nestlogin config`` -- sign in manually on home.nest.com and print the
  ``googleAuth`` descriptor.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands and
invokes the Typer app. Unhandled exceptions are written to a crash log
under the data directory.

See Also:
    :mod:`nestlogin.config`: Settings resolution.
    :mod:`nestlogin.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from nestlogin import __version__
from nestlogin.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="nestlogin",
    help="Obtain Google credentials for the Nest API through a headless browser.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"nestlogin {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Settings file to use instead of the default."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~nestlogin.output.OutputManager` and the
    ``nestlogin`` logger from CLI flags, and stores shared options in the
    Typer context so that sub-commands can read them via ``ctx.obj``.
    """
    from nestlogin.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["format_forced"] = fmt != OutputFormat.AUTO
    ctx.obj["no_color"] = no_color
    ctx.obj["quiet"] = quiet
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from nestlogin.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def register_commands() -> None:
    """Attach the built-in commands to :data:`app` (idempotent)."""
    from nestlogin.commands.config import config_command
    from nestlogin.commands.token import token_command

    registered = {info.name for info in app.registered_commands}
    if "token" not in registered:
        app.command("token")(token_command)
    if "config" not in registered:
        app.command("config")(config_command)


def main() -> None:
    """CLI entry point invoked by the ``nestlogin`` console script.

    Unhandled :class:`~nestlogin.exceptions.NestLoginError` instances cause
    a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from nestlogin.exceptions import NestLoginError
        from nestlogin.output import error

        if isinstance(exc, NestLoginError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
