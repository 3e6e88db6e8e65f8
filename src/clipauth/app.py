"""Typer application and CLI entry point for clipauth.

The command tree is::

    clipauth auth   login | logout | status | token | clear
    clipauth target show | set | clear
    clipauth config show | set | reset

:func:`main` is the console-script entry point declared in
``pyproject.toml``. It installs a SIGINT handler, runs the Typer app, maps
:class:`~clipauth.exceptions.ClipauthError` to its exit code, and writes a
crash log under the data directory for anything unexpected.

See Also:
    :mod:`clipauth.output`: Output and logging initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any

import typer

from clipauth import __version__
from clipauth.exit_codes import EXIT_GENERIC_FAILURE

if TYPE_CHECKING:
    from clipauth.output import OutputManager

app = typer.Typer(
    name="clipauth",
    help="Sign in to the notes service with OAuth2 + PKCE and manage the session.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

from clipauth.commands.auth import auth_app  # noqa: E402
from clipauth.commands.config import config_app  # noqa: E402
from clipauth.commands.target import target_app  # noqa: E402

app.add_typer(auth_app, name="auth", help="Sign in, sign out and inspect the session.")
app.add_typer(target_app, name="target", help="Recently used notebook and section.")
app.add_typer(config_app, name="config", help="Client and provider settings.")

_LOG_HANDLER_ATTR = "_clipauth_cli_handler"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"clipauth {__version__}")
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
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~clipauth.output.OutputManager`, routes the
    ``clipauth`` loggers through it, and stores shared flags in ``ctx.obj``.
    """
    from clipauth.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    _configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["force"] = force


def _configure_logging(output: OutputManager) -> None:
    """Route the package logger through *output*, replacing a previous CLI handler."""
    handler = output.log_handler()
    logger = logging.getLogger("clipauth")
    for existing in list(logger.handlers):
        if getattr(existing, _LOG_HANDLER_ATTR, False):
            logger.removeHandler(existing)
    setattr(handler, _LOG_HANDLER_ATTR, True)
    logger.addHandler(handler)
    if output.is_verbose:
        logger.setLevel(logging.DEBUG)
    elif output.is_quiet:
        logger.setLevel(logging.ERROR)
    else:
        logger.setLevel(logging.WARNING)
    logger.propagate = False


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return its path."""
    from clipauth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        encoding="utf-8",
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``clipauth`` console script.

    :class:`~clipauth.exceptions.ClipauthError` exits with the error's
    ``exit_code``; any other exception produces a crash log and
    :data:`~clipauth.exit_codes.EXIT_GENERIC_FAILURE`.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from clipauth.exceptions import ClipauthError
        from clipauth.output import error

        if isinstance(exc, ClipauthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
