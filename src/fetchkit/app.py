"""Typer application and CLI entry point for fetchkit.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. It installs the Ctrl-C handler, runs the Typer app
and maps failures to exit codes: a
:class:`~fetchkit.exceptions.FetchkitError` exits with its own
``exit_code``, anything else writes a crash log under the data
directory and exits with :data:`~fetchkit.exit_codes.EXIT_GENERIC_FAILURE`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from fetchkit import __version__
from fetchkit.commands.cache import cache_app
from fetchkit.commands.config import config_app
from fetchkit.commands.request import request_command
from fetchkit.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED

app = typer.Typer(
    name="fetchkit",
    help="Resilient HTTP requests with caching, retry and cancellation.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("request")(request_command)
app.add_typer(cache_app, name="cache", help="Response cache management.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fetchkit {__version__}")
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
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show cache and retry tracing."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Install the output manager and share global flags through ``ctx.obj``."""
    from fetchkit.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback to ``<data_dir>/logs`` and return the path."""
    from fetchkit.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"crash-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
    log_path.write_text(traceback.format_exc(), encoding="utf-8")
    return str(log_path)


def main() -> None:
    """Run the CLI.

    Raises:
        SystemExit: Always, either from Typer or with a mapped exit code.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from fetchkit.exceptions import FetchkitError
        from fetchkit.output import error

        if isinstance(exc, FetchkitError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
