"""Diagnostics and data rendering for fetchkit.

Everything the library and CLI say goes through here, with one rule:
fetched payloads go to **stdout**, everything else (cache hits, retry
scheduling, warnings, errors) goes to **stderr**. Piping ``fetchkit
request`` into ``jq`` therefore never sees a log line.

Colour follows the usual conventions: ``NO_COLOR`` (any value),
``TERM=dumb`` and ``--no-color`` all disable it, and ``auto`` format
falls back to plain text when stdout is not a terminal.

Library code calls the module-level helpers (:func:`debug`,
:func:`warning`, ...) which delegate to the process-wide
:class:`OutputManager`. The CLI installs a configured manager in
:func:`~fetchkit.app.main_callback`; library users get a lazily created
quiet-by-default one.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """Rendering mode for stdout data. ``AUTO`` picks RICH on a colour TTY."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes data to stdout and diagnostics to stderr.

    Args:
        format: Requested output format; ``AUTO`` is resolved once here.
        no_color: Disable colour and Rich markup.
        quiet: Suppress informational and success messages.
        verbose: Show :meth:`debug` messages (cache and retry tracing).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _color_disabled_by_env()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            rich_ok = _stdout_is_tty() and not self._no_color
            self._format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=self._format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Render a fetched payload in the active format."""
        if self._format == OutputFormat.JSON:
            self.print_data(_to_json(data))
        elif self._format == OutputFormat.PLAIN:
            self._render_plain(data)
        else:
            self._render_rich(data)

    def print_data(self, text: str) -> None:
        """Write *text* to stdout unformatted."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Render rows as a Rich table, a JSON array of objects, or TSV."""
        if self._format == OutputFormat.JSON:
            self.print_data(_to_json([dict(zip(headers, row)) for row in rows]))
            return
        if self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
            return

        table = Table(title=title, show_header=True, header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic(message, "{}")

    def success(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic(message, "[green]{}[/green]")

    def warning(self, message: str) -> None:
        """Warnings are shown even in quiet mode."""
        self._diagnostic(f"Warning: {message}", "[yellow]Warning:[/yellow] {}", message)

    def error(self, message: str) -> None:
        self._diagnostic(f"Error: {message}", "[bold red]Error:[/bold red] {}", message)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._diagnostic(f"[debug] {message}", "[dim]\\[debug] {}[/dim]", message)

    def _diagnostic(self, plain: str, markup: str, body: Optional[str] = None) -> None:
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup.format(plain if body is None else body))

    # ------------------------------------------------------------------ #
    # Renderers
    # ------------------------------------------------------------------ #

    def _render_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                self.print_data(f"{key}\t{value}")
        elif isinstance(data, list):
            for item in data:
                if isinstance(item, dict):
                    self.print_data("\t".join(str(v) for v in item.values()))
                else:
                    self.print_data(str(item))
        elif data is None:
            return
        else:
            self.print_data(str(data))

    def _render_rich(self, data: Any) -> None:
        if isinstance(data, (dict, list)):
            self._stdout.print(Syntax(_to_json(data), "json", theme="monokai", word_wrap=True))
        elif data is not None:
            self._stdout.print(str(data), markup=False)


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _stdout_is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _color_disabled_by_env() -> bool:
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Process-wide instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one if needed."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Drop the installed manager. Used by the test suite between tests."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
