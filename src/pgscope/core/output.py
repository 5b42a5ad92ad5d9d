"""Console output for pgscope commands.

Status lines go to stdout and are filtered by verbosity. Warnings,
errors and hints always go to stderr so piped output stays clean.
"""

from enum import IntEnum
from typing import Any

from rich import box
from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table


class Verbosity(IntEnum):
    """Output verbosity levels."""
    QUIET = 0    # --quiet
    NORMAL = 1
    VERBOSE = 2  # -v
    DEBUG = 3    # -vv, includes executed commands


def _rich_console(stderr: bool, no_color: bool) -> RichConsole:
    return RichConsole(stderr=stderr, highlight=False, no_color=no_color)


class Console:
    """Rich-backed console shared by commands and services."""

    def __init__(self) -> None:
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self.no_color = False
        self._console = _rich_console(stderr=False, no_color=False)
        self._err_console = _rich_console(stderr=True, no_color=False)

    def configure(
        self,
        verbosity: int = Verbosity.NORMAL,
        dry_run: bool = False,
        no_color: bool = False,
    ) -> None:
        """Apply the global options of the current invocation."""
        self.verbosity = Verbosity(max(Verbosity.QUIET, min(verbosity, Verbosity.DEBUG)))
        self.dry_run = dry_run
        if no_color != self.no_color:
            self._console = _rich_console(stderr=False, no_color=no_color)
            self._err_console = _rich_console(stderr=True, no_color=no_color)
        self.no_color = no_color

    def _out(self, level: Verbosity, markup: str) -> None:
        if self.verbosity >= level:
            self._console.print(markup)

    def info(self, message: str) -> None:
        self._out(Verbosity.NORMAL, f"[green][INFO][/green] {message}")

    def success(self, message: str) -> None:
        self._out(Verbosity.NORMAL, f"[green][OK][/green] {message}")

    def step(self, message: str) -> None:
        self._out(Verbosity.NORMAL, f"[blue]->[/blue] {message}")

    def verbose(self, message: str) -> None:
        self._out(Verbosity.VERBOSE, f"[dim]{message}[/dim]")

    def debug(self, message: str) -> None:
        self._out(Verbosity.DEBUG, f"[cyan][DEBUG][/cyan] {message}")

    def warn(self, message: str) -> None:
        self._err_console.print(f"[yellow][WARN][/yellow] {message}")

    def error(self, message: str) -> None:
        self._err_console.print(f"[red][ERROR][/red] {message}")

    def hint(self, message: str) -> None:
        self._err_console.print(f"[cyan]Hint:[/cyan] {message}")

    def dry_run_msg(self, message: str) -> None:
        """Report an action that dry-run mode skipped."""
        if self.dry_run:
            self._console.print(f"[blue][DRY-RUN][/blue] {message}")

    def print(self, message: Any = "", **kwargs: Any) -> None:
        """Print text or a Rich renderable regardless of verbosity."""
        self._console.print(message, **kwargs)

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        table = Table(title=title, box=box.ROUNDED)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self._console.print(table)

    def yaml(self, yaml_text: str, title: str = "Configuration") -> None:
        syntax = Syntax(yaml_text, "yaml", theme="monokai", line_numbers=False)
        self._console.print(Panel(syntax, title=title, border_style="cyan"))

    def summary(self, title: str, items: dict[str, Any]) -> None:
        """Print key-value pairs in a panel. Booleans render as Yes/No."""
        lines = []
        for key, value in items.items():
            if isinstance(value, bool):
                value = "[green]Yes[/green]" if value else "[red]No[/red]"
            lines.append(f"[bold]{key}:[/bold] {value}")
        self._console.print(Panel("\n".join(lines), title=title, border_style="blue"))

    def confirm(
        self,
        message: str,
        default: bool = False,
        skip_confirm: bool = False,
    ) -> bool:
        """Ask a yes/no question on the terminal.

        Returns True without asking when ``skip_confirm`` is set. End of
        input or Ctrl-C counts as "no".
        """
        if skip_confirm:
            return True

        suffix = "[Y/n]" if default else "[y/N]"
        try:
            answer = self._console.input(f"{message} {suffix}: ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            return False

        if not answer:
            return default
        return answer in ("y", "yes")


# Global console instance
console = Console()
