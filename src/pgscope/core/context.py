"""Per-invocation state shared by commands and services.

A command builds one ExecutionContext from its global options and hands
it to every service it calls. The context configures the shared console
and loads the configuration file on first use.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pgscope.core.config import AppConfig, DEFAULT_CONFIG_PATH
from pgscope.core.output import Console, console, Verbosity


@dataclass
class ExecutionContext:
    """Flags of the current pgscope invocation.

    Attributes:
        dry_run: Run catalog queries but never pg_restore or the psql replay
        yes: Restore without asking for confirmation
        verbosity: Output verbosity level (0-3)
        no_color: Plain console output
        config_path: YAML configuration file
    """

    dry_run: bool = False
    yes: bool = False
    verbosity: int = Verbosity.NORMAL
    no_color: bool = False
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG_PATH)

    _config: Optional[AppConfig] = field(default=None, repr=False)
    _console: Console = field(default_factory=lambda: console, repr=False)

    def __post_init__(self) -> None:
        self._console.configure(
            verbosity=self.verbosity,
            dry_run=self.dry_run,
            no_color=self.no_color,
        )

    @property
    def config(self) -> AppConfig:
        """Configuration, read from ``config_path`` on first access."""
        if self._config is None:
            self._config = AppConfig(config_path=self.config_path)
        return self._config

    @property
    def console(self) -> Console:
        return self._console

    @property
    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    @property
    def skip_confirm(self) -> bool:
        """Whether restores proceed without a prompt."""
        return self.yes or self.dry_run


def create_context(
    dry_run: bool = False,
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Build the context for a command from its global options.

    ``--quiet`` wins over any number of ``-v`` flags.
    """
    if quiet:
        verbosity = Verbosity.QUIET
    else:
        verbosity = min(Verbosity.NORMAL + verbose, Verbosity.DEBUG)

    return ExecutionContext(
        dry_run=dry_run,
        yes=yes,
        verbosity=verbosity,
        no_color=no_color,
        config_path=config or DEFAULT_CONFIG_PATH,
    )
