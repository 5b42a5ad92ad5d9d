"""Options and helpers shared by command modules."""

from pathlib import Path
from typing import Annotated, Optional

import typer

from pgscope.core.config import DEFAULT_CONFIG_PATH, AppConfig
from pgscope.core.exceptions import PgScopeError
from pgscope.core.output import console
from pgscope.core.validation import validate_host, validate_port
from pgscope.services.psql import ConnectionParams


# Type aliases for common options
DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview changes without executing. Catalog queries still run.",
        is_flag=True,
    ),
]

YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Skip confirmation prompts.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite existing files.",
        is_flag=True,
    ),
]

# Connection options (fall back to the config file)
HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Database host."),
]

PortOption = Annotated[
    Optional[int],
    typer.Option("--port", "-p", help="Database port."),
]

DatabaseOption = Annotated[
    Optional[str],
    typer.Option("--database", "-d", help="Target database."),
]

UserOption = Annotated[
    Optional[str],
    typer.Option("--user", "-U", help="Database user."),
]

# Scope options
AllInsertableOption = Annotated[
    Optional[bool],
    typer.Option(
        "--all-insertable/--auth-scope",
        help="Replay every table the role can INSERT into, instead of public + allowed auth tables.",
    ),
]

AuthTableOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--auth-table",
        "-t",
        help="Fixed auth table allowlist entry (repeatable). Skips privilege discovery.",
    ),
]


def handle_error(error: PgScopeError) -> None:
    """Handle a PgScopeError by printing formatted error and exiting."""
    console.error(error.message)

    if error.details:
        for detail in error.details:
            console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def connection_from_options(
    app_config: AppConfig,
    host: Optional[str] = None,
    port: Optional[int] = None,
    database: Optional[str] = None,
    user: Optional[str] = None,
) -> ConnectionParams:
    """Merge command-line connection options over the config file.

    Raises:
        ValidationError: If host or port are invalid
    """
    defaults = app_config.connection
    return ConnectionParams(
        host=validate_host(host) if host is not None else defaults.host,
        port=validate_port(port) if port is not None else defaults.port,
        database=database or defaults.database,
        user=user or defaults.user,
        password=app_config.secrets.db_password,
    )
