"""Configuration file commands.

Commands:
- pgscope config show      # Print the effective configuration
- pgscope config init      # Write a commented config file
- pgscope config validate  # Check a config file and the password environment
- pgscope config example   # Print the commented example
"""

import typer

from pgscope.commands.common import (
    ConfigOption,
    ForceOption,
    NoColorOption,
    VerboseOption,
    handle_error,
)
from pgscope.core.config import AppConfig, get_example_config, init_config
from pgscope.core.context import create_context
from pgscope.core.exceptions import ConfigurationError, PgScopeError

app = typer.Typer(
    name="config",
    help="Manage the pgscope configuration file.",
    no_args_is_help=True,
)


def _password_source(app_config: AppConfig) -> str:
    secrets = app_config.secrets
    if secrets.pgscope_db_password:
        return "PGSCOPE_DB_PASSWORD"
    if secrets.pgpassword:
        return "PGPASSWORD"
    return "not set (libpq defaults such as ~/.pgpass apply)"


@app.command("show")
def show_cmd(
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Print the effective configuration.

    Defaults are shown for anything the file leaves out. The password
    is never printed, only where it comes from.
    """
    ctx = create_context(no_color=no_color, config=config)

    try:
        app_config = ctx.config
    except PgScopeError as e:
        handle_error(e)

    source = "file" if ctx.config_path.exists() else "defaults, file not found"
    ctx.console.print(f"[bold]Config:[/bold] {ctx.config_path} ({source})")
    ctx.console.yaml(app_config.config.to_yaml(), title="Effective configuration")
    conn = app_config.connection
    ctx.console.summary("Connection", {
        "Target": f"{conn.user}@{conn.host}:{conn.port}/{conn.database}",
        "Password": _password_source(app_config),
    })


@app.command("init")
def init_cmd(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Write a commented configuration file (mode 0600)."""
    ctx = create_context(no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
    except PgScopeError as e:
        handle_error(e)

    ctx.console.success(f"Wrote {ctx.config_path}")
    ctx.console.hint("Export PGSCOPE_DB_PASSWORD instead of storing the password in the file")


@app.command("validate")
def validate_cmd(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Check that a configuration file exists and every value is valid."""
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        if not ctx.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {ctx.config_path}",
                hint="Create one with: pgscope config init",
            )
        app_config = ctx.config
    except PgScopeError as e:
        handle_error(e)

    ctx.console.success(f"Configuration is valid: {ctx.config_path}")
    if ctx.is_verbose:
        ctx.console.yaml(app_config.config.to_yaml())
    if app_config.secrets.db_password is None:
        ctx.console.warn("No password in PGSCOPE_DB_PASSWORD or PGPASSWORD")


@app.command("example")
def example_cmd() -> None:
    """Print the commented example configuration."""
    typer.echo(get_example_config(), nl=False)
