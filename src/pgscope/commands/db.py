"""Database restore commands.

Commands:
- pgscope db restore     # Restore a custom or plain backup
- pgscope db preprocess  # Write the scoped plain SQL script without replaying it
- pgscope db scope       # Show which tables a plain restore would replay
- pgscope db detect      # Show the format of a backup file
- pgscope db check       # Verify client tools and connectivity
"""

import shutil
from pathlib import Path
from typing import Annotated, Optional

import typer

from pgscope.commands.common import (
    AllInsertableOption,
    AuthTableOption,
    ConfigOption,
    DatabaseOption,
    DryRunOption,
    ForceOption,
    HostOption,
    NoColorOption,
    PortOption,
    QuietOption,
    UserOption,
    VerboseOption,
    YesOption,
    connection_from_options,
    handle_error,
)
from pgscope.core import (
    AuditEventType,
    CommandExecutor,
    Console,
    InputError,
    PgScopeError,
    PreprocessError,
    create_context,
)
from pgscope.core.audit import configure_audit_logger
from pgscope.core.validation import validate_jobs, validate_qualified_name
from pgscope.services.formats import BackupFormat, detect_backup_format
from pgscope.services.preprocess import BackupPreprocessor, remove_temp_file
from pgscope.services.psql import PsqlClient, find_pg_tool
from pgscope.services.restore import RestoreRequest, RestoreService
from pgscope.services.scope import PrivilegeScopeResolver, ScopeResolution

app = typer.Typer(
    name="db",
    help="Restore and inspect database backups.",
    no_args_is_help=True,
)


BackupArgument = Annotated[
    Path,
    typer.Argument(
        help="Backup file (pg_dump custom archive or plain SQL).",
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
]


def _auth_tables(cli_tables: Optional[list[str]], configured: list[str]) -> tuple[str, ...]:
    tables = cli_tables if cli_tables else configured
    for name in tables:
        validate_qualified_name(name)
    return tuple(tables)


def _show_resolution(console: Console, resolution: ScopeResolution) -> None:
    """Print a resolved scope."""
    console.summary("Table scope", {
        "Mode": resolution.scope.mode,
        "Source": resolution.source.value,
    })
    if resolution.degraded:
        console.warn(f"Scope degraded: {resolution.reason}")

    if resolution.tables:
        console.table(
            "Tables",
            ["Table"],
            [[name] for name in resolution.tables],
        )
    else:
        console.info("No auth tables in scope (public and migrations only)")


@app.command("restore")
def restore_cmd(
    backup: BackupArgument,
    host: HostOption = None,
    port: PortOption = None,
    database: DatabaseOption = None,
    user: UserOption = None,
    all_insertable: AllInsertableOption = None,
    auth_tables: AuthTableOption = None,
    clean: Optional[bool] = typer.Option(
        None, "--clean/--no-clean",
        help="Drop objects before recreating them (custom format only)",
    ),
    no_owner: Optional[bool] = typer.Option(
        None, "--no-owner/--keep-owner",
        help="Skip ownership commands (custom format only)",
    ),
    single_transaction: Optional[bool] = typer.Option(
        None, "--single-transaction/--no-single-transaction",
        help="Restore as a single transaction",
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j",
        help="Parallel jobs for pg_restore",
    ),
    # Global options
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Restore a backup into the target database.

    Custom-format archives go to pg_restore. Plain SQL dumps are reduced
    to data for the tables the connecting role may write to, truncated
    first, then replayed with psql with triggers disabled.

    Examples:

        # Restore a custom archive
        pgscope db restore app.dump -h db.local -d app

        # Replay a plain dump into every writable table
        pgscope db restore app.sql --all-insertable

        # Fixed auth allowlist, no privilege discovery
        pgscope db restore app.sql -t auth.users -t auth.identities
    """
    ctx = create_context(
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )
    console = ctx.console

    try:
        app_config = ctx.config
        defaults = app_config.restore
        audit = configure_audit_logger(
            log_path=app_config.audit.log_path,
            enabled=app_config.audit.enabled,
        )

        request = RestoreRequest(
            connection=connection_from_options(app_config, host, port, database, user),
            input_file=backup,
            copy_all_insertable=(
                all_insertable if all_insertable is not None else defaults.copy_all_insertable
            ),
            auth_copy_tables=_auth_tables(auth_tables, defaults.auth_copy_tables),
            clean_first=clean if clean is not None else defaults.clean_first,
            no_owner=no_owner if no_owner is not None else defaults.no_owner,
            single_transaction=(
                single_transaction if single_transaction is not None
                else defaults.single_transaction
            ),
            jobs=validate_jobs(jobs) if jobs is not None else defaults.jobs,
            max_line_length=defaults.max_line_length,
            query_timeout=defaults.query_timeout,
            restore_timeout=defaults.restore_timeout,
        )
        backup_format = detect_backup_format(backup)
    except PgScopeError as e:
        handle_error(e)

    # Show configuration
    console.print()
    console.print("[bold]Restore Configuration[/bold]")
    console.print(f"  Backup:       {backup}")
    console.print(f"  Format:       {backup_format.value} ({backup_format.restore_tool})")
    console.print(f"  Target:       {request.connection.target}")
    if backup_format is BackupFormat.CUSTOM:
        console.print(f"  Clean first:  {'Yes' if request.clean_first else 'No'}")
        console.print(f"  No owner:     {'Yes' if request.no_owner else 'No'}")
        console.print(f"  Jobs:         {request.jobs}")
    else:
        scope_mode = "all-insertable" if request.copy_all_insertable else "auth-allowlist"
        console.print(f"  Scope:        {scope_mode}")
        if request.auth_copy_tables and not request.copy_all_insertable:
            console.print(f"  Auth tables:  {', '.join(request.auth_copy_tables)}")
    console.print(f"  Single txn:   {'Yes' if request.single_transaction else 'No'}")
    console.print()

    if not console.confirm("Proceed with restore?", skip_confirm=ctx.skip_confirm):
        console.warn("Operation cancelled")
        raise typer.Exit(0)

    event_type = (
        AuditEventType.RESTORE_CUSTOM
        if backup_format is BackupFormat.CUSTOM
        else AuditEventType.RESTORE_PLAIN
    )
    target_name = request.connection.target

    try:
        service = RestoreService(ctx, CommandExecutor(ctx))
        outcome = service.restore(request)
    except PgScopeError as e:
        audit.log_failure(
            event_type,
            target_type="database",
            target_name=target_name,
            error=str(e),
            parameters={"backup": str(backup)},
        )
        handle_error(e)

    if outcome.resolution is not None and outcome.resolution.degraded:
        audit.log_degraded(
            AuditEventType.SCOPE_DEGRADED,
            target_type="database",
            target_name=target_name,
            message=outcome.resolution.reason or "",
        )

    if dry_run:
        audit.log_dry_run(
            event_type,
            target_type="database",
            target_name=target_name,
            message=f"Would restore {backup}",
        )
        console.dry_run_msg(f"Restore of {backup} not executed")
        return

    parameters = {"backup": str(backup), "format": backup_format.value}
    if outcome.stats is not None:
        parameters["tables"] = outcome.stats.kept_tables
    audit.log_success(
        event_type,
        target_type="database",
        target_name=target_name,
        message=f"Restored {backup}",
        parameters=parameters,
    )

    if outcome.warnings:
        console.warn(f"{backup_format.restore_tool} reported warnings")
        console.verbose(outcome.warnings)

    if outcome.stats is not None:
        console.summary("Replayed data", {
            "Tables": len(outcome.stats.kept_tables),
            "Rows": outcome.stats.copy_rows,
            "Sequences": outcome.stats.setval_kept,
            "Skipped tables": len(outcome.stats.skipped_tables),
        })

    console.success(f"Restored {backup.name} into {target_name}")


@app.command("preprocess")
def preprocess_cmd(
    backup: BackupArgument,
    output: Path = typer.Option(
        ..., "--output", "-o",
        help="Where to write the scoped SQL script",
        dir_okay=False,
    ),
    host: HostOption = None,
    port: PortOption = None,
    database: DatabaseOption = None,
    user: UserOption = None,
    all_insertable: AllInsertableOption = None,
    auth_tables: AuthTableOption = None,
    force: ForceOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Write the scoped script for a plain SQL dump without replaying it.

    The target database is still queried to resolve the table scope,
    unless a fixed auth allowlist is given.

    Examples:

        pgscope db preprocess app.sql -o app.scoped.sql -t auth.users
    """
    ctx = create_context(
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )
    console = ctx.console

    try:
        if output.exists() and not force:
            raise InputError(
                f"Output file already exists: {output}",
                hint="Use --force to overwrite",
            )
        if detect_backup_format(backup) is not BackupFormat.PLAIN:
            raise InputError(
                f"Not a plain SQL dump: {backup}",
                hint="Custom-format archives are restored with pg_restore as-is",
            )

        app_config = ctx.config
        defaults = app_config.restore
        audit = configure_audit_logger(
            log_path=app_config.audit.log_path,
            enabled=app_config.audit.enabled,
        )
        connection = connection_from_options(app_config, host, port, database, user)

        resolver = PrivilegeScopeResolver(
            ctx,
            CommandExecutor(ctx),
            query_timeout=defaults.query_timeout,
        )
        resolution = resolver.resolve(
            connection,
            copy_all_insertable=(
                all_insertable if all_insertable is not None else defaults.copy_all_insertable
            ),
            override=_auth_tables(auth_tables, defaults.auth_copy_tables),
        )

        preprocessor = BackupPreprocessor(
            resolution.scope,
            max_line_length=defaults.max_line_length,
        )
        result = preprocessor.preprocess(backup)
        try:
            shutil.move(str(result.path), str(output))
        except OSError as e:
            remove_temp_file(result.path)
            raise PreprocessError(
                f"Failed to write preprocessed script: {output}",
                details=[str(e)],
            ) from e
    except PgScopeError as e:
        handle_error(e)

    audit.log_success(
        AuditEventType.PREPROCESS,
        target_type="file",
        target_name=str(output),
        message=f"Preprocessed {backup}",
        parameters={"tables": result.stats.kept_tables, "scope": resolution.scope.mode},
    )

    if ctx.is_verbose:
        _show_resolution(console, resolution)
    elif resolution.degraded:
        console.warn(f"Scope degraded: {resolution.reason}")

    console.summary("Preprocessed script", {
        "Output": output,
        "Tables kept": len(result.stats.kept_tables),
        "Tables skipped": len(result.stats.skipped_tables),
        "Rows": result.stats.copy_rows,
        "Sequences": result.stats.setval_kept,
    })
    console.success(f"Wrote {output}")


@app.command("scope")
def scope_cmd(
    host: HostOption = None,
    port: PortOption = None,
    database: DatabaseOption = None,
    user: UserOption = None,
    all_insertable: AllInsertableOption = None,
    auth_tables: AuthTableOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show which tables a plain SQL restore would replay.

    Examples:

        pgscope db scope -h db.local -d app
        pgscope db scope --all-insertable
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config
        defaults = app_config.restore
        audit = configure_audit_logger(
            log_path=app_config.audit.log_path,
            enabled=app_config.audit.enabled,
        )
        connection = connection_from_options(app_config, host, port, database, user)
        resolver = PrivilegeScopeResolver(
            ctx,
            CommandExecutor(ctx),
            query_timeout=defaults.query_timeout,
        )
        resolution = resolver.resolve(
            connection,
            copy_all_insertable=(
                all_insertable if all_insertable is not None else defaults.copy_all_insertable
            ),
            override=_auth_tables(auth_tables, defaults.auth_copy_tables),
        )
    except PgScopeError as e:
        handle_error(e)

    if resolution.degraded:
        audit.log_degraded(
            AuditEventType.SCOPE_DEGRADED,
            target_type="database",
            target_name=connection.target,
            message=resolution.reason or "",
        )
    else:
        audit.log_success(
            AuditEventType.SCOPE_RESOLVE,
            target_type="database",
            target_name=connection.target,
            parameters={"scope": resolution.scope.mode, "tables": resolution.tables},
        )

    ctx.console.print()
    _show_resolution(ctx.console, resolution)


@app.command("detect")
def detect_cmd(
    backup: BackupArgument,
    no_color: NoColorOption = False,
) -> None:
    """Show the format of a backup file."""
    ctx = create_context(no_color=no_color)

    try:
        backup_format = detect_backup_format(backup)
    except PgScopeError as e:
        handle_error(e)

    ctx.console.print(f"{backup}: {backup_format.value} (restored with {backup_format.restore_tool})")


@app.command("check")
def check_cmd(
    host: HostOption = None,
    port: PortOption = None,
    database: DatabaseOption = None,
    user: UserOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Verify the client tools are installed and the target is reachable."""
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        for tool in ("psql", "pg_restore"):
            ctx.console.verbose(f"{tool}: {find_pg_tool(tool)}")

        app_config = ctx.config
        connection = connection_from_options(app_config, host, port, database, user)
        client = PsqlClient(
            ctx,
            CommandExecutor(ctx),
            connection,
            timeout=app_config.restore.query_timeout,
        )
        client.test_connection()
    except PgScopeError as e:
        handle_error(e)

    ctx.console.success(f"Connected to {connection.target}")
