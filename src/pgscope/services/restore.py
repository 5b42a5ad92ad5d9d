"""Restore execution.

Dispatches a backup to pg_restore (custom format) or to psql after
scope preprocessing (plain SQL), and interprets the tools' exit status.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pgscope.core.config import DEFAULT_MAX_LINE_LENGTH
from pgscope.core.context import ExecutionContext
from pgscope.core.exceptions import ExecutionError, InputError, RestoreError
from pgscope.core.executor import CommandExecutor
from pgscope.services.formats import BackupFormat, detect_backup_format
from pgscope.services.preprocess import PreprocessStats, preprocessed_script
from pgscope.services.psql import ConnectionParams, find_pg_tool
from pgscope.services.scope import PrivilegeScopeResolver, ScopeResolution


@dataclass(frozen=True)
class RestoreRequest:
    """A single restore of one backup file into one database."""

    connection: ConnectionParams
    input_file: Path
    copy_all_insertable: bool = False
    auth_copy_tables: tuple[str, ...] = ()
    clean_first: bool = True
    no_owner: bool = True
    single_transaction: bool = False
    jobs: int = 4
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH
    query_timeout: Optional[int] = None
    restore_timeout: Optional[int] = None


@dataclass
class RestoreOutcome:
    """Result of a completed restore."""

    format: BackupFormat
    command: list[str]
    return_code: int = 0
    warnings: Optional[str] = None
    resolution: Optional[ScopeResolution] = None
    stats: Optional[PreprocessStats] = None
    notes: list[str] = field(default_factory=list)


class RestoreService:
    """Restores custom or plain pg_dump backups.

    Features:
    - Format detection from the file header
    - Parallel pg_restore for custom archives
    - Privilege-scoped, data-only replay of plain SQL dumps
    - Temporary scripts removed on every exit path
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        resolver: Optional[PrivilegeScopeResolver] = None,
        temp_dir: Optional[Path] = None,
    ) -> None:
        """Initialize restore service.

        Args:
            ctx: Execution context
            executor: Command executor
            resolver: Scope resolver (built per request if None)
            temp_dir: Directory for preprocessed scripts
        """
        self.ctx = ctx
        self.executor = executor
        self.resolver = resolver
        self.temp_dir = temp_dir

    def restore(self, request: RestoreRequest) -> RestoreOutcome:
        """Restore a backup file into the target database.

        Raises:
            InputError: If the backup is missing or unreadable
            ScopeResolutionError: If all-insertable scope cannot be resolved
            PreprocessError: If the plain script cannot be transformed
            RestoreError: If the restore tool fails
            PrerequisiteError: If a client tool is not installed
        """
        path = Path(request.input_file)
        if not path.is_file():
            raise InputError(
                f"Backup file not found: {path}",
                hint="Check the backup file path",
            )

        backup_format = detect_backup_format(path)
        self.ctx.console.verbose(f"Detected {backup_format.value} format backup")

        if backup_format is BackupFormat.CUSTOM:
            return self.restore_custom(request)
        return self.restore_plain(request)

    def build_pg_restore_command(self, request: RestoreRequest) -> tuple[list[str], list[str]]:
        """Build the pg_restore argv.

        Returns:
            Tuple of (command, notes about adjusted options)
        """
        notes: list[str] = []
        cmd = [find_pg_tool("pg_restore")]
        cmd.extend(request.connection.args())

        if request.clean_first:
            cmd.append("-c")
        if request.no_owner:
            cmd.append("-O")
        if request.single_transaction:
            cmd.append("-1")
            if request.jobs > 1:
                notes.append("Parallel jobs ignored: pg_restore cannot combine -j with -1")
        elif request.jobs > 1:
            cmd.extend(["-j", str(request.jobs)])

        cmd.append(str(request.input_file))
        return cmd, notes

    def restore_custom(self, request: RestoreRequest) -> RestoreOutcome:
        """Run pg_restore for a custom-format archive.

        pg_restore exits non-zero for ignorable notices too, so a failure
        is only reported when it also wrote to stderr.

        Raises:
            RestoreError: If pg_restore fails with error output
        """
        cmd, notes = self.build_pg_restore_command(request)
        for note in notes:
            self.ctx.console.warn(note)

        try:
            result = self.executor.run(
                cmd,
                description=f"Restore {request.input_file.name} with pg_restore",
                check=False,
                timeout=request.restore_timeout,
                env=request.connection.env(),
            )
        except ExecutionError as e:
            raise RestoreError(
                f"pg_restore failed: {e.message}",
                tool="pg_restore",
                stderr=e.stderr,
            ) from e

        if result.return_code != 0 and result.stderr:
            raise RestoreError(
                f"pg_restore failed: {result.stderr}",
                tool="pg_restore",
                stderr=result.stderr,
                return_code=result.return_code,
                details=[f"Exit code: {result.return_code}"],
            )

        if result.return_code != 0:
            self.ctx.console.warn(
                f"pg_restore exited with code {result.return_code} without error output"
            )

        return RestoreOutcome(
            format=BackupFormat.CUSTOM,
            command=cmd,
            return_code=result.return_code,
            warnings=result.stderr or None,
            notes=notes,
        )

    def build_psql_command(self, request: RestoreRequest, script: Path) -> list[str]:
        """Build the psql argv that replays a preprocessed script."""
        cmd = [find_pg_tool("psql"), "-X"]
        cmd.extend(request.connection.args())
        cmd.extend(["-v", "ON_ERROR_STOP=1", "-f", str(script)])
        if request.single_transaction:
            cmd.append("-1")
        return cmd

    def _resolver(self, request: RestoreRequest) -> PrivilegeScopeResolver:
        if self.resolver is not None:
            return self.resolver
        return PrivilegeScopeResolver(
            self.ctx,
            self.executor,
            query_timeout=request.query_timeout,
        )

    def resolve_scope(self, request: RestoreRequest) -> ScopeResolution:
        """Resolve the table scope a plain restore of ``request`` uses."""
        return self._resolver(request).resolve(
            request.connection,
            copy_all_insertable=request.copy_all_insertable,
            override=request.auth_copy_tables,
        )

    def restore_plain(self, request: RestoreRequest) -> RestoreOutcome:
        """Preprocess a plain SQL dump and replay it with psql.

        Any non-zero psql exit is fatal.

        Raises:
            ScopeResolutionError: If all-insertable scope cannot be resolved
            PreprocessError: If the script cannot be transformed
            RestoreError: If psql fails
        """
        resolution = self.resolve_scope(request)
        self.ctx.console.verbose(
            f"Scope {resolution.scope.mode} ({resolution.source.value}): "
            f"{', '.join(resolution.tables) or 'public + migrations only'}"
        )

        with preprocessed_script(
            request.input_file,
            resolution.scope,
            max_line_length=request.max_line_length,
            temp_dir=self.temp_dir,
        ) as script:
            cmd = self.build_psql_command(request, script.path)
            try:
                result = self.executor.run(
                    cmd,
                    description=f"Replay {request.input_file.name} with psql",
                    check=False,
                    timeout=request.restore_timeout,
                    env=request.connection.env(),
                )
            except ExecutionError as e:
                raise RestoreError(
                    f"psql restore failed: {e.message}",
                    tool="psql",
                    stderr=e.stderr,
                ) from e

        if result.return_code != 0:
            reason = result.stderr or f"psql exited with code {result.return_code}"
            raise RestoreError(
                f"psql restore failed: {reason}",
                tool="psql",
                stderr=result.stderr or None,
                return_code=result.return_code,
            )

        return RestoreOutcome(
            format=BackupFormat.PLAIN,
            command=cmd,
            return_code=result.return_code,
            warnings=result.stderr or None,
            resolution=resolution,
            stats=script.stats,
        )
