"""psql client wrapper.

Locates the PostgreSQL client tools and runs short catalog queries
against the restore target. The password is handed to the tools only
through PGPASSWORD, never on the command line.
"""

import shutil
from dataclasses import dataclass, field
from typing import Optional

from pgscope.core.context import ExecutionContext
from pgscope.core.exceptions import ExecutionError, PrerequisiteError
from pgscope.core.executor import CommandExecutor


CLIENT_INSTALL_HINT = (
    "Install the PostgreSQL client tools "
    "(e.g. 'apt install postgresql-client' or 'brew install libpq') "
    "and make sure they are on PATH"
)


def find_pg_tool(name: str) -> str:
    """Resolve a PostgreSQL client executable on PATH.

    Raises:
        PrerequisiteError: If the tool is not installed
    """
    path = shutil.which(name)
    if path is None:
        raise PrerequisiteError(
            f"{name} not found in PATH",
            hint=CLIENT_INSTALL_HINT,
        )
    return path


@dataclass(frozen=True)
class ConnectionParams:
    """Where and as whom to connect."""

    host: str = "127.0.0.1"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: Optional[str] = field(default=None, repr=False)

    def args(self) -> list[str]:
        """libpq connection flags shared by psql and pg_restore."""
        return [
            "-h", self.host,
            "-p", str(self.port),
            "-U", self.user,
            "-d", self.database,
        ]

    def env(self) -> dict[str, str]:
        """Environment overrides carrying the password."""
        if self.password is None:
            return {}
        return {"PGPASSWORD": self.password}

    @property
    def target(self) -> str:
        """Display form, e.g. ``postgres@db.local:5432/app``."""
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


class PsqlClient:
    """Runs SQL against the target database through psql."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        connection: ConnectionParams,
        *,
        timeout: Optional[int] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.connection = connection
        self.timeout = timeout

    def _command(self, *extra: str) -> list[str]:
        cmd = [find_pg_tool("psql"), "-X"]
        cmd.extend(self.connection.args())
        cmd.extend(extra)
        return cmd

    def query_lines(self, sql: str, *, description: Optional[str] = None) -> list[str]:
        """Run a read-only query and return its non-empty result rows.

        Output is unaligned and tuples-only, so each row is one line.
        Runs in dry-run mode too.

        Raises:
            ExecutionError: If psql fails or cannot be started
        """
        result = self.executor.run(
            self._command("-v", "ON_ERROR_STOP=1", "-t", "-A", "-c", sql),
            description=description,
            check=True,
            read_only=True,
            timeout=self.timeout,
            env=self.connection.env(),
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def test_connection(self) -> None:
        """Verify the target accepts a trivial query.

        Raises:
            ExecutionError: If the connection fails
        """
        try:
            self.query_lines("SELECT 1;", description=f"Connect to {self.connection.target}")
        except ExecutionError as e:
            raise ExecutionError(
                f"Connection test failed: {self.connection.target}",
                command=e.command,
                return_code=e.return_code,
                stderr=e.stderr,
                hint="Check host, port, user and PGSCOPE_DB_PASSWORD",
            ) from e
