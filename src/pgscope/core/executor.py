"""Subprocess runner for psql and pg_restore.

Every external command goes through CommandExecutor.run so that dry-run
handling, timeouts and logging behave the same for all of them. Secrets
are passed as environment overrides; only their names are logged.
"""

import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional

from pgscope.core.context import ExecutionContext
from pgscope.core.exceptions import ExecutionError


@dataclass
class CommandResult:
    """Exit status and captured output of one command."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0


class CommandExecutor:
    """Runs client tools on behalf of the services."""

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        read_only: bool = False,
        timeout: Optional[int] = None,
        env: Optional[dict[str, str]] = None,
    ) -> CommandResult:
        """Run ``command`` and capture its output.

        In dry-run mode only ``read_only`` commands are executed; the
        rest report what would run and return a successful empty result.

        Args:
            command: Program and arguments
            description: Step shown to the user
            check: Raise on a non-zero exit
            read_only: Command does not modify the target
            timeout: Seconds before the command is abandoned
            env: Variables added to the inherited environment

        Returns:
            CommandResult with stdout as produced and stderr stripped

        Raises:
            ExecutionError: If the command cannot start, times out, or
                exits non-zero while ``check`` is set
        """
        if description:
            self.ctx.console.step(description)

        display = shlex.join(command)
        self.ctx.console.debug(f"Running: {display}")
        if env:
            self.ctx.console.debug(f"Environment overrides: {', '.join(sorted(env))}")

        if self.ctx.dry_run and not read_only:
            self.ctx.console.dry_run_msg(f"Would run: {display}")
            return CommandResult(command=command, return_code=0, stdout="", stderr="")

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
                env={**os.environ, **env} if env else None,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or display}",
                command=display,
            )
        except OSError as e:
            raise ExecutionError(
                f"Failed to execute '{command[0]}': {e}",
                command=display,
            ) from e

        result = CommandResult(
            command=command,
            return_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=(completed.stderr or "").strip(),
        )

        if check and not result.success:
            raise ExecutionError(
                f"Command failed: {description or display}",
                command=display,
                return_code=result.return_code,
                stderr=result.stderr or None,
            )

        return result
