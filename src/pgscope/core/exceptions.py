"""Custom exceptions for pgscope.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from typing import Optional


class PgScopeError(Exception):
    """Base exception for all pgscope errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PgScopeError):
    """Configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class ValidationError(PgScopeError):
    """Input validation errors.

    Raised when:
    - Invalid port or job count
    - Malformed qualified table name
    """
    exit_code = 3


class ExecutionError(PgScopeError):
    """Command execution failures.

    Raised when:
    - Shell command returns non-zero exit code
    - Command cannot be started
    - Command times out
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class PrerequisiteError(PgScopeError):
    """Missing prerequisites.

    Raised when:
    - psql or pg_restore not found in PATH
    """
    exit_code = 6


# Domain-specific exceptions

class InputError(PgScopeError):
    """Backup file errors.

    Raised when:
    - Backup file not found
    - Backup file unreadable or empty
    """
    exit_code = 20


class ScopeResolutionError(PgScopeError):
    """Table scope could not be resolved.

    Raised when:
    - The insertable-table catalog query fails
    - The catalog query returns no insertable tables
    """
    exit_code = 21


class PreprocessError(PgScopeError):
    """Plain SQL backup could not be transformed.

    Raised when:
    - Reading the backup fails
    - Writing the temporary script fails
    - A line exceeds the maximum line length
    """
    exit_code = 22


class RestoreError(PgScopeError):
    """Restore tool failures.

    Raised when:
    - psql exits non-zero while replaying a script
    - pg_restore exits non-zero and reports errors
    """
    exit_code = 23

    def __init__(
        self,
        message: str,
        *,
        tool: Optional[str] = None,
        stderr: Optional[str] = None,
        return_code: Optional[int] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.tool = tool
        self.stderr = stderr
        self.return_code = return_code
