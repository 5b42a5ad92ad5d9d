"""Input validation utilities.

Provides validation for:
- Connection settings (ports, hosts)
- Restore settings (parallel job counts)
- Qualified table names given on the command line

All validators return the validated value or raise ValidationError.
"""

import re

from pgscope.core.exceptions import ValidationError


# Maximum parallel jobs handed to pg_restore
MAX_RESTORE_JOBS = 64

# schema.table, optionally double-quoted per part
QUALIFIED_NAME_PATTERN = re.compile(
    r'^\s*("[^"]+"|[A-Za-z_][A-Za-z0-9_$]*)\.("[^"]+"|[A-Za-z_][A-Za-z0-9_$]*)\s*;?\s*$'
)

# Characters that must never reach a connection argument
HOST_FORBIDDEN_CHARS = frozenset(" \t\r\n\x00;|&`$")


def validate_port(value: int) -> int:
    """Validate a port number.

    Args:
        value: Port number to validate

    Returns:
        The validated port number

    Raises:
        ValidationError: If port is out of valid range
    """
    if not 1 <= value <= 65535:
        raise ValidationError(
            f"Invalid port number: {value}",
            hint="Port must be between 1 and 65535",
        )
    return value


def validate_jobs(value: int) -> int:
    """Validate a pg_restore parallel job count.

    Raises:
        ValidationError: If the count is outside 1..MAX_RESTORE_JOBS
    """
    if not 1 <= value <= MAX_RESTORE_JOBS:
        raise ValidationError(
            f"Invalid job count: {value}",
            hint=f"Jobs must be between 1 and {MAX_RESTORE_JOBS}",
        )
    return value


def validate_host(value: str) -> str:
    """Validate a database host name, address or socket directory.

    Args:
        value: Host to validate

    Returns:
        The validated host

    Raises:
        ValidationError: If host is empty or contains unsafe characters
    """
    if not value or not value.strip():
        raise ValidationError(
            "Host cannot be empty",
            hint="Provide a host name, IP address or socket directory",
        )

    bad = sorted(c for c in set(value) if c in HOST_FORBIDDEN_CHARS)
    if bad:
        raise ValidationError(
            f"Host contains invalid characters: {value!r}",
            details=[f"Invalid: {', '.join(repr(c) for c in bad)}"],
        )
    return value.strip()


def validate_qualified_name(value: str) -> str:
    """Validate a ``schema.table`` name as typed by a user.

    Only the shape is checked; normalization happens in
    :func:`pgscope.services.naming.normalize_qualified_name`.

    Raises:
        ValidationError: If the value is not a two-part name
    """
    if not QUALIFIED_NAME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid table name: '{value}'",
            hint="Use the form schema.table, e.g. auth.users",
        )
    return value
