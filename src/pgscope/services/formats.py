"""Backup format detection.

pg_dump custom-format archives start with the ``PGDMP`` magic; plain
SQL scripts start with comments or statements.
"""

from enum import Enum
from pathlib import Path

from pgscope.core.exceptions import InputError


CUSTOM_FORMAT_MAGIC = b"PGDMP"

# First bytes typical of a plain pg_dump script ("--", "SET", blank lines)
PLAIN_SQL_LEADING_BYTES = frozenset(b"-S\n ")


class BackupFormat(Enum):
    """Kinds of backup files the restore path understands."""
    CUSTOM = "custom"
    PLAIN = "plain"

    @property
    def restore_tool(self) -> str:
        """Client tool that replays this format."""
        return "pg_restore" if self is BackupFormat.CUSTOM else "psql"


def detect_backup_format(path: Path) -> BackupFormat:
    """Classify a backup file by its first bytes.

    Content that matches neither shape is treated as custom format.

    Args:
        path: Backup file

    Returns:
        Detected format

    Raises:
        InputError: If the file cannot be read or is empty
    """
    try:
        with open(path, "rb") as f:
            header = f.read(len(CUSTOM_FORMAT_MAGIC))
    except OSError as e:
        raise InputError(
            f"Could not detect backup format: {path}",
            details=[str(e)],
        ) from e

    if not header:
        raise InputError(
            f"Could not detect backup format: {path} is empty",
            hint="Check that the dump completed successfully",
        )

    if header == CUSTOM_FORMAT_MAGIC:
        return BackupFormat.CUSTOM

    if header[0] in PLAIN_SQL_LEADING_BYTES:
        return BackupFormat.PLAIN

    return BackupFormat.CUSTOM
