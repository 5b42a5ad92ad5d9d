"""Plain SQL backup preprocessing.

Turns a full pg_dump plain-text script into a data-only script limited
to a table scope:

- ``\\restrict`` / ``\\unrestrict`` guard lines are removed
- COPY blocks are kept only for tables in scope, payload untouched
- ``setval`` calls are kept only for sequences in scope
- everything else (DDL, grants, comments) is dropped
- every kept table is truncated once, before any data is loaded
- triggers are disabled for the duration of the load

The input is scanned once. Kept lines are spooled to a scratch file
while the truncate list is collected, then the output is assembled as
header, truncates, spooled body, footer.
"""

import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, Iterator, Optional, TextIO

from pgscope.core.config import DEFAULT_MAX_LINE_LENGTH
from pgscope.core.exceptions import PreprocessError
from pgscope.core.output import console
from pgscope.services.naming import (
    copy_target_table,
    is_copy_statement,
    is_copy_terminator,
    is_guard_metacommand,
    is_setval_statement,
)
from pgscope.services.scope import TableScope


TEMP_PREFIX = "pgscope-restore-"
TEMP_SUFFIX = ".sql"

SCRIPT_HEADER = (
    "-- pgscope: disable triggers during restore\n"
    "SET session_replication_role = replica;\n"
    "\n"
)
SCRIPT_FOOTER = (
    "\n"
    "-- pgscope: restore normal trigger behavior\n"
    "SET session_replication_role = DEFAULT;\n"
)

# Non-UTF-8 payload bytes pass through unchanged
_TEXT_OPTIONS = {"encoding": "utf-8", "errors": "surrogateescape", "newline": ""}


def truncate_statement(table: str) -> str:
    return f"TRUNCATE TABLE {table} CASCADE;\n"


def _strip_terminator(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith(("\n", "\r")):
        return line[:-1]
    return line


def _emit(out: TextIO, line: str) -> None:
    out.write(line if line.endswith(("\n", "\r")) else line + "\n")


@dataclass
class PreprocessStats:
    """What a preprocessing run kept and dropped."""

    kept_tables: list[str] = field(default_factory=list)
    skipped_tables: list[str] = field(default_factory=list)
    copy_rows: int = 0
    setval_kept: int = 0
    setval_skipped: int = 0
    guards_removed: int = 0
    lines_dropped: int = 0
    lines_read: int = 0


@dataclass
class PreprocessResult:
    """Location and statistics of a preprocessed script."""

    path: Path
    stats: PreprocessStats


@dataclass
class _ScanState:
    in_copy: bool = False
    keep_copy: bool = False
    copy_table: str = ""
    copy_line: int = 0
    truncated: dict[str, None] = field(default_factory=dict)


def remove_temp_file(path: Path) -> None:
    """Delete a scratch file, reporting but not raising on failure."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        console.debug(f"Could not remove temporary file {path}: {e}")


class BackupPreprocessor:
    """Single-pass scope filter for plain SQL dumps."""

    def __init__(
        self,
        scope: TableScope,
        *,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        temp_dir: Optional[Path] = None,
    ) -> None:
        """Initialize preprocessor.

        Args:
            scope: Tables whose data is replayed
            max_line_length: Longest accepted input line in characters,
                not counting the line terminator
            temp_dir: Directory for the output script (system default if None)
        """
        self.scope = scope
        self.max_line_length = max_line_length
        self.temp_dir = temp_dir

    def _lines(self, source: TextIO) -> Iterator[str]:
        limit = self.max_line_length
        line_no = 0
        while True:
            # Room for the longest terminator, "\r\n"
            line = source.readline(limit + 2)
            if not line:
                return
            line_no += 1
            if len(_strip_terminator(line)) > limit:
                raise PreprocessError(
                    f"Line {line_no} exceeds the maximum line length of {limit} characters",
                    hint="Raise restore.max_line_length in the configuration",
                )
            yield line

    def transform(self, source: TextIO, output: TextIO) -> PreprocessStats:
        """Filter ``source`` into ``output``.

        Args:
            source: Plain SQL dump opened as text
            output: Destination for the transformed script

        Returns:
            Statistics for the run

        Raises:
            PreprocessError: If a line is too long or the input ends
                inside a COPY block
        """
        stats = PreprocessStats()
        state = _ScanState()

        with tempfile.TemporaryFile("w+", dir=self.temp_dir, **_TEXT_OPTIONS) as body:
            for line in self._lines(source):
                stats.lines_read += 1
                self._scan_line(line, state, body, stats)

            if state.in_copy:
                raise PreprocessError(
                    f"Backup ends inside the COPY block for "
                    f"{state.copy_table or 'unknown table'} started at line {state.copy_line}",
                    hint="The dump is truncated or corrupt; recreate it with pg_dump",
                )

            output.write(SCRIPT_HEADER)
            for table in state.truncated:
                output.write(truncate_statement(table))
            if state.truncated:
                output.write("\n")

            body.seek(0)
            shutil.copyfileobj(body, output)
            output.write(SCRIPT_FOOTER)

        stats.kept_tables = list(state.truncated)
        return stats

    def _scan_line(
        self,
        line: str,
        state: _ScanState,
        body: TextIO,
        stats: PreprocessStats,
    ) -> None:
        trimmed = line.strip()

        if is_guard_metacommand(trimmed):
            stats.guards_removed += 1
            return

        if state.in_copy:
            if state.keep_copy:
                _emit(body, line)
            if is_copy_terminator(trimmed):
                state.in_copy = False
            elif state.keep_copy:
                stats.copy_rows += 1
            return

        if is_copy_statement(trimmed):
            table = copy_target_table(trimmed)
            keep = bool(table) and self.scope.allows_table(table)
            state.in_copy = True
            state.keep_copy = keep
            state.copy_table = table
            state.copy_line = stats.lines_read
            if keep:
                state.truncated.setdefault(table, None)
                _emit(body, line)
            elif table and table not in stats.skipped_tables:
                stats.skipped_tables.append(table)
            return

        if is_setval_statement(trimmed):
            if self.scope.allows_setval(trimmed):
                stats.setval_kept += 1
                _emit(body, line)
            else:
                stats.setval_skipped += 1
            return

        stats.lines_dropped += 1

    def preprocess(self, input_path: Path) -> PreprocessResult:
        """Write the scoped script for ``input_path`` to a temporary file.

        The caller owns the returned file and must remove it. On any
        failure the partial file is removed before the error propagates.

        Raises:
            PreprocessError: If reading or writing fails
        """
        input_path = Path(input_path)
        try:
            source = open(input_path, "r", **_TEXT_OPTIONS)
        except OSError as e:
            raise PreprocessError(
                f"Cannot read backup file: {input_path}",
                details=[str(e)],
            ) from e

        with source:
            try:
                fd, name = tempfile.mkstemp(
                    prefix=TEMP_PREFIX,
                    suffix=TEMP_SUFFIX,
                    dir=self.temp_dir,
                )
            except OSError as e:
                raise PreprocessError(
                    "Cannot create temporary restore script",
                    details=[str(e)],
                ) from e

            output_path = Path(name)
            try:
                with os.fdopen(fd, "w", **_TEXT_OPTIONS) as output:
                    stats = self.transform(source, output)
            except OSError as e:
                remove_temp_file(output_path)
                raise PreprocessError(
                    f"Failed to preprocess backup: {input_path}",
                    details=[str(e)],
                ) from e
            except BaseException:
                remove_temp_file(output_path)
                raise

        console.verbose(
            f"Preprocessed {input_path}: {len(stats.kept_tables)} tables kept, "
            f"{len(stats.skipped_tables)} skipped"
        )
        return PreprocessResult(path=output_path, stats=stats)


@contextmanager
def preprocessed_script(
    input_path: Path,
    scope: TableScope,
    *,
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
    temp_dir: Optional[Path] = None,
) -> Generator[PreprocessResult, None, None]:
    """Preprocess a backup and remove the script when the block exits."""
    preprocessor = BackupPreprocessor(
        scope,
        max_line_length=max_line_length,
        temp_dir=temp_dir,
    )
    result = preprocessor.preprocess(input_path)
    try:
        yield result
    finally:
        remove_temp_file(result.path)
