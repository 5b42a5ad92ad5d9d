"""Unit tests for backup format detection."""

from pathlib import Path

import pytest

from pgscope.core.exceptions import InputError
from pgscope.services.formats import BackupFormat, detect_backup_format


def _write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


class TestDetectBackupFormat:
    """Tests for detect_backup_format."""

    def test_custom_magic(self, tmp_path: Path):
        """Files starting with PGDMP are custom archives."""
        backup = _write(tmp_path / "app.dump", b"PGDMP\x01\x0e\x00\x04\x08")
        assert detect_backup_format(backup) is BackupFormat.CUSTOM

    @pytest.mark.parametrize("content", [
        b"--\n-- PostgreSQL database dump\n--\n",
        b"SET statement_timeout = 0;\n",
        b"\n\nSET client_encoding = 'UTF8';\n",
        b" SELECT 1;\n",
    ])
    def test_plain_sql(self, tmp_path: Path, content: bytes):
        """Comments, SET statements and blank lines mean plain SQL."""
        backup = _write(tmp_path / "app.sql", content)
        assert detect_backup_format(backup) is BackupFormat.PLAIN

    def test_unknown_defaults_to_custom(self, tmp_path: Path):
        """Unrecognized content is handed to pg_restore."""
        backup = _write(tmp_path / "mystery.bin", b"\x1f\x8b\x08\x00garbage")
        assert detect_backup_format(backup) is BackupFormat.CUSTOM

    def test_short_file(self, tmp_path: Path):
        """Files shorter than the magic are classified by their first byte."""
        backup = _write(tmp_path / "tiny.sql", b"--")
        assert detect_backup_format(backup) is BackupFormat.PLAIN

    def test_empty_file(self, tmp_path: Path):
        """Empty files cannot be classified."""
        backup = _write(tmp_path / "empty.sql", b"")
        with pytest.raises(InputError) as exc:
            detect_backup_format(backup)
        assert "empty" in str(exc.value)

    def test_missing_file(self, tmp_path: Path):
        """Missing files are input errors."""
        with pytest.raises(InputError) as exc:
            detect_backup_format(tmp_path / "nope.sql")
        assert exc.value.exit_code == 20

    def test_restore_tool(self):
        """Each format maps to its client tool."""
        assert BackupFormat.CUSTOM.restore_tool == "pg_restore"
        assert BackupFormat.PLAIN.restore_tool == "psql"
