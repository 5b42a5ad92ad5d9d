"""Fixtures that put fake psql and pg_restore binaries on PATH."""

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest


FAKE_PSQL = """#!/bin/sh
{
  echo "TOOL=$(basename "$0")"
  echo "PGPASSWORD=${PGPASSWORD:-}"
  for arg in "$@"; do echo "$arg"; done
  echo "---"
} >> "$FAKE_PG_LOG"

for arg in "$@"; do
  if [ "$arg" = "-c" ]; then
    if [ -n "${FAKE_QUERY_ERROR:-}" ]; then
      echo "$FAKE_QUERY_ERROR" >&2
      exit 2
    fi
    printf '%s' "${FAKE_QUERY_OUTPUT:-}"
    exit 0
  fi
done

while [ $# -gt 0 ]; do
  if [ "$1" = "-f" ]; then
    cp "$2" "$FAKE_SCRIPT_COPY"
  fi
  shift
done

if [ -n "${FAKE_RESTORE_ERROR:-}" ]; then
  echo "$FAKE_RESTORE_ERROR" >&2
  exit 3
fi
exit "${FAKE_RESTORE_EXIT:-0}"
"""

FAKE_PG_RESTORE = """#!/bin/sh
{
  echo "TOOL=$(basename "$0")"
  echo "PGPASSWORD=${PGPASSWORD:-}"
  for arg in "$@"; do echo "$arg"; done
  echo "---"
} >> "$FAKE_PG_LOG"

if [ -n "${FAKE_RESTORE_STDERR:-}" ]; then
  echo "$FAKE_RESTORE_STDERR" >&2
fi
exit "${FAKE_RESTORE_EXIT:-0}"
"""


@dataclass
class FakeTools:
    """Handles for inspecting fake tool invocations."""

    bin_dir: Path
    log: Path
    script_copy: Path

    def calls(self, tool: Optional[str] = None) -> list[list[str]]:
        """Logged invocations, oldest first.

        Each entry starts with TOOL=<name> and PGPASSWORD=<value> lines,
        followed by the arguments.
        """
        if not self.log.exists():
            return []
        calls = []
        current: list[str] = []
        for line in self.log.read_text().splitlines():
            if line == "---":
                if tool is None or current[0] == f"TOOL={tool}":
                    calls.append(current)
                current = []
            else:
                current.append(line)
        return calls

    def query_calls(self) -> list[list[str]]:
        """psql catalog queries."""
        return [c for c in self.calls("psql") if "-c" in c]

    def replay_calls(self) -> list[list[str]]:
        """psql script replays."""
        return [c for c in self.calls("psql") if "-f" in c]


def _install(path: Path, content: str) -> None:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture
def fake_tools(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeTools:
    """Install fake psql and pg_restore first on PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _install(bin_dir / "psql", FAKE_PSQL)
    _install(bin_dir / "pg_restore", FAKE_PG_RESTORE)

    tools = FakeTools(
        bin_dir=bin_dir,
        log=tmp_path / "calls.log",
        script_copy=tmp_path / "replayed.sql",
    )
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("FAKE_PG_LOG", str(tools.log))
    monkeypatch.setenv("FAKE_SCRIPT_COPY", str(tools.script_copy))
    for name in [
        "FAKE_QUERY_OUTPUT",
        "FAKE_QUERY_ERROR",
        "FAKE_RESTORE_ERROR",
        "FAKE_RESTORE_EXIT",
        "FAKE_RESTORE_STDERR",
        "PGPASSWORD",
        "PGSCOPE_DB_PASSWORD",
    ]:
        monkeypatch.delenv(name, raising=False)
    return tools


PLAIN_DUMP = """\
--
-- PostgreSQL database dump
--
\\restrict 8Xy2
SET client_encoding = 'UTF8';
CREATE TABLE auth.users (id integer, email text);
COPY auth.users (id, email) FROM stdin;
1\talice@example.com
\\.
COPY auth.sso_domains (id, domain) FROM stdin;
9\texample.com
\\.
CREATE SCHEMA storage;
COPY storage.objects (id, name) FROM stdin;
5\tavatar.png
\\.
COPY public.profiles (id, user_id) FROM stdin;
1\t1
\\.
SELECT pg_catalog.setval('public.profiles_id_seq', 1, true);
SELECT 99;
\\unrestrict 8Xy2
"""


@pytest.fixture
def plain_backup(tmp_path: Path) -> Path:
    """A small plain SQL dump."""
    path = tmp_path / "backup.sql"
    path.write_text(PLAIN_DUMP)
    return path


@pytest.fixture
def custom_backup(tmp_path: Path) -> Path:
    """A file carrying the custom archive magic."""
    path = tmp_path / "backup.dump"
    path.write_bytes(b"PGDMP\x01\x0e\x00\x04\x08\x01\x01")
    return path
