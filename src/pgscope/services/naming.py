"""Qualified table names and dump statement classification.

A plain pg_dump script is only inspected line by line; these helpers
recognize the few statement shapes the preprocessor acts on and turn
identifiers into a single comparable ``schema.table`` form.
"""

import re
from typing import Optional


COPY_PREFIX = "COPY "
SETVAL_PREFIX = "SELECT PG_CATALOG.SETVAL("
COPY_TERMINATOR = "\\."
GUARD_METACOMMANDS = ("\\restrict", "\\unrestrict")

# First argument of setval(): the sequence name as a string literal
SETVAL_LITERAL_PATTERN = re.compile(r"setval\(\s*'((?:[^']|'')*)'", re.IGNORECASE)

# Tokens that end the table name in a COPY statement
_COPY_TARGET_END = re.compile(r"[ \t(]")


def normalize_qualified_name(name: str) -> str:
    """Normalize a table or sequence name for scope comparisons.

    Strips surrounding whitespace, one trailing ``;`` and all double
    quotes, then lower-cases the result.

    >>> normalize_qualified_name('"Public"."Users";')
    'public.users'
    """
    normalized = name.strip()
    if normalized.endswith(";"):
        normalized = normalized[:-1]
    return normalized.replace('"', "").lower()


def is_guard_metacommand(trimmed: str) -> bool:
    """True for ``\\restrict`` / ``\\unrestrict`` lines."""
    return trimmed.startswith(GUARD_METACOMMANDS)


def is_copy_statement(trimmed: str) -> bool:
    """True when the line starts a ``COPY ... FROM stdin`` block."""
    return trimmed.upper().startswith(COPY_PREFIX)


def is_copy_terminator(trimmed: str) -> bool:
    """True for the lone ``\\.`` line that ends a COPY payload."""
    return trimmed == COPY_TERMINATOR


def is_setval_statement(trimmed: str) -> bool:
    """True for ``SELECT pg_catalog.setval(...)`` lines."""
    return trimmed.upper().startswith(SETVAL_PREFIX)


def copy_target_table(copy_line: str) -> str:
    """Extract the normalized target table of a COPY statement.

    Returns an empty string when the line is not a COPY statement.

    >>> copy_target_table('COPY "Public"."Users" (id) FROM stdin;')
    'public.users'
    """
    trimmed = copy_line.strip()
    if not is_copy_statement(trimmed):
        return ""

    rest = trimmed[len(COPY_PREFIX):].strip()
    if not rest:
        return ""

    match = _COPY_TARGET_END.search(rest)
    if match:
        rest = rest[:match.start()]

    return normalize_qualified_name(rest)


def setval_target(setval_line: str) -> Optional[str]:
    """Extract the normalized sequence name passed to ``setval``.

    Returns None when the line carries no string literal argument.
    """
    match = SETVAL_LITERAL_PATTERN.search(setval_line)
    if not match:
        return None
    return normalize_qualified_name(match.group(1).replace("''", "'"))


def schema_of(qualified_name: str) -> str:
    """Schema part of a normalized ``schema.table`` name."""
    schema, _, _ = qualified_name.partition(".")
    return schema
