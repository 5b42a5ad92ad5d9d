"""Privilege scope resolution.

Decides which tables' data a plain SQL restore may replay. Two mutually
exclusive scopes exist:

- AuthAllowlistScope: every ``public.*`` table and the migrations
  history table, plus an explicit set of ``auth.*`` tables the role can
  write to.
- AllInsertableScope: exactly the tables the role holds INSERT on,
  outside the system schemas.

Both are discovered from the target's catalog through psql. Table names
in the queries are built with ``format('%I.%I', ...)`` on the server.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterable, Optional, Union

from pgscope.core.context import ExecutionContext
from pgscope.core.exceptions import ExecutionError, ScopeResolutionError
from pgscope.core.executor import CommandExecutor
from pgscope.services.naming import normalize_qualified_name, schema_of, setval_target
from pgscope.services.psql import ConnectionParams, PsqlClient


AUTH_SCHEMA = "auth"
AUTH_FALLBACK_TABLE = "auth.users"
MIGRATIONS_TABLE = "supabase_migrations.schema_migrations"

# Schemas whose data is always replayed in auth-allowlist mode
IMPLICIT_SCHEMAS = ("public",)

# Sequence schemas accepted by setval in auth-allowlist mode
IMPLICIT_SEQUENCE_SCHEMAS = ("public", "supabase_migrations")

SYSTEM_SCHEMAS = ("pg_catalog", "information_schema")
SYSTEM_SCHEMA_PREFIXES = ("pg_toast",)

AUTH_TABLES_QUERY = """\
SELECT format('%I.%I', n.nspname, c.relname)
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = 'auth'
  AND c.relkind IN ('r', 'p')
  AND has_table_privilege(current_user, format('%I.%I', n.nspname, c.relname), 'INSERT')
ORDER BY c.relname;"""

INSERTABLE_TABLES_QUERY = """\
SELECT format('%I.%I', n.nspname, c.relname)
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE c.relkind IN ('r', 'p')
  AND n.nspname NOT IN ('pg_catalog', 'information_schema')
  AND n.nspname NOT LIKE 'pg_toast%'
  AND n.nspname NOT LIKE 'pg_temp_%'
  AND has_table_privilege(current_user, format('%I.%I', n.nspname, c.relname), 'INSERT')
ORDER BY n.nspname, c.relname;"""


def _is_system_name(name: str) -> bool:
    schema = schema_of(name)
    return schema in SYSTEM_SCHEMAS or schema.startswith(SYSTEM_SCHEMA_PREFIXES)


def _normalized_set(names: Iterable[str]) -> frozenset[str]:
    return frozenset(n for n in (normalize_qualified_name(name) for name in names) if n)


@dataclass(frozen=True)
class AuthAllowlistScope:
    """Public data, migrations history and an allowlist of auth tables."""

    tables: frozenset[str] = field(default_factory=frozenset)

    mode: ClassVar[str] = "auth-allowlist"

    def allows_table(self, table: str) -> bool:
        """Whether a COPY into ``table`` is replayed."""
        table = normalize_qualified_name(table)
        schema = schema_of(table)
        if schema in IMPLICIT_SCHEMAS:
            return True
        if schema == AUTH_SCHEMA:
            return table in self.tables
        return table == MIGRATIONS_TABLE

    def allows_setval(self, statement: str) -> bool:
        """Whether a ``setval`` statement is replayed.

        Sequences cannot be matched against table names, so any
        ``auth.*`` sequence is accepted once at least one auth table is
        in scope.
        """
        target = setval_target(statement)
        if not target:
            return False
        schema = schema_of(target)
        if schema in IMPLICIT_SEQUENCE_SCHEMAS:
            return True
        if schema == AUTH_SCHEMA:
            return bool(self.tables)
        return False


@dataclass(frozen=True)
class AllInsertableScope:
    """Every non-system table the connecting role can INSERT into."""

    tables: frozenset[str] = field(default_factory=frozenset)

    mode: ClassVar[str] = "all-insertable"

    def allows_table(self, table: str) -> bool:
        return normalize_qualified_name(table) in self.tables

    def allows_setval(self, statement: str) -> bool:
        target = setval_target(statement)
        if not target:
            return False
        return not _is_system_name(target)


TableScope = Union[AuthAllowlistScope, AllInsertableScope]


def is_allowed_copy_table(table: str, scope: TableScope) -> bool:
    """Whether COPY data for ``table`` survives preprocessing."""
    return scope.allows_table(table)


def is_allowed_setval_statement(statement: str, scope: TableScope) -> bool:
    """Whether a ``SELECT pg_catalog.setval(...)`` line survives preprocessing."""
    return scope.allows_setval(statement)


class ScopeSource(Enum):
    """Where a resolved scope came from."""
    OVERRIDE = "override"
    CATALOG = "catalog"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ScopeResolution:
    """A resolved scope and how it was obtained.

    ``reason`` is set when resolution fell back to the conservative
    ``auth.users`` default.
    """

    scope: TableScope
    source: ScopeSource
    reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.source is ScopeSource.FALLBACK

    @property
    def tables(self) -> list[str]:
        return sorted(self.scope.tables)


class PrivilegeScopeResolver:
    """Resolves table scopes from the target database's privileges."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        query_timeout: Optional[int] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.query_timeout = query_timeout

    def _client(self, connection: ConnectionParams) -> PsqlClient:
        return PsqlClient(
            self.ctx,
            self.executor,
            connection,
            timeout=self.query_timeout,
        )

    def resolve(
        self,
        connection: ConnectionParams,
        *,
        copy_all_insertable: bool = False,
        override: Optional[Iterable[str]] = None,
    ) -> ScopeResolution:
        """Resolve the scope selected by ``copy_all_insertable``."""
        if copy_all_insertable:
            return self.resolve_all_insertable(connection)
        return self.resolve_auth_allowlist(connection, override=override)

    def resolve_auth_allowlist(
        self,
        connection: ConnectionParams,
        *,
        override: Optional[Iterable[str]] = None,
    ) -> ScopeResolution:
        """Resolve the auth tables whose data may be restored.

        An override list skips the catalog entirely and keeps only its
        ``auth.*`` entries. Query failures and empty results fall back to
        ``auth.users`` and are reported as degraded, never raised.

        Args:
            connection: Target database
            override: Fixed table list, e.g. from configuration

        Returns:
            Resolution with an AuthAllowlistScope
        """
        if override:
            tables = frozenset(
                name for name in _normalized_set(override)
                if schema_of(name) == AUTH_SCHEMA
            )
            self.ctx.console.verbose(
                f"Using configured auth tables: {', '.join(sorted(tables)) or '(none)'}"
            )
            return ScopeResolution(AuthAllowlistScope(tables), ScopeSource.OVERRIDE)

        try:
            rows = self._client(connection).query_lines(
                AUTH_TABLES_QUERY,
                description="Discover writable auth tables",
            )
        except ExecutionError as e:
            detail = e.stderr or e.message
            return self._fallback(f"auth table query failed: {detail}")

        tables = _normalized_set(rows)
        if not tables:
            return self._fallback("no insertable auth tables for current role")

        return ScopeResolution(AuthAllowlistScope(tables), ScopeSource.CATALOG)

    def _fallback(self, reason: str) -> ScopeResolution:
        self.ctx.console.warn(f"{reason}; restoring only {AUTH_FALLBACK_TABLE}")
        return ScopeResolution(
            AuthAllowlistScope(frozenset({AUTH_FALLBACK_TABLE})),
            ScopeSource.FALLBACK,
            reason=reason,
        )

    def resolve_all_insertable(self, connection: ConnectionParams) -> ScopeResolution:
        """Resolve every non-system table the role can INSERT into.

        Raises:
            ScopeResolutionError: If the query fails or finds nothing
        """
        try:
            rows = self._client(connection).query_lines(
                INSERTABLE_TABLES_QUERY,
                description="Discover insertable tables",
            )
        except ExecutionError as e:
            raise ScopeResolutionError(
                f"Failed to query insertable tables: {e.stderr or e.message}",
                details=[f"Target: {connection.target}"],
                hint="Check connectivity, or restore without --all-insertable",
            ) from e

        tables = frozenset(name for name in _normalized_set(rows) if not _is_system_name(name))
        if not tables:
            raise ScopeResolutionError(
                "No insertable tables discovered for current role",
                details=[f"Target: {connection.target}"],
                hint=f"Grant INSERT to {connection.user} on the tables to restore",
            )

        return ScopeResolution(AllInsertableScope(tables), ScopeSource.CATALOG)
