"""Unit tests for scope policies and privilege scope resolution."""

from typing import Generator
from unittest.mock import MagicMock, patch

import pytest

from pgscope.core.context import ExecutionContext
from pgscope.core.exceptions import ExecutionError, ScopeResolutionError
from pgscope.core.executor import CommandResult
from pgscope.services.psql import ConnectionParams
from pgscope.services.scope import (
    AUTH_FALLBACK_TABLE,
    AUTH_TABLES_QUERY,
    INSERTABLE_TABLES_QUERY,
    AllInsertableScope,
    AuthAllowlistScope,
    PrivilegeScopeResolver,
    ScopeSource,
    is_allowed_copy_table,
    is_allowed_setval_statement,
)


CONNECTION = ConnectionParams(host="db.local", port=5432, database="app", user="restorer", password="s3cret")


def _result(stdout: str = "", stderr: str = "", code: int = 0) -> CommandResult:
    return CommandResult(command=["psql"], return_code=code, stdout=stdout, stderr=stderr)


@pytest.fixture
def ctx() -> ExecutionContext:
    """Quiet execution context."""
    return ExecutionContext(verbosity=0)


@pytest.fixture
def executor() -> MagicMock:
    """Mock CommandExecutor."""
    return MagicMock()


@pytest.fixture(autouse=True)
def fake_psql() -> Generator[None, None, None]:
    """Pretend psql is installed."""
    with patch("pgscope.services.psql.shutil.which", return_value="/usr/bin/psql"):
        yield


class TestAuthAllowlistScope:
    """Tests for the default public + auth allowlist policy."""

    def test_public_always_allowed(self):
        """Any public table is in scope, even with no auth tables."""
        scope = AuthAllowlistScope()
        assert is_allowed_copy_table("public.users", scope)
        assert is_allowed_copy_table("public.anything", scope)

    def test_auth_requires_membership(self):
        """Auth tables are in scope only when listed."""
        scope = AuthAllowlistScope(frozenset({"auth.users"}))
        assert is_allowed_copy_table("auth.users", scope)
        assert not is_allowed_copy_table("auth.sso_domains", scope)
        assert not is_allowed_copy_table("auth.schema_migrations", scope)

    def test_migrations_table_allowed(self):
        """Only the migrations history table of its schema is allowed."""
        scope = AuthAllowlistScope()
        assert is_allowed_copy_table("supabase_migrations.schema_migrations", scope)
        assert not is_allowed_copy_table("supabase_migrations.seed_files", scope)

    def test_other_schemas_denied(self):
        """Everything else is out of scope."""
        scope = AuthAllowlistScope(frozenset({"auth.users"}))
        assert not is_allowed_copy_table("storage.objects", scope)
        assert not is_allowed_copy_table("realtime.messages", scope)

    def test_setval_public_and_migrations(self):
        """Sequences in public and supabase_migrations are kept."""
        scope = AuthAllowlistScope()
        assert is_allowed_setval_statement(
            "SELECT pg_catalog.setval('public.users_id_seq', 42, true);", scope
        )
        assert is_allowed_setval_statement(
            "SELECT pg_catalog.setval('supabase_migrations.seq', 1, false);", scope
        )

    def test_setval_auth_needs_any_auth_table(self):
        """Auth sequences are kept once any auth table is in scope."""
        line = "SELECT pg_catalog.setval('auth.refresh_tokens_id_seq', 9, true);"
        assert not is_allowed_setval_statement(line, AuthAllowlistScope())
        assert is_allowed_setval_statement(line, AuthAllowlistScope(frozenset({"auth.users"})))

    def test_setval_other_schema_denied(self):
        """Sequences elsewhere are dropped."""
        line = "SELECT pg_catalog.setval('storage.seq', 3, true);"
        assert not is_allowed_setval_statement(line, AuthAllowlistScope(frozenset({"auth.users"})))


class TestAllInsertableScope:
    """Tests for the all-insertable policy."""

    def test_exact_membership(self):
        """Only listed tables are in scope; public is not implicit."""
        scope = AllInsertableScope(frozenset({"storage.objects", "public.users"}))
        assert is_allowed_copy_table("storage.objects", scope)
        assert is_allowed_copy_table('"Public"."Users"', scope)
        assert not is_allowed_copy_table("public.sessions", scope)
        assert not is_allowed_copy_table("supabase_migrations.schema_migrations", scope)

    def test_setval_accepts_user_sequences(self):
        """Non-system sequences are kept."""
        scope = AllInsertableScope(frozenset({"storage.objects"}))
        assert is_allowed_setval_statement(
            "SELECT pg_catalog.setval('storage.objects_id_seq', 5, true);", scope
        )
        assert is_allowed_setval_statement(
            "SELECT pg_catalog.setval('public.users_id_seq', 1, true);", scope
        )

    @pytest.mark.parametrize("sequence", [
        "pg_catalog.some_seq",
        "information_schema.some_seq",
        "pg_toast.some_seq",
        "pg_toast_temp_1.some_seq",
    ])
    def test_setval_rejects_system_sequences(self, sequence: str):
        """System schemas are never touched."""
        scope = AllInsertableScope(frozenset({"public.users"}))
        line = f"SELECT pg_catalog.setval('{sequence}', 1, true);"
        assert not is_allowed_setval_statement(line, scope)


class TestResolveAuthAllowlist:
    """Tests for auth allowlist resolution."""

    def test_override_keeps_only_auth_entries(self, ctx: ExecutionContext, executor: MagicMock):
        """Override lists skip the catalog and drop non-auth names."""
        resolver = PrivilegeScopeResolver(ctx, executor)
        resolution = resolver.resolve_auth_allowlist(
            CONNECTION,
            override=["auth.users", "AUTH.SSO_DOMAINS", "public.users"],
        )

        assert resolution.source is ScopeSource.OVERRIDE
        assert resolution.scope.tables == frozenset({"auth.users", "auth.sso_domains"})
        assert not resolution.degraded
        executor.run.assert_not_called()

    def test_catalog_result(self, ctx: ExecutionContext, executor: MagicMock):
        """Rows from the catalog query become the allowlist."""
        executor.run.return_value = _result("auth.identities\nauth.users\n\n")
        resolver = PrivilegeScopeResolver(ctx, executor)

        resolution = resolver.resolve_auth_allowlist(CONNECTION)

        assert resolution.source is ScopeSource.CATALOG
        assert resolution.tables == ["auth.identities", "auth.users"]

        cmd = executor.run.call_args.args[0]
        assert cmd[0] == "/usr/bin/psql"
        assert AUTH_TABLES_QUERY in cmd
        assert "-t" in cmd and "-A" in cmd
        kwargs = executor.run.call_args.kwargs
        assert kwargs["read_only"] is True
        assert kwargs["env"] == {"PGPASSWORD": "s3cret"}
        assert "s3cret" not in " ".join(cmd)

    def test_query_failure_falls_back(self, ctx: ExecutionContext, executor: MagicMock):
        """A failed query degrades to auth.users instead of raising."""
        executor.run.side_effect = ExecutionError(
            "Command failed",
            return_code=2,
            stderr="could not connect to server",
        )
        resolver = PrivilegeScopeResolver(ctx, executor)

        resolution = resolver.resolve_auth_allowlist(CONNECTION)

        assert resolution.degraded
        assert resolution.source is ScopeSource.FALLBACK
        assert resolution.scope.tables == frozenset({AUTH_FALLBACK_TABLE})
        assert "could not connect" in resolution.reason

    def test_empty_result_falls_back(self, ctx: ExecutionContext, executor: MagicMock):
        """No writable auth tables also degrades to auth.users."""
        executor.run.return_value = _result("\n")
        resolver = PrivilegeScopeResolver(ctx, executor)

        resolution = resolver.resolve_auth_allowlist(CONNECTION)

        assert resolution.degraded
        assert resolution.tables == [AUTH_FALLBACK_TABLE]

    def test_override_tables_sorted(self, ctx: ExecutionContext, executor: MagicMock):
        """Resolved tables are listed in sorted order."""
        resolver = PrivilegeScopeResolver(ctx, executor)
        resolution = resolver.resolve_auth_allowlist(
            CONNECTION,
            override=["auth.users", "auth.identities", "auth.audit_log_entries"],
        )
        assert resolution.tables == ["auth.audit_log_entries", "auth.identities", "auth.users"]
        executor.run.assert_not_called()


class TestResolveAllInsertable:
    """Tests for all-insertable resolution."""

    def test_catalog_result(self, ctx: ExecutionContext, executor: MagicMock):
        """Rows from the catalog query become the scope."""
        executor.run.return_value = _result("auth.users\npublic.users\nstorage.objects\n")
        resolver = PrivilegeScopeResolver(ctx, executor, query_timeout=30)

        resolution = resolver.resolve_all_insertable(CONNECTION)

        assert isinstance(resolution.scope, AllInsertableScope)
        assert resolution.tables == ["auth.users", "public.users", "storage.objects"]
        assert INSERTABLE_TABLES_QUERY in executor.run.call_args.args[0]
        assert executor.run.call_args.kwargs["timeout"] == 30

    def test_query_failure_is_fatal(self, ctx: ExecutionContext, executor: MagicMock):
        """There is no fallback for all-insertable mode."""
        executor.run.side_effect = ExecutionError(
            "Command failed",
            return_code=2,
            stderr="permission denied for schema pg_catalog",
        )
        resolver = PrivilegeScopeResolver(ctx, executor)

        with pytest.raises(ScopeResolutionError) as exc:
            resolver.resolve_all_insertable(CONNECTION)
        assert "permission denied" in str(exc.value)
        assert exc.value.exit_code == 21

    def test_empty_result_is_fatal(self, ctx: ExecutionContext, executor: MagicMock):
        """Restoring zero tables is never intended."""
        executor.run.return_value = _result("")
        resolver = PrivilegeScopeResolver(ctx, executor)

        with pytest.raises(ScopeResolutionError) as exc:
            resolver.resolve_all_insertable(CONNECTION)
        assert "No insertable tables" in str(exc.value)

    def test_resolve_dispatches_on_mode(self, ctx: ExecutionContext, executor: MagicMock):
        """resolve() picks the policy from the flag."""
        executor.run.return_value = _result("public.users\n")
        resolver = PrivilegeScopeResolver(ctx, executor)

        assert isinstance(
            resolver.resolve(CONNECTION, copy_all_insertable=True).scope,
            AllInsertableScope,
        )
        assert isinstance(
            resolver.resolve(CONNECTION, override=["auth.users"]).scope,
            AuthAllowlistScope,
        )
