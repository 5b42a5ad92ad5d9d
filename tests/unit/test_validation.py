"""Unit tests for the validation module."""

import pytest

from pgscope.core.validation import (
    validate_host,
    validate_jobs,
    validate_port,
    validate_qualified_name,
    MAX_RESTORE_JOBS,
)
from pgscope.core.exceptions import ValidationError


class TestValidatePort:
    """Tests for port validation."""

    def test_valid_ports(self):
        """Ports within range should pass."""
        assert validate_port(1) == 1
        assert validate_port(5432) == 5432
        assert validate_port(65535) == 65535

    def test_invalid_ports(self):
        """Ports outside range should fail."""
        for port in [0, -1, 65536, 100000]:
            with pytest.raises(ValidationError) as exc:
                validate_port(port)
            assert "Invalid port" in str(exc.value)


class TestValidateJobs:
    """Tests for pg_restore job count validation."""

    def test_valid_counts(self):
        """Counts from 1 to the maximum should pass."""
        assert validate_jobs(1) == 1
        assert validate_jobs(4) == 4
        assert validate_jobs(MAX_RESTORE_JOBS) == MAX_RESTORE_JOBS

    def test_zero_jobs(self):
        """Zero jobs should fail."""
        with pytest.raises(ValidationError):
            validate_jobs(0)

    def test_too_many_jobs(self):
        """Counts above the maximum should fail with a hint."""
        with pytest.raises(ValidationError) as exc:
            validate_jobs(MAX_RESTORE_JOBS + 1)
        assert str(MAX_RESTORE_JOBS) in exc.value.hint


class TestValidateHost:
    """Tests for host validation."""

    def test_valid_hosts(self):
        """Names, addresses and socket directories should pass."""
        assert validate_host("localhost") == "localhost"
        assert validate_host("db.example.com") == "db.example.com"
        assert validate_host("10.0.0.5") == "10.0.0.5"
        assert validate_host("::1") == "::1"
        assert validate_host("/var/run/postgresql") == "/var/run/postgresql"

    def test_empty_host(self):
        """Empty hosts should fail."""
        with pytest.raises(ValidationError) as exc:
            validate_host("")
        assert "cannot be empty" in str(exc.value)

    def test_shell_characters(self):
        """Hosts with shell metacharacters should fail."""
        for host in ["db;rm", "db|cat", "db&", "$(id)", "`id`", "db host"]:
            with pytest.raises(ValidationError):
                validate_host(host)


class TestValidateQualifiedName:
    """Tests for schema.table name validation."""

    def test_valid_names(self):
        """Two-part names should pass unchanged."""
        assert validate_qualified_name("auth.users") == "auth.users"
        assert validate_qualified_name("AUTH.SSO_DOMAINS") == "AUTH.SSO_DOMAINS"
        assert validate_qualified_name('"Auth"."Users"') == '"Auth"."Users"'

    def test_invalid_names(self):
        """Names without exactly one schema part should fail."""
        for name in ["users", "a.b.c", "", ".users", "auth.", "auth users"]:
            with pytest.raises(ValidationError):
                validate_qualified_name(name)
