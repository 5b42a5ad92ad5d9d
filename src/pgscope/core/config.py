"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides for secrets
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgscope.core.exceptions import ConfigurationError
from pgscope.core.validation import (
    validate_host,
    validate_jobs,
    validate_port,
    validate_qualified_name,
)


# Default configuration paths
DEFAULT_CONFIG_DIR = Path.home() / ".pgscope"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_AUDIT_LOG_PATH = DEFAULT_CONFIG_DIR / "audit.log"

# 10 MiB, large enough for wide COPY payload rows
DEFAULT_MAX_LINE_LENGTH = 10 * 1024 * 1024


class ConnectionConfig(BaseModel):
    """Target database connection (password comes from the environment)."""

    host: str = "127.0.0.1"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        return validate_host(v)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return validate_port(v)


class RestoreConfig(BaseModel):
    """Restore behavior defaults."""

    clean_first: bool = True
    no_owner: bool = True
    single_transaction: bool = False
    jobs: int = 4

    # Plain SQL scope selection
    copy_all_insertable: bool = False
    auth_copy_tables: list[str] = Field(default_factory=list)

    # Resource limits
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH
    query_timeout: Optional[int] = 60  # seconds
    restore_timeout: Optional[int] = None  # seconds, None = no limit

    @field_validator("jobs")
    @classmethod
    def validate_jobs(cls, v: int) -> int:
        return validate_jobs(v)

    @field_validator("auth_copy_tables")
    @classmethod
    def validate_auth_copy_tables(cls, v: list[str]) -> list[str]:
        for name in v:
            validate_qualified_name(name)
        return v

    @field_validator("max_line_length")
    @classmethod
    def validate_max_line_length(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("max_line_length must be at least 1024")
        return v

    @field_validator("query_timeout", "restore_timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("timeouts must be positive (or omitted for no limit)")
        return v


class AuditConfig(BaseModel):
    """Audit log settings."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG_PATH


class PgScopeConfig(BaseModel):
    """Root configuration model.

    Loaded from ~/.pgscope/config.yaml. Passwords are NOT stored in this
    file - they come from environment variables.
    """

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    restore: RestoreConfig = Field(default_factory=RestoreConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def load(cls, path: Path) -> "PgScopeConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: pgscope config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration: expected a mapping in {path}",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {path}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "PgScopeConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class SecretsConfig(BaseSettings):
    """Secrets loaded from environment variables.

    These are NEVER stored in config files.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    pgscope_db_password: Optional[str] = Field(None, alias="PGSCOPE_DB_PASSWORD")

    # Standard libpq variable, used when the pgscope one is unset
    pgpassword: Optional[str] = Field(None, alias="PGPASSWORD")

    @property
    def db_password(self) -> Optional[str]:
        """Password for the target database, if any is configured."""
        return self.pgscope_db_password or self.pgpassword


class AppConfig:
    """Application configuration combining config file and secrets.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[PgScopeConfig] = None,
    ) -> None:
        """Initialize application configuration.

        Args:
            config_path: Path to config file (uses default if None)
            config: Pre-loaded config (skips file loading if provided)
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or PgScopeConfig.load_or_default(self.config_path)
        self._secrets = SecretsConfig()

    @property
    def config(self) -> PgScopeConfig:
        """Get the root configuration."""
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        """Get the secrets configuration."""
        return self._secrets

    @property
    def connection(self) -> ConnectionConfig:
        """Shortcut to connection config."""
        return self._config.connection

    @property
    def restore(self) -> RestoreConfig:
        """Shortcut to restore config."""
        return self._config.restore

    @property
    def audit(self) -> AuditConfig:
        """Shortcut to audit config."""
        return self._config.audit


def get_example_config() -> str:
    """Generate example configuration file content."""
    return """# pgscope configuration
# Passwords are read from the environment, NOT stored here:
#   PGSCOPE_DB_PASSWORD (falls back to PGPASSWORD)

# Target database
connection:
  host: 127.0.0.1
  port: 5432
  database: postgres
  user: postgres

# Restore behavior
restore:
  clean_first: true          # pg_restore -c (custom format only)
  no_owner: true             # pg_restore -O (custom format only)
  single_transaction: false  # -1 for both psql and pg_restore
  jobs: 4                    # pg_restore -j (custom format only)

  # Plain SQL scope: false = public + allowed auth tables + migrations,
  # true = every table the role can INSERT into
  copy_all_insertable: false

  # Fixed auth.* allowlist; empty = detect from target privileges
  auth_copy_tables: []
  #  - auth.users
  #  - auth.identities

  max_line_length: 10485760   # longest accepted dump line
  query_timeout: 60          # seconds, catalog queries
  # restore_timeout: 3600    # seconds, psql/pg_restore run

# Audit log (JSON lines)
audit:
  enabled: true
  # log_path: /home/me/.pgscope/audit.log
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o600)
