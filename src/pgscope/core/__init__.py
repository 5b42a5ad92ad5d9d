"""Core framework components for pgscope."""

from pgscope.core.exceptions import (
    PgScopeError,
    ConfigurationError,
    ValidationError,
    ExecutionError,
    PrerequisiteError,
    InputError,
    ScopeResolutionError,
    PreprocessError,
    RestoreError,
)

from pgscope.core.context import ExecutionContext, create_context
from pgscope.core.output import console, Console, Verbosity
from pgscope.core.config import AppConfig, PgScopeConfig
from pgscope.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult, configure_audit_logger
from pgscope.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "PgScopeError",
    "ConfigurationError",
    "ValidationError",
    "ExecutionError",
    "PrerequisiteError",
    "InputError",
    "ScopeResolutionError",
    "PreprocessError",
    "RestoreError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "PgScopeConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "configure_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
