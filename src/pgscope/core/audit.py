"""Audit trail of restores, scope resolutions and written scripts.

Each event is appended to a JSON-lines file (``~/.pgscope/audit.log`` by
default) under an exclusive lock. Parameters whose names look like
secrets are redacted. The file is rotated once it grows past a size
limit. Failing to write the log never fails the audited operation.
"""

import fcntl
import getpass
import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pgscope.core.config import DEFAULT_AUDIT_LOG_PATH
from pgscope.core.output import console


DEFAULT_MAX_SIZE_MB = 20
DEFAULT_BACKUP_COUNT = 5

REDACTED = "***REDACTED***"

# Substrings of parameter names whose values are never logged
SENSITIVE_KEYS = ("password", "passwd", "secret", "token", "credential")


class AuditEventType(Enum):
    RESTORE_PLAIN = "restore.plain"
    RESTORE_CUSTOM = "restore.custom"
    SCOPE_RESOLVE = "scope.resolve"
    SCOPE_DEGRADED = "scope.degraded"
    PREPROCESS = "preprocess.write"


class AuditResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DRY_RUN = "dry_run"
    DEGRADED = "degraded"


def _redact(key: str, value: Any) -> Any:
    if any(s in key.lower() for s in SENSITIVE_KEYS):
        return REDACTED
    if isinstance(value, dict):
        return {k: _redact(k, v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(key, v) for v in value]
    return value


def _whoami() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


@dataclass
class AuditEvent:
    """One line of the audit log."""
    event_type: AuditEventType
    result: AuditResult
    target_type: Optional[str] = None
    target_name: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    error: Optional[str] = None
    actor: str = field(default_factory=_whoami)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "event_type": self.event_type.value,
            "result": self.result.value,
            "actor": self.actor,
            "target": {"type": self.target_type, "name": self.target_name},
            "parameters": _redact("parameters", self.parameters),
            "message": self.message,
            "error": self.error,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class AuditLogger:
    """Appends audit events for one pgscope invocation.

    All events written by one logger share a session id.
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        max_size_mb: int = DEFAULT_MAX_SIZE_MB,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
    ) -> None:
        self.log_path = Path(log_path or DEFAULT_AUDIT_LOG_PATH)
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.enabled = enabled
        self.session_id = str(uuid.uuid4())

    def log(self, event: AuditEvent) -> None:
        """Append ``event``; problems are reported at debug level only."""
        if not self.enabled:
            return

        event.session_id = self.session_id
        try:
            self._append(event.to_json() + "\n")
        except OSError as e:
            console.debug(f"Failed to write audit log {self.log_path}: {e}")
            return

        try:
            if self.log_path.stat().st_size > self.max_size_bytes:
                self._rotate()
        except OSError as e:
            console.debug(f"Audit log rotation failed: {e}")

    def _append(self, line: str) -> None:
        self.log_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(self.log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        with os.fdopen(fd, "a") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            f.write(line)
            f.flush()
            os.fsync(f.fileno())

    def _rotate(self) -> None:
        # audit.log -> audit.1 -> ... -> audit.<backup_count>, oldest dropped
        backups = [self.log_path.with_suffix(f".{i}") for i in range(1, self.backup_count + 1)]
        backups[-1].unlink(missing_ok=True)
        for older, newer in zip(reversed(backups[1:]), reversed(backups[:-1])):
            if newer.exists():
                newer.rename(older)
        self.log_path.rename(backups[0])
        self.log_path.touch(mode=0o600)

    def _record(
        self,
        event_type: AuditEventType,
        result: AuditResult,
        target_type: str,
        target_name: str,
        **details: Any,
    ) -> None:
        details["parameters"] = details.get("parameters") or {}
        self.log(AuditEvent(
            event_type=event_type,
            result=result,
            target_type=target_type,
            target_name=target_name,
            **details,
        ))

    def log_success(
        self,
        event_type: AuditEventType,
        target_type: str,
        target_name: str,
        message: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        self._record(
            event_type, AuditResult.SUCCESS, target_type, target_name,
            message=message, parameters=parameters,
        )

    def log_failure(
        self,
        event_type: AuditEventType,
        target_type: str,
        target_name: str,
        error: str,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        self._record(
            event_type, AuditResult.FAILURE, target_type, target_name,
            error=error, parameters=parameters,
        )

    def log_degraded(
        self,
        event_type: AuditEventType,
        target_type: str,
        target_name: str,
        message: str,
    ) -> None:
        """Record a scope that fell back to the narrow default."""
        self._record(event_type, AuditResult.DEGRADED, target_type, target_name, message=message)

    def log_dry_run(
        self,
        event_type: AuditEventType,
        target_type: str,
        target_name: str,
        message: Optional[str] = None,
    ) -> None:
        self._record(event_type, AuditResult.DRY_RUN, target_type, target_name, message=message)


def configure_audit_logger(
    log_path: Optional[Path] = None,
    enabled: bool = True,
) -> AuditLogger:
    """Build the audit logger for one command from its configuration."""
    return AuditLogger(log_path=log_path, enabled=enabled)
