"""Services for scoping, preprocessing and replaying PostgreSQL backups."""

from pgscope.services.formats import BackupFormat, detect_backup_format
from pgscope.services.preprocess import BackupPreprocessor, preprocessed_script
from pgscope.services.psql import ConnectionParams, PsqlClient
from pgscope.services.restore import RestoreRequest, RestoreService
from pgscope.services.scope import PrivilegeScopeResolver

__all__ = [
    "BackupFormat",
    "BackupPreprocessor",
    "ConnectionParams",
    "PrivilegeScopeResolver",
    "PsqlClient",
    "RestoreRequest",
    "RestoreService",
    "detect_backup_format",
    "preprocessed_script",
]
