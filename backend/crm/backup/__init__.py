from crm.backup.codec import Snapshot, decode, encode
from crm.backup.errors import (
    BackupError,
    DecryptionError,
    IntegrityError,
    MalformedArtifact,
    MissingKeyError,
    TableRestoreError,
    VersionMismatch,
)
from crm.backup.integrity import open_artifact, seal
from crm.backup.reader import SnapshotReader
from crm.backup.restore import RestoreOrchestrator, RestoreResult
from crm.backup.service import BackupArtifact, BackupService
from crm.backup.tables import GOVERNED_TABLES, TableDescriptor

__all__ = [
    "Snapshot",
    "encode",
    "decode",
    "seal",
    "open_artifact",
    "SnapshotReader",
    "RestoreOrchestrator",
    "RestoreResult",
    "BackupArtifact",
    "BackupService",
    "GOVERNED_TABLES",
    "TableDescriptor",
    "BackupError",
    "MissingKeyError",
    "IntegrityError",
    "DecryptionError",
    "MalformedArtifact",
    "VersionMismatch",
    "TableRestoreError",
]
