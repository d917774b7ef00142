from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine

from crm.backup import codec, integrity
from crm.backup.errors import BackupError, MissingKeyError
from crm.backup.reader import SnapshotReader
from crm.backup.restore import RestoreOrchestrator, RestoreResult
from crm.backup.tables import GOVERNED_TABLES, TableDescriptor
from crm.core.logger import backup_logger as logger
from crm.core.settings import Settings, get_settings
from crm.db_models import BackupJob

ARTIFACT_EXTENSION = ".htb"


@dataclass(frozen=True)
class BackupArtifact:
    data: bytes
    checksum: str
    size: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def artifact_filename(prefix: str = "healthtrixss-backup") -> str:
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{prefix}-{millis}{ARTIFACT_EXTENSION}"


class BackupService:
    """Create and restore encrypted, checksummed snapshots of the CRM database."""

    def __init__(
        self,
        engine: Engine,
        settings: Optional[Settings] = None,
        tables: Sequence[TableDescriptor] = GOVERNED_TABLES,
    ) -> None:
        settings = settings or get_settings()
        self.engine = engine
        self.version = settings.backup_version
        self.reader = SnapshotReader(
            engine,
            version=self.version,
            tables=tables,
            group_size=settings.backup_read_group_size,
        )
        self.orchestrator = RestoreOrchestrator(
            engine,
            expected_version=self.version,
            tables=tables,
            batch_size=settings.backup_batch_size,
            max_parameters=settings.backup_max_parameters,
            strict_version=settings.backup_strict_version,
        )

    # ---------------- backup ----------------
    def create_backup(self, key: Optional[str]) -> BackupArtifact:
        if not key:
            raise MissingKeyError()
        snapshot = self.reader.read()
        data = integrity.seal(codec.encode(snapshot), key)
        artifact = BackupArtifact(data=data, checksum=integrity.checksum_of(data), size=len(data))
        logger.info("Backup created: checksum=%s size=%d", artifact.checksum, artifact.size)
        return artifact

    # ---------------- restore ----------------
    def load_snapshot(self, data: bytes, key: Optional[str]) -> codec.Snapshot:
        """Verify, decrypt and decode an artifact without touching the database."""
        return codec.decode(integrity.open_artifact(data, key))

    def restore_backup(self, data: bytes, key: Optional[str]) -> RestoreResult:
        if not key:
            raise MissingKeyError("BACKUP_ENCRYPTION_KEY is required to restore backups")
        try:
            snapshot = self.load_snapshot(data, key)
        except BackupError as exc:
            logger.error("Restore rejected before any change: %s", exc)
            return RestoreResult(success=False, records_restored=0, errors=[str(exc)])
        return self.orchestrator.restore(snapshot)

    # ---------------- job bookkeeping ----------------
    def start_job(self, initiated_by: Optional[str]) -> str:
        job_id = str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(
                insert(BackupJob).values(
                    id=job_id, status="in_progress", started_at=_utcnow(), initiated_by=initiated_by
                )
            )
        return job_id

    def complete_job(self, job_id: str, artifact: BackupArtifact, path: Optional[str] = None) -> None:
        self._update_job(
            job_id,
            status="completed",
            checksum=artifact.checksum,
            size_bytes=artifact.size,
            completed_at=_utcnow(),
            path=path,
        )

    def fail_job(self, job_id: str, message: str) -> None:
        self._update_job(job_id, status="failed", error_message=message, completed_at=_utcnow())

    def _update_job(self, job_id: str, **values: Any) -> None:
        with self.engine.begin() as conn:
            conn.execute(update(BackupJob).where(BackupJob.id == job_id).values(**values))

    def list_jobs(self) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            stmt = select(BackupJob.__table__).order_by(
                BackupJob.created_at.desc(), BackupJob.started_at.desc()
            )
            result = conn.execute(stmt)
            return [dict(row) for row in result.mappings()]


__all__ = [
    "ARTIFACT_EXTENSION",
    "BackupArtifact",
    "BackupService",
    "artifact_filename",
]
