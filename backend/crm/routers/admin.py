from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from crm.audit import record_audit
from crm.backup import BackupService
from crm.backup.errors import short_reason
from crm.backup.service import artifact_filename
from crm.core.limiter import BACKUP_RATE_LIMIT, limiter
from crm.core.logger import backup_logger as logger
from crm.core.settings import Settings, get_settings
from crm.db import get_engine
from crm.db_models import User as DBUser
from crm.models import BackupJobOut, RestoreFailure, RestoreResponse
from crm.security import User, require_role

router = APIRouter(prefix="/api/admin", tags=["admin"])

KEY_NOT_CONFIGURED = "Server configuration error: encryption key not configured"


def get_backup_service(
    engine: Engine = Depends(get_engine), settings: Settings = Depends(get_settings)
) -> BackupService:
    return BackupService(engine, settings)


def _actor_id(engine: Engine, email: str) -> Optional[str]:
    with engine.connect() as conn:
        return conn.execute(select(DBUser.id).where(DBUser.email == email)).scalar()


def _client_ip(request: Request) -> Optional[str]:
    client = request.client
    return client.host if client and client.host else None


def _key_missing() -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": KEY_NOT_CONFIGURED})


@router.post("/backup")
@limiter.limit(BACKUP_RATE_LIMIT)
async def create_backup(
    request: Request,
    user: User = Depends(require_role("admin")),
    service: BackupService = Depends(get_backup_service),
    settings: Settings = Depends(get_settings),
):
    key = settings.backup_encryption_key
    if not key:
        logger.error("Backup refused: BACKUP_ENCRYPTION_KEY not set")
        return _key_missing()

    actor = await run_in_threadpool(_actor_id, service.engine, user.email)
    job_id = await run_in_threadpool(service.start_job, actor)
    try:
        artifact = await run_in_threadpool(service.create_backup, key)
    except Exception as exc:
        # Any failure closes the job.
        logger.exception("Backup %s failed", job_id)
        await run_in_threadpool(service.fail_job, job_id, short_reason(exc))
        return JSONResponse(status_code=500, content={"error": "Failed to create backup"})

    filename = artifact_filename()
    await run_in_threadpool(service.complete_job, job_id, artifact, filename)
    await run_in_threadpool(
        record_audit,
        service.engine,
        actor,
        "create",
        "BackupJob",
        job_id,
        None,
        {"status": "completed", "checksum": artifact.checksum, "size": artifact.size},
        _client_ip(request),
        request.headers.get("user-agent"),
    )
    return Response(
        content=artifact.data,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Backup-Checksum": artifact.checksum,
        },
    )


@router.post(
    "/restore",
    response_model=RestoreResponse,
    responses={400: {"model": RestoreFailure}},
)
@limiter.limit(BACKUP_RATE_LIMIT)
async def restore_backup(
    request: Request,
    user: User = Depends(require_role("admin")),
    service: BackupService = Depends(get_backup_service),
    settings: Settings = Depends(get_settings),
):
    body = await request.body()
    if not body:
        return JSONResponse(status_code=400, content={"error": "Missing backup data"})

    key = settings.backup_encryption_key
    if not key:
        logger.error("Restore refused: BACKUP_ENCRYPTION_KEY not set")
        return _key_missing()

    result = await run_in_threadpool(service.restore_backup, body, key)
    if not result.success:
        failure = RestoreFailure(details=result.errors)
        return JSONResponse(status_code=400, content=failure.model_dump())

    actor = await run_in_threadpool(_actor_id, service.engine, user.email)
    await run_in_threadpool(
        record_audit,
        service.engine,
        actor,
        "restore",
        "Database",
        None,
        None,
        {"recordsRestored": result.records_restored, "warnings": result.errors},
        _client_ip(request),
        request.headers.get("user-agent"),
    )
    return RestoreResponse(
        success=True, recordsRestored=result.records_restored, warnings=result.errors
    )


@router.get("/backup-jobs", response_model=List[BackupJobOut])
def list_backup_jobs(
    user: User = Depends(require_role("admin")),
    service: BackupService = Depends(get_backup_service),
):
    return [
        BackupJobOut(
            id=job["id"],
            status=job["status"],
            startedAt=job["started_at"],
            completedAt=job["completed_at"],
            sizeBytes=job["size_bytes"],
            checksum=job["checksum"],
            initiatedBy=job["initiated_by"],
            errorMessage=job["error_message"],
            createdAt=job["created_at"],
        )
        for job in service.list_jobs()
    ]
