from __future__ import annotations

import hashlib
import os
import time
from pathlib import Path
from typing import Optional

from crm.backup.service import ARTIFACT_EXTENSION, BackupService
from crm.core.settings import get_settings
from crm.db import make_engine

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_BACKUPS_DIR = BASE_DIR / "backups"


def backups_dir() -> Path:
    """
    Resolve the artifact directory (in order):
      1. BACKUPS_DIR env var.
      2. Default backend/backups.
    """
    env = os.getenv("BACKUPS_DIR")
    path = Path(env) if env else DEFAULT_BACKUPS_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def build_service() -> BackupService:
    settings = get_settings()
    return BackupService(make_engine(settings.database_url), settings)


def encryption_key() -> Optional[str]:
    return get_settings().backup_encryption_key


def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def now_ts() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def latest_artifact(directory: Optional[Path] = None) -> Optional[Path]:
    # CLI and HTTP artifacts use different name stamps; order by write time.
    artifacts = sorted(
        (directory or backups_dir()).glob(f"*{ARTIFACT_EXTENSION}"),
        key=lambda path: path.stat().st_mtime,
    )
    return artifacts[-1] if artifacts else None
