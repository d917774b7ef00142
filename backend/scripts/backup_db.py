from __future__ import annotations

import argparse
from pathlib import Path

if __package__ in (None, ""):
    import sys

    sys.path.append(str(Path(__file__).resolve().parent))
    from _backup_utils import (  # type: ignore  # noqa: F401
        backups_dir,
        build_service,
        encryption_key,
        now_ts,
    )
else:
    from ._backup_utils import backups_dir, build_service, encryption_key, now_ts

from crm.backup.errors import short_reason
from crm.backup.service import ARTIFACT_EXTENSION


def backup_db(out: Path | None) -> int:
    key = encryption_key()
    if not key:
        print("[ERR] BACKUP_ENCRYPTION_KEY is not set; refusing to create an unencrypted backup.")
        return 2

    target = out or backups_dir() / f"healthtrixss-backup-{now_ts()}{ARTIFACT_EXTENSION}"
    service = build_service()
    job_id = service.start_job(None)
    try:
        artifact = service.create_backup(key)
    except Exception as exc:
        service.fail_job(job_id, short_reason(exc))
        print(f"[ERR] Backup failed: {exc}")
        return 1

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(artifact.data)
    service.complete_job(job_id, artifact, str(target))

    print(f"[OK] Backup created: {target}")
    print(f"[INFO] sha256={artifact.checksum} size={artifact.size}")
    return 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Write an encrypted, checksummed CRM backup artifact (*.htb)."
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Artifact path. If omitted, a timestamped file in the backups dir.",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    raise SystemExit(backup_db(args.out))
