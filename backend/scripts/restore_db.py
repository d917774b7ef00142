from __future__ import annotations

import argparse
from pathlib import Path

if __package__ in (None, ""):
    import sys

    sys.path.append(str(Path(__file__).resolve().parent))
    from _backup_utils import (  # type: ignore  # noqa: F401
        build_service,
        encryption_key,
        latest_artifact,
        sha256_file,
    )
else:
    from ._backup_utils import build_service, encryption_key, latest_artifact, sha256_file

from crm.backup import BackupError


def restore_db(artifact: Path | None, verify_only: bool = False) -> int:
    key = encryption_key()
    if not key:
        print("[ERR] BACKUP_ENCRYPTION_KEY is not set; cannot decrypt backups.")
        return 2

    target = artifact or latest_artifact()
    if target is None:
        print("[ERR] No backup artifacts found.")
        return 3
    if not target.exists():
        print(f"[ERR] Artifact not found: {target}")
        return 3

    data = target.read_bytes()
    print(f"[INFO] artifact={target} file_sha256={sha256_file(target)}")
    service = build_service()

    if verify_only:
        try:
            snapshot = service.load_snapshot(data, key)
        except BackupError as exc:
            print(f"[ERR] {exc}")
            return 4
        print(
            f"[OK] Artifact verified: version={snapshot.version} "
            f"timestamp={snapshot.timestamp} rows={snapshot.total_rows()}"
        )
        return 0

    result = service.restore_backup(data, key)
    for warning in result.errors if result.success else []:
        print(f"[WARN] {warning}")
    if not result.success:
        for error in result.errors:
            print(f"[ERR] {error}")
        return 4

    print(f"[OK] Restored {result.records_restored} records from: {target}")
    return 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Restore the CRM database from an encrypted backup artifact."
    )
    parser.add_argument(
        "--artifact",
        type=Path,
        default=None,
        help="Path to a specific artifact (*.htb). If omitted, uses latest.",
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Check checksum, decryption and format without touching the database.",
    )
    return parser.parse_args()


if __name__ == "__main__":
    options = _parse_args()
    raise SystemExit(restore_db(options.artifact, options.verify_only))
