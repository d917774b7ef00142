from __future__ import annotations

import gzip
import json
import zlib
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from crm.backup.errors import MalformedArtifact
from crm.backup.normalize import column_name

Row = Dict[str, Any]

REQUIRED_KEYS = ("version", "timestamp")


@dataclass
class Snapshot:
    version: str
    timestamp: str
    tables: Dict[str, List[Row]] = field(default_factory=dict)

    def rows(self, table: str) -> List[Row]:
        # Tables added to the schema after a backup was taken restore as empty.
        return self.tables.get(table) or []

    def total_rows(self) -> int:
        return sum(len(rows) for rows in self.tables.values())

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "timestamp": self.timestamp, "tables": self.tables}


def json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode(snapshot: Snapshot) -> bytes:
    """Serialize a snapshot to canonical JSON and gzip it."""
    text = json.dumps(
        snapshot.to_dict(),
        default=json_default,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    # mtime=0 keeps the output a pure function of the snapshot.
    return gzip.compress(text.encode("utf-8"), mtime=0)


def decode(blob: bytes) -> Snapshot:
    """
    Decompress and parse a snapshot.

    Raises MalformedArtifact when the payload does not decompress, is not JSON,
    or is missing the top-level snapshot structure.
    """
    try:
        raw = gzip.decompress(blob)
    except (OSError, EOFError, zlib.error) as exc:
        raise MalformedArtifact(f"Backup payload could not be decompressed: {exc}") from exc

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedArtifact(f"Backup payload is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedArtifact("Backup payload must be a JSON object")

    missing = [key for key in REQUIRED_KEYS if key not in payload]
    # Older backups keep their rows under "data".
    tables = payload.get("tables", payload.get("data"))
    if tables is None:
        missing.append("tables")
    if missing:
        raise MalformedArtifact(f"Backup payload missing required keys: {', '.join(missing)}")

    if not isinstance(tables, dict):
        raise MalformedArtifact("Backup 'tables' must be an object")
    for name, rows in tables.items():
        if rows is None:
            continue
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise MalformedArtifact(f"Backup table '{name}' must be a list of objects")

    # Older backups also name tables in camelCase (userRoles, auditLogs).
    by_table: Dict[str, List[Row]] = {}
    for name, rows in tables.items():
        by_table.setdefault(column_name(name), []).extend(rows or [])

    return Snapshot(
        version=str(payload["version"]),
        timestamp=str(payload["timestamp"]),
        tables=by_table,
    )


__all__ = ["Row", "Snapshot", "json_default", "encode", "decode"]
