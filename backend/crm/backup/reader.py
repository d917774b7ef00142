from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.engine import Engine

from crm.backup.codec import Row, Snapshot
from crm.backup.tables import GOVERNED_TABLES, TableDescriptor, read_groups
from crm.core.logger import backup_logger as logger


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SnapshotReader:
    """
    Read every governed table into a Snapshot.

    Tables are read a few at a time, each read on its own pooled connection.
    No locks are taken: rows written while the read is in progress may or may
    not appear, so the snapshot is not guaranteed to match any single instant.
    """

    def __init__(
        self,
        engine: Engine,
        version: str,
        tables: Sequence[TableDescriptor] = GOVERNED_TABLES,
        group_size: int = 4,
    ) -> None:
        self.engine = engine
        self.version = version
        self.tables = tuple(tables)
        self.group_size = group_size

    def _read_table(self, descriptor: TableDescriptor) -> List[Row]:
        with self.engine.connect() as conn:
            result = conn.execute(select(descriptor.table))
            return [dict(row) for row in result.mappings()]

    def read(self) -> Snapshot:
        data: Dict[str, List[Row]] = {}
        with ThreadPoolExecutor(max_workers=self.group_size) as pool:
            for group in read_groups(self.tables, self.group_size):
                futures = [(t.name, pool.submit(self._read_table, t)) for t in group]
                # result() re-raises the first failure; no partial snapshot escapes.
                for name, future in futures:
                    data[name] = future.result()
                    logger.debug("Read %d rows from %s", len(data[name]), name)

        # Keep the table map in declaration order regardless of read grouping.
        tables = {t.name: data[t.name] for t in self.tables}
        snapshot = Snapshot(version=self.version, timestamp=utc_timestamp(), tables=tables)
        logger.info(
            "Snapshot read: %d tables, %d rows", len(tables), snapshot.total_rows()
        )
        return snapshot


__all__ = ["SnapshotReader", "utc_timestamp"]
