from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import Column, Table, delete, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from crm.backup.codec import Row, Snapshot
from crm.backup.errors import TableRestoreError, VersionMismatch, short_reason
from crm.backup.normalize import normalize_row
from crm.backup.tables import GOVERNED_TABLES, TableDescriptor, dependency_order
from crm.core.logger import backup_logger as logger
from crm.db import Base


@dataclass
class RestoreResult:
    success: bool
    records_restored: int = 0
    errors: List[str] = field(default_factory=list)


def parents_first(rows: List[Row], key: str, parent: str) -> List[Row]:
    """Order rows of a self-referencing table so a parent precedes its children."""
    ids = {row.get(key) for row in rows}
    placed: set = set()
    ordered: List[Row] = []
    pending = list(rows)
    while pending:
        blocked: List[Row] = []
        for row in pending:
            ref = row.get(parent)
            if ref is None or ref not in ids or ref in placed:
                ordered.append(row)
                placed.add(row.get(key))
            else:
                blocked.append(row)
        if len(blocked) == len(pending):
            # Cycle in the data itself; let the database reject it.
            ordered.extend(blocked)
            break
        pending = blocked
    return ordered


def batches(rows: Sequence[Row], batch_size: int, max_parameters: int) -> Iterator[List[Row]]:
    """
    Split rows into multi-row INSERT batches.

    A batch never mixes rows with different column sets and never binds more
    than ``max_parameters`` values.
    """
    current: List[Row] = []
    keys: Optional[frozenset] = None
    limit = batch_size
    for row in rows:
        row_keys = frozenset(row)
        if current and (row_keys != keys or len(current) >= limit):
            yield current
            current = []
        if not current:
            keys = row_keys
            limit = max(1, min(batch_size, max_parameters // max(1, len(row_keys))))
        current.append(row)
    if current:
        yield current


def kept_references(tables: Sequence[TableDescriptor]) -> List[Tuple[Table, Column, Column]]:
    """Foreign keys from tables outside the snapshot into tables it replaces."""
    names = {t.name for t in tables}
    refs = []
    for table in Base.metadata.sorted_tables:
        if table.name in names:
            continue
        for fk in table.foreign_keys:
            if fk.column.table.name in names:
                refs.append((table, fk.parent, fk.column))
    return refs


class RestoreOrchestrator:
    """
    Replace every governed table with the contents of a snapshot, atomically.

    Deletes run children-first and inserts parents-first, all inside one
    transaction. Any failure rolls the whole restore back.

    Tables outside the snapshot (backup job history) keep their rows. Their
    references into replaced tables are put back when the referenced row is
    restored, and stay NULL otherwise.
    """

    def __init__(
        self,
        engine: Engine,
        expected_version: str,
        tables: Sequence[TableDescriptor] = GOVERNED_TABLES,
        batch_size: int = 50,
        max_parameters: int = 65535,
        strict_version: bool = False,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.engine = engine
        self.expected_version = expected_version
        self.batch_size = batch_size
        self.max_parameters = max_parameters
        self.strict_version = strict_version
        # Fails fast on cycles or unknown dependencies.
        self.insert_order = dependency_order(tables)
        self.delete_order = list(reversed(self.insert_order))
        self.kept_references = kept_references(self.insert_order)

    def _check_version(self, snapshot: Snapshot, warnings: List[str]) -> None:
        if snapshot.version == self.expected_version:
            return
        mismatch = VersionMismatch(snapshot.version, self.expected_version)
        if self.strict_version:
            raise mismatch
        logger.warning("%s; continuing in lenient mode", mismatch)
        warnings.append(str(mismatch))

    def _prepare_rows(self, descriptor: TableDescriptor, raw_rows: List[Row]) -> List[Row]:
        columns = set(descriptor.table.columns.keys())
        # A NULL for a NOT NULL column with a server default falls back to the default.
        defaulted = {
            c.name
            for c in descriptor.table.columns
            if not c.nullable and c.server_default is not None
        }
        rows = []
        for raw in raw_rows:
            row = descriptor.decode_row(normalize_row(raw, columns))
            row = {k: v for k, v in row.items() if v is not None or k not in defaulted}
            if row:
                rows.append(row)
        if descriptor.self_ref:
            pk = [c.name for c in descriptor.table.primary_key.columns][0]
            rows = parents_first(rows, pk, descriptor.self_ref)
        return rows

    def _delete(self, conn: Connection, descriptor: TableDescriptor) -> None:
        try:
            conn.execute(delete(descriptor.table))
        except SQLAlchemyError as exc:
            raise TableRestoreError(descriptor.name, "delete", exc) from exc

    def _insert(self, conn: Connection, descriptor: TableDescriptor, raw_rows: List[Row]) -> int:
        restored = 0
        try:
            rows = self._prepare_rows(descriptor, raw_rows)
            for batch in batches(rows, self.batch_size, self.max_parameters):
                conn.execute(insert(descriptor.table).values(batch))
                restored += len(batch)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            raise TableRestoreError(descriptor.name, "insert", exc) from exc
        logger.debug("Restored %d rows into %s", restored, descriptor.name)
        return restored

    def _capture_links(self, conn: Connection) -> List[Tuple[Any, ...]]:
        links = []
        for table, column, target in self.kept_references:
            pk = list(table.primary_key.columns)[0]
            rows = conn.execute(select(pk, column).where(column.is_not(None))).all()
            if rows:
                links.append((table, pk, column, target, rows))
        return links

    def _relink(self, conn: Connection, links: List[Tuple[Any, ...]]) -> None:
        for table, pk, column, target, rows in links:
            wanted = {value for _, value in rows}
            present = set(conn.execute(select(target).where(target.in_(wanted))).scalars())
            for key, value in rows:
                if value in present:
                    conn.execute(update(table).where(pk == key).values({column.name: value}))

    def restore(self, snapshot: Snapshot) -> RestoreResult:
        warnings: List[str] = []
        try:
            self._check_version(snapshot, warnings)
        except VersionMismatch as exc:
            logger.error("Restore refused: %s", exc)
            return RestoreResult(success=False, records_restored=0, errors=[str(exc)])

        known = {t.name for t in self.insert_order}
        for name in snapshot.tables:
            if name not in known:
                warnings.append(f"Ignoring unknown table '{name}' in backup")

        restored = 0
        try:
            with self.engine.begin() as conn:
                links = self._capture_links(conn)
                for descriptor in self.delete_order:
                    self._delete(conn, descriptor)
                for descriptor in self.insert_order:
                    restored += self._insert(conn, descriptor, snapshot.rows(descriptor.name))
                self._relink(conn, links)
        except TableRestoreError as exc:
            logger.error("Restore rolled back (%s %s): %s", exc.phase, exc.table, exc.cause)
            return RestoreResult(success=False, records_restored=0, errors=warnings + [str(exc)])
        except SQLAlchemyError as exc:
            logger.error("Restore transaction failed: %s", exc)
            return RestoreResult(
                success=False,
                records_restored=0,
                errors=warnings + [f"Restore transaction failed: {short_reason(exc)}"],
            )

        logger.info("Restore committed: %d records", restored)
        return RestoreResult(success=True, records_restored=restored, errors=warnings)


__all__ = ["RestoreResult", "RestoreOrchestrator", "parents_first", "batches"]
