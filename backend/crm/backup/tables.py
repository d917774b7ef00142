"""
Governed tables and their dependency graph.

Every table the backup covers is described once here. The restore engine
derives both the deletion order (children first) and the insertion order
(parents first) from ``depends_on``; ``test_tables`` checks the declared
edges against the foreign keys in ``crm.db_models`` so a new referencing
table cannot be added without updating this list.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Table

from crm import db_models  # noqa: F401  (registers tables on Base.metadata)
from crm.backup.codec import Row
from crm.db import Base

RowDecoder = Callable[[Row], Row]

SMALL = "small"
MEDIUM = "medium"
LARGE = "large"


def _passthrough(row: Row) -> Row:
    return row


def _activity_defaults(row: Row) -> Row:
    out = dict(row)
    if not out.get("status"):
        out["status"] = "pending"
    if not out.get("priority"):
        out["priority"] = "medium"
    return out


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    depends_on: Tuple[str, ...] = ()
    size_class: str = SMALL
    decode_row: RowDecoder = _passthrough
    # Column referencing the same table; rows are inserted parents first.
    self_ref: Optional[str] = None

    @property
    def table(self) -> Table:
        return Base.metadata.tables[self.name]


GOVERNED_TABLES: Tuple[TableDescriptor, ...] = (
    # identity & access control
    TableDescriptor("users"),
    TableDescriptor("roles"),
    TableDescriptor("permissions"),
    TableDescriptor("user_roles", ("users", "roles")),
    TableDescriptor("role_permissions", ("roles", "permissions")),
    TableDescriptor("api_keys", ("users",)),
    # CRM entities and their side tables
    TableDescriptor("account_categories"),
    TableDescriptor("tags", ("users",)),
    TableDescriptor("accounts", ("users", "account_categories"), MEDIUM),
    TableDescriptor("contacts", ("users", "accounts"), MEDIUM),
    TableDescriptor("opportunities", ("users", "accounts"), MEDIUM),
    TableDescriptor("leads", ("users", "accounts", "contacts", "opportunities"), MEDIUM),
    TableDescriptor(
        "activities",
        ("users", "accounts", "contacts", "leads", "opportunities"),
        LARGE,
        decode_row=_activity_defaults,
    ),
    TableDescriptor("entity_tags", ("tags", "users"), MEDIUM),
    TableDescriptor("comments", ("users",), MEDIUM, self_ref="parent_id"),
    TableDescriptor("comment_reactions", ("comments", "users")),
    TableDescriptor("comment_attachments", ("comments", "users")),
    TableDescriptor("comment_subscriptions", ("comments", "users")),
    # provenance
    TableDescriptor("audit_logs", ("users",), LARGE),
    TableDescriptor("id_patterns"),
)

# Job history describes the backups themselves; restores leave it in place.
KEPT_TABLES = frozenset({"backup_jobs"})


class DependencyCycle(ValueError):
    pass


def dependency_order(tables: Sequence[TableDescriptor]) -> List[TableDescriptor]:
    """
    Topologically sort descriptors so every table follows the tables it
    depends on. Ties keep declaration order, so the result is stable.
    """
    by_name: Dict[str, TableDescriptor] = {t.name: t for t in tables}
    if len(by_name) != len(tables):
        raise ValueError("Duplicate table descriptor")
    for t in tables:
        unknown = [dep for dep in t.depends_on if dep not in by_name]
        if unknown:
            raise ValueError(f"Table '{t.name}' depends on unknown table(s): {', '.join(unknown)}")

    remaining = {t.name: {dep for dep in t.depends_on if dep != t.name} for t in tables}
    ordered: List[TableDescriptor] = []
    while remaining:
        ready = [t for t in tables if t.name in remaining and not remaining[t.name]]
        if not ready:
            raise DependencyCycle(
                f"Dependency cycle between tables: {', '.join(sorted(remaining))}"
            )
        for t in ready:
            ordered.append(t)
            del remaining[t.name]
        for deps in remaining.values():
            deps.difference_update(t.name for t in ready)
    return ordered


def deletion_order(tables: Sequence[TableDescriptor]) -> List[TableDescriptor]:
    return list(reversed(dependency_order(tables)))


def read_groups(tables: Iterable[TableDescriptor], group_size: int) -> List[List[TableDescriptor]]:
    """Batch tables of the same size class into groups of at most ``group_size``."""
    if group_size < 1:
        raise ValueError("group_size must be >= 1")
    tables = list(tables)
    groups: List[List[TableDescriptor]] = []
    for size_class in (SMALL, MEDIUM, LARGE):
        same = [t for t in tables if t.size_class == size_class]
        for start in range(0, len(same), group_size):
            groups.append(same[start : start + group_size])
    others = [t for t in tables if t.size_class not in (SMALL, MEDIUM, LARGE)]
    for start in range(0, len(others), group_size):
        groups.append(others[start : start + group_size])
    return groups


__all__ = [
    "TableDescriptor",
    "GOVERNED_TABLES",
    "KEPT_TABLES",
    "DependencyCycle",
    "dependency_order",
    "deletion_order",
    "read_groups",
]
