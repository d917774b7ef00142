from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from crm import db_models as m
from crm.audit import record_audit


def test_record_audit_writes_row(seeded):
    ok = record_audit(
        seeded,
        "USR-1",
        "restore",
        "Database",
        after={"recordsRestored": 3, "at": datetime(2025, 1, 15, 9, 30), "amount": Decimal("1.50")},
        ip_address="127.0.0.1",
    )
    assert ok
    with seeded.connect() as conn:
        row = conn.execute(
            select(m.AuditLog.__table__).where(m.AuditLog.action == "restore")
        ).mappings().one()
    assert row["actor_id"] == "USR-1"
    assert row["after"] == {"recordsRestored": 3, "at": "2025-01-15T09:30:00", "amount": "1.50"}
    assert row["ip_address"] == "127.0.0.1"
    assert row["created_at"] is not None


def test_record_audit_failure_is_not_raised(seeded):
    # unknown actor violates the users foreign key
    assert record_audit(seeded, "USR-404", "create", "BackupJob") is False
