from __future__ import annotations

import os
import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict

# Keep the rotating backup log out of the working tree.
os.environ.setdefault("BACKUP_LOG_FILE", str(Path(tempfile.gettempdir()) / "crm-backup-tests.log"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import func, insert, select  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from crm import db_models as m  # noqa: E402
from crm.backup.tables import GOVERNED_TABLES  # noqa: E402
from crm.core.limiter import limiter  # noqa: E402
from crm.core.settings import Settings, get_settings  # noqa: E402
from crm.db import Base, get_engine, make_engine  # noqa: E402
from crm.main import app  # noqa: E402
from crm.security import create_access_token  # noqa: E402

KEY = "test-backup-key"
ADMIN_EMAIL = "admin@healthtrixss.test"


@pytest.fixture
def engine(tmp_path: Path):
    eng = make_engine(f"sqlite:///{tmp_path / 'crm.sqlite3'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def seeded(engine: Engine) -> Engine:
    seed_crm(engine)
    return engine


def row_counts(engine: Engine) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    with engine.connect() as conn:
        for t in GOVERNED_TABLES:
            counts[t.name] = conn.execute(select(func.count()).select_from(t.table)).scalar_one()
    return counts


def dump_tables(engine: Engine) -> Dict[str, list]:
    out: Dict[str, list] = {}
    with engine.connect() as conn:
        for t in GOVERNED_TABLES:
            pk = list(t.table.primary_key.columns)
            rows = conn.execute(select(t.table).order_by(*pk)).mappings().all()
            out[t.name] = [dict(r) for r in rows]
    return out


def seed_crm(engine: Engine) -> None:
    ts = datetime(2025, 1, 15, 9, 30, 0)
    with engine.begin() as conn:
        conn.execute(
            insert(m.User),
            [
                {"id": "USR-1", "email": ADMIN_EMAIL, "name": "Ada Admin", "password": "x",
                 "status": "active", "created_at": ts, "updated_at": ts},
                {"id": "USR-2", "email": "rep@healthtrixss.test", "name": "Rory Rep", "password": "x",
                 "status": "active", "created_at": ts, "updated_at": ts},
            ],
        )
        conn.execute(insert(m.Role), [{"id": "ROLE-1", "name": "Admin", "created_at": ts}])
        conn.execute(
            insert(m.Permission),
            [{"id": "PERM-1", "resource": "Account", "action": "read", "created_at": ts}],
        )
        conn.execute(insert(m.UserRole), [{"user_id": "USR-1", "role_id": "ROLE-1", "assigned_at": ts}])
        conn.execute(
            insert(m.RolePermission),
            [{"role_id": "ROLE-1", "permission_id": "PERM-1", "assigned_at": ts}],
        )
        conn.execute(
            insert(m.ApiKey),
            [{"id": "KEY-1", "name": "ci", "key_hash": "h", "key_prefix": "htx_ci",
              "is_active": True, "created_by": "USR-1", "created_at": ts}],
        )
        conn.execute(insert(m.AccountCategory), [{"id": "CAT-1", "name": "Provider", "created_at": ts}])
        conn.execute(insert(m.Tag), [{"id": "TAG-1", "name": "vip", "created_by": "USR-1", "created_at": ts}])
        conn.execute(
            insert(m.Account),
            [
                {"id": "ACCT-2025-00001", "name": "Acme Health", "type": "customer",
                 "category_id": "CAT-1", "owner_id": "USR-1", "created_at": ts, "updated_at": ts},
                {"id": "ACCT-2025-00002", "name": "Globex Clinics", "type": "prospect",
                 "category_id": None, "owner_id": "USR-2", "created_at": ts, "updated_at": ts},
            ],
        )
        conn.execute(
            insert(m.Contact),
            [{"id": "CONT-2501-00001", "account_id": "ACCT-2025-00001", "first_name": "Jo",
              "last_name": "Bloggs", "owner_id": "USR-2", "created_at": ts, "updated_at": ts}],
        )
        conn.execute(
            insert(m.Opportunity),
            [{"id": "OPP-2025-000001", "account_id": "ACCT-2025-00001", "name": "Renewal",
              "stage": "closed_won", "amount": Decimal("1500.00"),
              "close_date": datetime(2025, 3, 31), "probability": 100, "owner_id": "USR-2",
              "created_at": ts, "updated_at": ts}],
        )
        conn.execute(
            insert(m.Lead),
            [{"id": "LEAD-000001", "first_name": "Lee", "last_name": "Lead", "status": "converted",
              "source": "referral", "owner_id": "USR-2",
              "converted_account_id": "ACCT-2025-00001",
              "converted_contact_id": "CONT-2501-00001",
              "converted_opportunity_id": "OPP-2025-000001",
              "converted_at": ts, "created_at": ts, "updated_at": ts}],
        )
        conn.execute(
            insert(m.Activity),
            [{"id": "ACT-2501-00001", "type": "call", "subject": "Kickoff", "status": "completed",
              "priority": "high", "due_at": ts, "completed_at": ts, "owner_id": "USR-2",
              "account_id": "ACCT-2025-00001", "lead_id": "LEAD-000001",
              "created_at": ts, "updated_at": ts}],
        )
        conn.execute(
            insert(m.EntityTag),
            [{"id": "ET-1", "entity": "Account", "entity_id": "ACCT-2025-00001", "tag_id": "TAG-1",
              "created_by": "USR-1", "created_at": ts}],
        )
        conn.execute(
            insert(m.Comment),
            [
                {"id": "CMT-1", "entity": "Account", "entity_id": "ACCT-2025-00001",
                 "parent_id": None, "depth": 0,
                 "body": "Signed!", "mentions": [{"userId": "USR-2", "display": "Rory"}],
                 "is_pinned": True, "is_resolved": False, "created_by": "USR-1",
                 "created_at": ts, "updated_at": ts},
                {"id": "CMT-2", "entity": "Account", "entity_id": "ACCT-2025-00001",
                 "parent_id": "CMT-1", "depth": 1, "body": "Nice", "mentions": [],
                 "is_pinned": False, "is_resolved": False, "created_by": "USR-2",
                 "created_at": ts, "updated_at": ts},
            ],
        )
        conn.execute(
            insert(m.CommentReaction),
            [{"id": "RX-1", "comment_id": "CMT-1", "user_id": "USR-2", "emoji": "🎉", "created_at": ts}],
        )
        conn.execute(
            insert(m.CommentAttachment),
            [{"id": "ATT-1", "comment_id": "CMT-1", "file_name": "contract.pdf",
              "content_type": "application/pdf", "size": 2048, "url": "/files/contract.pdf",
              "uploaded_by": "USR-1", "created_at": ts}],
        )
        conn.execute(
            insert(m.CommentSubscription),
            [{"id": "SUB-1", "comment_id": "CMT-1", "user_id": "USR-1", "created_at": ts}],
        )
        conn.execute(
            insert(m.AuditLog),
            [{"id": "AUD-1", "actor_id": "USR-1", "action": "create", "resource": "Account",
              "resource_id": "ACCT-2025-00001", "before": None, "after": {"name": "Acme Health"},
              "created_at": ts}],
        )
        conn.execute(
            insert(m.IdPattern),
            [{"id": "PAT-1", "entity": "Account", "pattern": "ACCT-{YYYY}-{SEQ:5}", "counter": 2,
              "start_value": 1, "last_issued": "ACCT-2025-00002", "created_at": ts, "updated_at": ts}],
        )


def auth_header(role: str = "admin", email: str = ADMIN_EMAIL) -> Dict[str, str]:
    token = create_access_token({"sub": email, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(seeded: Engine):
    app.dependency_overrides[get_engine] = lambda: seeded
    app.dependency_overrides[get_settings] = lambda: Settings(backup_encryption_key=KEY)
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
