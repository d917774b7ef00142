from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from crm.backup.codec import json_default
from crm.core.logger import backup_logger as logger
from crm.db_models import AuditLog


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=json_default))


def record_audit(
    engine: Engine,
    actor_id: Optional[str],
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    before: Any = None,
    after: Any = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """Write one audit_logs row. Audit failures are logged, never raised."""
    try:
        with engine.begin() as conn:
            conn.execute(
                insert(AuditLog).values(
                    actor_id=actor_id,
                    action=action,
                    resource=resource,
                    resource_id=resource_id,
                    before=_jsonable(before),
                    after=_jsonable(after),
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
    except SQLAlchemyError as exc:
        logger.error("Error creating audit log for %s %s: %s", action, resource, exc)
        return False
    return True


__all__ = ["record_audit"]
