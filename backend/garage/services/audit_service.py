# Overview: Service-layer operations for the business audit log.

from __future__ import annotations

from ..extensions import db
from ..models import SystemLog
from garage.time_utils import utcnow


MODULE_RETURN_MANAGEMENT = "Return Management"
MODULE_RETURN_APPROVAL = "Purchase Return Approval"

SCOPE_ADD = "Add"
SCOPE_EDIT = "Edit"


def write_log(
    *,
    company_id: int,
    module: str,
    scope: str,
    key: str,
    log: str,
    action_by: int | None = None,
) -> SystemLog:
    """Append an audit row. Caller commits."""
    entry = SystemLog(
        company_id=company_id,
        transaction_date=utcnow(),
        module=module,
        scope=scope,
        key=key,
        log=log,
        action_by=action_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_logs(company_id: int, key: str | None = None, limit: int = 100) -> list[SystemLog]:
    query = db.session.query(SystemLog).filter_by(company_id=company_id)
    if key:
        query = query.filter_by(key=key)
    return query.order_by(SystemLog.id.desc()).limit(limit).all()
