from __future__ import annotations

from ..extensions import db
from garage.time_utils import to_utc_z

class SystemLog(db.Model):
    """
    Business audit log (system_logs).

    IMMUTABLE: Never update or delete. One row per user-visible action,
    keyed by the business identifier (the return number).
    """
    __tablename__ = "system_logs"
    __table_args__ = (
        db.Index("ix_system_logs_company_module", "company_id", "module"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    module = db.Column(db.String(64), nullable=False)  # e.g. "Purchase Return Approval"
    scope = db.Column(db.String(16), nullable=False)   # Add, Edit
    key = db.Column(db.String(64), nullable=False, index=True)
    log = db.Column(db.Text, nullable=False)
    action_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "module": self.module,
            "scope": self.scope,
            "key": self.key,
            "log": self.log,
            "action_by": self.action_by,
            "created_at": to_utc_z(self.created_at),
        }
