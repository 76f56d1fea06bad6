from __future__ import annotations

from ..extensions import db
from garage.time_utils import to_utc_z


class WorkflowLevel(db.Model):
    """
    One rung of an approval ladder (workflow_config).

    For a (company_id, process_name) pair the active levels are contiguous
    integers starting at 1, and each level names exactly one role. Rows are
    immutable once created; new rungs are only ever appended on top.
    """
    __tablename__ = "workflow_config"
    __table_args__ = (
        db.UniqueConstraint("company_id", "process_name", "level", name="uq_workflow_company_process_level"),
        db.Index("ix_workflow_company_process", "company_id", "process_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    process_name = db.Column(db.String(64), nullable=False)
    level = db.Column(db.Integer, nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # Allows the override role to approve this level and every level above it at once
    override_enabled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    role = db.relationship("Role")

    def __repr__(self) -> str:
        return f"<WorkflowLevel id={self.id} process={self.process_name!r} level={self.level} role_id={self.role_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "process_name": self.process_name,
            "level": self.level,
            "role_id": self.role_id,
            "role_name": self.role.name if self.role else None,
            "is_active": self.is_active,
            "override_enabled": self.override_enabled,
            "created_at": to_utc_z(self.created_at),
        }


class ApprovalEvent(db.Model):
    """
    Approval ledger event for a purchase return.

    APPEND-ONLY:
    - Rows are inserted, never deleted; content columns are never edited.
    - (purchase_return_id, sequence_no) is unique, so two writers appending
      from the same stale view collide instead of silently interleaving.
    - Events left behind on an abandoned approval path (a rejection sent the
      return back below them) get void-style metadata (superseded_at,
      superseded_by_sequence_no) and drop out of the active ledger.
    - At most one event per return is finalized: the terminal Approved event
      at the highest configured level.
    """
    __tablename__ = "approval_events"
    __table_args__ = (
        db.UniqueConstraint("purchase_return_id", "sequence_no", name="uq_approval_events_return_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True)

    sequence_no = db.Column(db.Integer, nullable=False)
    level = db.Column(db.Integer, nullable=False)
    trail = db.Column(db.String(16), nullable=False, index=True)  # Pending, Approved, Rejected
    status = db.Column(db.String(128), nullable=False)  # Display text, e.g. "Level 2 Approved"
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True)
    is_finalized = db.Column(db.Boolean, nullable=False, default=False)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    comment = db.Column(db.Text, nullable=True)
    status_id = db.Column(db.Integer, db.ForeignKey("system_message_config.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    superseded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    superseded_by_sequence_no = db.Column(db.Integer, nullable=True)

    purchase_return = db.relationship(
        "PurchaseReturn",
        backref=db.backref("approval_events", lazy=True, order_by="ApprovalEvent.sequence_no"),
    )

    @property
    def is_superseded(self) -> bool:
        return self.superseded_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_return_id": self.purchase_return_id,
            "sequence_no": self.sequence_no,
            "level": self.level,
            "trail": self.trail,
            "status": self.status,
            "role_id": self.role_id,
            "is_finalized": self.is_finalized,
            "approved_by": self.approved_by_user_id,
            "rejected_by": self.rejected_by_user_id,
            "rejected_to": self.rejected_to_user_id,
            "comment": self.comment,
            "status_id": self.status_id,
            "date": to_utc_z(self.occurred_at),
            "superseded_at": to_utc_z(self.superseded_at) if self.superseded_at else None,
            "superseded_by_sequence_no": self.superseded_by_sequence_no,
        }
