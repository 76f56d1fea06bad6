from __future__ import annotations

from ..extensions import db
from garage.time_utils import to_utc_z

class PurchaseReturn(db.Model):
    """
    Goods returned to a supplier against a purchase order.

    LIFECYCLE:
    1. Created: stock decremented, workflow_id points at level 1
       (or, with no ladder configured, created directly as completed)
    2. Climbing: workflow_id / next_level_role_id advance one level per approval;
       a rejection above level 1 sends the return back one level
    3. Terminal: workflow_id is NULL after the final approval, or after a
       level-1 rejection (stock restored, awaiting resubmission)

    The workflow engine owns workflow_id, next_level_role_id, return_status_id
    and the approval ledger. version_id is the optimistic lock that turns
    concurrent approvals into a StaleDataError instead of a lost update.
    """
    __tablename__ = "purchase_returns"
    __table_args__ = (
        db.UniqueConstraint("company_id", "return_number", name="uq_purchase_returns_company_number"),
        db.Index("ix_purchase_returns_company_status", "company_id", "return_status_id"),
        db.Index("ix_purchase_returns_next_role", "company_id", "next_level_role_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # Human-readable number (e.g., "PR-000012")
    return_number = db.Column(db.String(64), nullable=False)

    purchase_order_id = db.Column(db.Integer, nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=True)

    total_items = db.Column(db.Integer, nullable=False, default=0)
    total_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    remark = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Workflow pointer: NULL means no pending approval
    workflow_id = db.Column(db.Integer, db.ForeignKey("workflow_config.id"), nullable=True)
    next_level_role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True)
    return_status_id = db.Column(db.Integer, db.ForeignKey("system_message_config.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    workflow_level = db.relationship("WorkflowLevel", foreign_keys=[workflow_id])
    return_status = db.relationship("StatusMessage", foreign_keys=[return_status_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseReturn id={self.id} number={self.return_number!r} workflow_id={self.workflow_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "return_number": self.return_number,
            "purchase_order_id": self.purchase_order_id,
            "supplier_name": self.supplier_name,
            "total_items": self.total_items,
            "total_value": float(self.total_value) if self.total_value is not None else None,
            "remark": self.remark,
            "created_by": self.created_by_user_id,
            "workflow_id": self.workflow_id,
            "current_level": self.workflow_level.level if self.workflow_level else None,
            "next_level_role_id": self.next_level_role_id,
            "return_status_id": self.return_status_id,
            "return_status": self.return_status.sub_category_id if self.return_status else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PurchaseReturnItem(db.Model):
    """Line item on a purchase return; references inventory by (purchase_order_id, item_id)."""
    __tablename__ = "purchase_return_items"
    __table_args__ = (
        db.CheckConstraint("returned_qty > 0", name="ck_purchase_return_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True)

    item_id = db.Column(db.Integer, nullable=False, index=True)
    returned_qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    order_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)  # returned_qty * unit_price
    return_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_return = db.relationship("PurchaseReturn", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_return_id": self.purchase_return_id,
            "item_id": self.item_id,
            "returned_qty": self.returned_qty,
            "unit_price": float(self.unit_price) if self.unit_price is not None else None,
            "order_price": float(self.order_price) if self.order_price is not None else None,
            "return_reason": self.return_reason,
            "created_at": to_utc_z(self.created_at),
        }
