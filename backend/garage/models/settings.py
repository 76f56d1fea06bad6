from __future__ import annotations

from ..extensions import db


class StatusMessage(db.Model):
    """
    Status vocabulary row (system_message_config).

    Status ids are never hard-coded; they are looked up at runtime by
    (company_id, category_id, sub_category_id). APPROVAL_PENDING carries one
    row per level whose value names the level ("Level 2 Approval Pending")
    or holds the "{@}" placeholder filled in with the level number.
    """
    __tablename__ = "system_message_config"
    __table_args__ = (
        db.Index("ix_system_message_lookup", "company_id", "category_id", "sub_category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    category_id = db.Column(db.String(64), nullable=False)      # e.g. PURCHASE_ORDER_RETURN
    sub_category_id = db.Column(db.String(64), nullable=False)  # e.g. APPROVAL_PENDING
    value = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "category_id": self.category_id,
            "sub_category_id": self.sub_category_id,
            "value": self.value,
        }
