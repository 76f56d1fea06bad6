from __future__ import annotations

from ..extensions import db
from garage.time_utils import to_utc_z


class Notification(db.Model):
    """
    In-app notification for a single user (system_notifications).

    WRITE-ONCE: the workflow inserts rows and never edits them. Only the
    recipient flips status to "Read" (read_at records when).
    """
    __tablename__ = "system_notifications"
    __table_args__ = (
        db.Index("ix_system_notifications_assignee_status", "assign_to", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    assign_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="New")  # New, Read
    priority = db.Column(db.String(16), nullable=False, default="Medium")  # Medium, High
    alert_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)  # Return number

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "assign_to": self.assign_to,
            "message": self.message,
            "status": self.status,
            "priority": self.priority,
            "alert_type": self.alert_type,
            "entity_id": self.entity_id,
            "created_at": to_utc_z(self.created_at),
            "read_at": to_utc_z(self.read_at) if self.read_at else None,
        }
