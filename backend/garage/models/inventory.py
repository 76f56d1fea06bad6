from __future__ import annotations

from ..extensions import db
from garage.time_utils import to_utc_z

class InventoryLine(db.Model):
    """
    On-hand quantity of an item received against a purchase order (inventory_mgmt).

    LOOKUP PATTERN:
    - Return lines resolve their stock row by (company_id, purchase_order_id, item_id)
    - Quantity leaves on return creation and comes back once on terminal rejection
    """
    __tablename__ = "inventory_lines"
    __table_args__ = (
        db.Index("ix_inventory_lines_po_item", "company_id", "purchase_order_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    item_id = db.Column(db.Integer, nullable=False)
    purchase_order_id = db.Column(db.Integer, nullable=False)
    store_id = db.Column(db.Integer, nullable=True)

    item_qty = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryLine po={self.purchase_order_id} item={self.item_id} qty={self.item_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "item_id": self.item_id,
            "purchase_order_id": self.purchase_order_id,
            "store_id": self.store_id,
            "item_qty": self.item_qty,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
