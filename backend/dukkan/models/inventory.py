from __future__ import annotations

from ..extensions import db
from dukkan.time_utils import to_utc_z


INVENTORY_TX_TYPES = ("purchase", "sale", "adjustment", "transfer", "return")


class Inventory(db.Model):
    """
    On-hand quantity of one product in one warehouse.

    Rows are created lazily on the first movement. quantity is only changed
    through inventory_service.apply_movement, which issues an atomic
    ``quantity = quantity + delta`` UPDATE so concurrent postings cannot lose
    each other's writes.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_product_warehouse"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False, default=0.0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_rows", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("inventory_rows", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "warehouseId": self.warehouse_id,
            "quantity": self.quantity,
            "updatedAt": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement audit row.

    quantity is the signed delta actually applied to the inventory row
    (negative for sales). Reversals written when a posted document is edited
    or deleted carry is_reversal=True and the opposite sign. Rows outlive their
    product: deleting a product sets product_id to NULL.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_tx_product_warehouse", "product_id", "warehouse_id"),
        db.Index("ix_inventory_tx_document", "document_type", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)

    quantity = db.Column(db.Float, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)

    document_id = db.Column(db.Integer, nullable=True)
    document_type = db.Column(db.String(32), nullable=True)
    is_reversal = db.Column(db.Boolean, nullable=False, default=False)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "warehouseId": self.warehouse_id,
            "quantity": self.quantity,
            "type": self.type,
            "documentId": self.document_id,
            "documentType": self.document_type,
            "isReversal": self.is_reversal,
            "date": to_utc_z(self.date),
            "notes": self.notes,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
        }
