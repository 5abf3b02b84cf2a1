from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from dukkan.time_utils import to_utc_z


STATUS_DRAFT = "draft"
STATUS_POSTED = "posted"
STATUS_PAID = "paid"
STATUS_PARTIALLY_PAID = "partially_paid"
STATUS_CANCELLED = "cancelled"

DOCUMENT_STATUSES = (
    STATUS_DRAFT,
    STATUS_POSTED,
    STATUS_PAID,
    STATUS_PARTIALLY_PAID,
    STATUS_CANCELLED,
)

# Statuses in which the document's inventory and balance effects are applied
EFFECTIVE_STATUSES = {STATUS_POSTED, STATUS_PAID, STATUS_PARTIALLY_PAID}


class DocumentMixin:
    """
    Shared header columns for sales invoices and purchases.

    LIFECYCLE:
    1. draft: editable, no side effects
    2. posted: inventory and account balance adjusted, audit rows written
    3. paid / partially_paid: settlement markers, no further side effects
    4. cancelled: terminal status marker; stock and balances moved at posting stay

    posted_at is set while effects are applied and cleared when an edit or a
    delete reverses them. It is the single source of truth for "has this document touched
    stock and balances", so re-posting is a no-op.

    Header totals are always recomputed server-side from the lines plus
    discount_amount (header discount) and tax_rate (header percent).
    """

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    tax_rate = db.Column(db.Float, nullable=False, default=0.0)

    status = db.Column(db.String(32), nullable=False, default=STATUS_DRAFT)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    payment_terms = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @declared_attr
    def account_id(cls):
        return db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    @declared_attr
    def warehouse_id(cls):
        return db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    @declared_attr
    def user_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    @declared_attr
    def account(cls):
        return db.relationship("Account")

    @declared_attr
    def warehouse(cls):
        return db.relationship("Warehouse")

    @property
    def is_effective(self) -> bool:
        return self.posted_at is not None

    def to_dict(self, include_details: bool = False) -> dict:
        data = {
            "id": self.id,
            self.NUMBER_KEY: self.number,
            "documentType": self.DOCUMENT_TYPE,
            "kind": self.kind,
            "accountId": self.account_id,
            "accountName": self.account.name if self.account else None,
            "warehouseId": self.warehouse_id,
            "date": to_utc_z(self.date),
            "dueDate": to_utc_z(self.due_date),
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax": self.tax,
            "total": self.total,
            "discountAmount": self.discount_amount,
            "taxRate": self.tax_rate,
            "status": self.status,
            "postedAt": to_utc_z(self.posted_at),
            "notes": self.notes,
            "paymentTerms": self.payment_terms,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if include_details:
            data["details"] = [d.to_dict() for d in self.details]
        return data


class DetailMixin:
    id = db.Column(db.Integer, primary_key=True)
    quantity = db.Column(db.Float, nullable=False)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    @declared_attr
    def product_id(cls):
        return db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    @declared_attr
    def product(cls):
        return db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "discount": self.discount,
            "tax": self.tax,
            "total": self.total,
        }


class InvoiceDetail(DetailMixin, db.Model):
    __tablename__ = "invoice_details"
    __table_args__ = ({"sqlite_autoincrement": True},)

    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )


class Invoice(DocumentMixin, db.Model):
    """Sales invoice (kind 'sale') or sales return (kind 'sale_return')."""
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_status_date", "status", "date"),
        {"sqlite_autoincrement": True},
    )

    DOCUMENT_TYPE = "invoice"
    NUMBER_KEY = "invoiceNumber"
    KINDS = ("sale", "sale_return")
    DEFAULT_KIND = "sale"

    number = db.Column("invoice_number", db.String(64), nullable=False, unique=True)

    details = db.relationship(
        "InvoiceDetail",
        cascade="all, delete-orphan",
        order_by="InvoiceDetail.id",
        backref="invoice",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.number!r} status={self.status!r}>"


class PurchaseDetail(DetailMixin, db.Model):
    __tablename__ = "purchase_details"
    __table_args__ = ({"sqlite_autoincrement": True},)

    purchase_id = db.Column(
        db.Integer, db.ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True
    )


class Purchase(DocumentMixin, db.Model):
    """Purchase (kind 'purchase') or purchase return (kind 'purchase_return')."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_status_date", "status", "date"),
        {"sqlite_autoincrement": True},
    )

    DOCUMENT_TYPE = "purchase"
    NUMBER_KEY = "purchaseNumber"
    KINDS = ("purchase", "purchase_return")
    DEFAULT_KIND = "purchase"

    number = db.Column("purchase_number", db.String(64), nullable=False, unique=True)

    details = db.relationship(
        "PurchaseDetail",
        cascade="all, delete-orphan",
        order_by="PurchaseDetail.id",
        backref="purchase",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} number={self.number!r} status={self.status!r}>"


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    WHY: Prevent duplicate numbers when two clerks save invoices at once.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
