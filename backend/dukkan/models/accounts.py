from __future__ import annotations

from ..extensions import db
from dukkan.time_utils import to_utc_z


ACCOUNT_TYPES = ("customer", "supplier", "expense", "income", "bank", "cash")


class Account(db.Model):
    """
    Party ledger: customers, suppliers, expense/income heads, banks and cash boxes.

    BALANCE INVARIANT:
    current_balance == opening_balance + sum of signed transactions, where a
    transaction adds +amount (debit) or -amount (credit) to account_id and the
    opposite sign to bank_id when one is set.

    SIGN CONVENTION:
    - Customer with positive balance owes the business (debtor)
    - Supplier with negative balance is owed by the business (creditor)

    current_balance is never written by clients; it only moves through
    transaction_service and the posting workflow.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_type_name", "type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    code = db.Column(db.String(64), nullable=True, index=True)

    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(128), nullable=True)

    opening_balance = db.Column(db.Float, nullable=False, default=0.0)
    current_balance = db.Column(db.Float, nullable=False, default=0.0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} type={self.type!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "code": self.code,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "taxNumber": self.tax_number,
            "category": self.category,
            "openingBalance": self.opening_balance,
            "currentBalance": self.current_balance,
            "isActive": self.is_active,
            "notes": self.notes,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
