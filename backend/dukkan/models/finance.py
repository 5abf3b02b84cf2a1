from __future__ import annotations

from ..extensions import db
from dukkan.time_utils import to_utc_z


TRANSACTION_TYPES = ("debit", "credit")
PAYMENT_METHODS = ("cash", "bank", "credit", "check")


class Transaction(db.Model):
    """
    Financial movement against an account.

    amount is always positive; type carries the direction. A debit adds
    amount to account_id's balance, a credit subtracts it. When bank_id is
    set, the bank/cash account receives the opposite movement.

    document_id/document_type link the row to the invoice or purchase that
    generated it. Linked rows are owned by the posting workflow and cannot
    be edited or deleted directly.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_account_date", "account_id", "date"),
        db.Index("ix_transactions_document", "document_type", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    type = db.Column(db.String(16), nullable=False)

    reference = db.Column(db.String(128), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    bank_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    document_id = db.Column(db.Integer, nullable=True)
    document_type = db.Column(db.String(32), nullable=True)
    is_reversal = db.Column(db.Boolean, nullable=False, default=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", foreign_keys=[account_id])
    bank = db.relationship("Account", foreign_keys=[bank_id])

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} {self.type} {self.amount} account_id={self.account_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "accountName": self.account.name if self.account else None,
            "amount": self.amount,
            "type": self.type,
            "reference": self.reference,
            "date": to_utc_z(self.date),
            "paymentMethod": self.payment_method,
            "bankId": self.bank_id,
            "notes": self.notes,
            "documentId": self.document_id,
            "documentType": self.document_type,
            "isReversal": self.is_reversal,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
        }
