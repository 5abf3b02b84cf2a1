# Overview: Service-layer operations for financial transactions and account balance movements.

"""
Transaction Service

Owns every write to Account.current_balance.

SIGN RULES:
- debit:  account_id balance += amount, bank_id balance -= amount
- credit: account_id balance -= amount, bank_id balance += amount

Balance changes are atomic ``current_balance = current_balance + :delta``
UPDATEs, so two concurrent postings against one customer cannot lose an update.

record_transaction / apply_balance never commit; the route-level
create/update/delete functions below do. Transactions generated by an
invoice or purchase (document_id set) are owned by the posting workflow and
rejected here with TransactionLockedError.
"""

from __future__ import annotations

from sqlalchemy import case, func, or_, update

from ..extensions import db
from ..models import Account, Transaction
from ..models.finance import PAYMENT_METHODS, TRANSACTION_TYPES
from ..money import as_float, round_money
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from dukkan.time_utils import utcnow


TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"account_id", "amount", "type", "reference", "date", "payment_method", "bank_id", "notes"},
    required_on_create={"account_id", "amount", "type"},
    choices={"type": set(TRANSACTION_TYPES), "payment_method": set(PAYMENT_METHODS)},
)


class TransactionLockedError(ConflictError):
    """Raised when a document-generated transaction is edited or deleted directly."""


def signed_amount(tx_type: str, amount: float) -> float:
    if tx_type == "debit":
        return amount
    if tx_type == "credit":
        return -amount
    raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")


def apply_balance(account_id: int, delta: float) -> None:
    """Atomically move an account balance by delta. Does not commit."""
    if not delta:
        return
    db.session.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(current_balance=Account.current_balance + delta, updated_at=func.now())
    )


def _apply_effect(tx: Transaction, direction: int) -> None:
    delta = signed_amount(tx.type, tx.amount) * direction
    apply_balance(tx.account_id, delta)
    if tx.bank_id:
        apply_balance(tx.bank_id, -delta)


def record_transaction(
    *,
    account_id: int,
    amount: float,
    tx_type: str,
    reference: str | None = None,
    date=None,
    payment_method: str = "cash",
    bank_id: int | None = None,
    notes: str | None = None,
    document_id: int | None = None,
    document_type: str | None = None,
    is_reversal: bool = False,
    user_id: int | None = None,
) -> Transaction:
    """Insert a transaction and move the affected balances. Does not commit."""
    if amount <= 0:
        raise ValidationError("amount must be > 0")

    tx = Transaction(
        account_id=account_id,
        amount=as_float(amount),
        type=tx_type,
        reference=reference,
        payment_method=payment_method,
        bank_id=bank_id,
        notes=notes,
        document_id=document_id,
        document_type=document_type,
        is_reversal=is_reversal,
        user_id=user_id,
    )
    tx.date = date or utcnow()
    db.session.add(tx)
    _apply_effect(tx, +1)
    return tx


def _require_account(account_id: int, label: str = "Account") -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise ValidationError(f"{label} {account_id} not found")
    return account


def _check_patch(patch: dict) -> None:
    if "amount" in patch and (patch["amount"] is None or patch["amount"] <= 0):
        raise ValidationError("amount must be > 0")
    if patch.get("account_id") is not None:
        _require_account(patch["account_id"])
    if patch.get("bank_id") is not None:
        bank = _require_account(patch["bank_id"], "Bank account")
        if bank.type not in ("bank", "cash"):
            raise ValidationError("bank_id must reference a bank or cash account")
        if patch.get("account_id") is not None and patch["bank_id"] == patch["account_id"]:
            raise ValidationError("bank_id must differ from account_id")


def create_transaction(payload: dict, *, user_id: int | None = None) -> Transaction:
    patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY, partial=False)
    _check_patch(patch)

    try:
        tx = record_transaction(
            account_id=patch["account_id"],
            amount=patch["amount"],
            tx_type=patch["type"],
            reference=patch.get("reference"),
            date=patch.get("date"),
            payment_method=patch.get("payment_method") or "cash",
            bank_id=patch.get("bank_id"),
            notes=patch.get("notes"),
            user_id=user_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return tx


def get_transaction(transaction_id: int) -> Transaction:
    tx = db.session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx


def update_transaction(transaction_id: int, payload: dict) -> Transaction:
    """Edit a manual transaction: undo its old balance effect, apply the new one."""
    tx = get_transaction(transaction_id)
    if tx.document_id is not None:
        raise TransactionLockedError("Transaction belongs to a document; edit the document instead")

    patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY, partial=True)
    merged = {
        "account_id": patch.get("account_id", tx.account_id),
        "bank_id": patch.get("bank_id", tx.bank_id),
        "amount": patch.get("amount", tx.amount),
    }
    _check_patch(merged)

    try:
        _apply_effect(tx, -1)
        for key, value in patch.items():
            setattr(tx, key, value)
        if "amount" in patch:
            tx.amount = as_float(tx.amount)
        db.session.flush()
        _apply_effect(tx, +1)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return tx


def delete_transaction(transaction_id: int) -> None:
    tx = get_transaction(transaction_id)
    if tx.document_id is not None:
        raise TransactionLockedError("Transaction belongs to a document; delete or edit the document instead")

    try:
        _apply_effect(tx, -1)
        db.session.delete(tx)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def list_transactions(
    *,
    account_id: int | None = None,
    start=None,
    end=None,
    tx_type: str | None = None,
    limit: int = 500,
) -> list[Transaction]:
    query = db.session.query(Transaction)
    if account_id:
        query = query.filter(or_(Transaction.account_id == account_id, Transaction.bank_id == account_id))
    if start is not None:
        query = query.filter(Transaction.date >= start)
    if end is not None:
        query = query.filter(Transaction.date < end)
    if tx_type:
        query = query.filter(Transaction.type == tx_type)
    return (
        query.order_by(Transaction.date.desc(), Transaction.id.desc())
        .limit(max(1, min(limit, 5000)))
        .all()
    )


def document_net_by_account(document_type: str, document_id: int) -> dict[int, float]:
    """Signed balance effect currently standing for a document, per account."""
    signed = func.sum(
        case((Transaction.type == "debit", Transaction.amount), else_=-Transaction.amount)
    )
    rows = (
        db.session.query(Transaction.account_id, signed)
        .filter(Transaction.document_type == document_type, Transaction.document_id == document_id)
        .group_by(Transaction.account_id)
        .all()
    )
    return {account_id: float(round_money(net or 0)) for account_id, net in rows}


def expected_balances() -> dict[int, float]:
    """opening_balance + signed transaction sum for every account."""
    signed = case((Transaction.type == "debit", Transaction.amount), else_=-Transaction.amount)
    direct = dict(
        db.session.query(Transaction.account_id, func.sum(signed))
        .group_by(Transaction.account_id)
        .all()
    )
    bank_side = dict(
        db.session.query(Transaction.bank_id, func.sum(-signed))
        .filter(Transaction.bank_id.isnot(None))
        .group_by(Transaction.bank_id)
        .all()
    )
    result = {}
    for account in db.session.query(Account).all():
        total = round_money(account.opening_balance) + round_money(direct.get(account.id) or 0) \
            + round_money(bank_side.get(account.id) or 0)
        result[account.id] = float(round_money(total))
    return result
