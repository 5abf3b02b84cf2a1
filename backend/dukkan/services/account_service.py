# Overview: Service-layer operations for accounts; CRUD, statements, and balance reconciliation.

"""
Account Service

current_balance is derived state. It starts equal to opening_balance and then
only moves through transaction_service. Editing opening_balance shifts
current_balance by the same difference so the balance invariant keeps holding.

reconcile_balances() recomputes every balance from opening_balance plus the
signed transaction history and reports (optionally fixes) drift.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Account, Invoice, Purchase, Transaction
from ..models.accounts import ACCOUNT_TYPES
from ..money import as_float, round_money
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, validate_payload
from .transaction_service import expected_balances, signed_amount

logger = logging.getLogger(__name__)


ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "type", "code", "phone", "email", "address", "tax_number",
        "category", "opening_balance", "is_active", "notes",
    },
    required_on_create={"name", "type"},
    choices={"type": set(ACCOUNT_TYPES)},
)


class AccountInUseError(ConflictError):
    """Raised when deleting an account that transactions or documents reference."""


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def create_account(payload: dict) -> Account:
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False)
    opening = as_float(patch.get("opening_balance") or 0)
    patch["opening_balance"] = opening

    account = Account(current_balance=opening, **patch)
    db.session.add(account)
    db.session.commit()
    return account


def update_account(account_id: int, payload: dict) -> Account:
    account = get_account(account_id)
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=True)

    if patch.get("opening_balance") is not None:
        new_opening = as_float(patch["opening_balance"])
        shift = round_money(new_opening) - round_money(account.opening_balance)
        patch["opening_balance"] = new_opening
        account.current_balance = as_float(round_money(account.current_balance) + shift)

    for key, value in patch.items():
        setattr(account, key, value)
    db.session.commit()
    return account


def delete_account(account_id: int) -> None:
    account = get_account(account_id)

    tx_refs = (
        db.session.query(Transaction.id)
        .filter(or_(Transaction.account_id == account_id, Transaction.bank_id == account_id))
        .first()
    )
    if tx_refs:
        raise AccountInUseError("Account has transactions and cannot be deleted")
    for model in (Invoice, Purchase):
        if db.session.query(model.id).filter(model.account_id == account_id).first():
            raise AccountInUseError("Account is referenced by invoices or purchases and cannot be deleted")

    db.session.delete(account)
    db.session.commit()


def list_accounts(
    *,
    account_type: str | None = None,
    show_non_zero_only: bool = False,
    show_active_only: bool = False,
) -> list[Account]:
    query = db.session.query(Account)
    if account_type:
        query = query.filter(Account.type == account_type)
    if show_active_only:
        query = query.filter(Account.is_active.is_(True))
    accounts = query.order_by(Account.name.asc(), Account.id.asc()).all()
    if show_non_zero_only:
        accounts = [a for a in accounts if round_money(a.current_balance) != 0]
    return accounts


def search_accounts(query_text: str, *, account_type: str | None = None, limit: int = 50) -> list[Account]:
    text = (query_text or "").strip()
    query = db.session.query(Account)
    if text:
        pattern = f"%{text}%"
        query = query.filter(or_(Account.name.ilike(pattern), Account.code.ilike(pattern), Account.phone.ilike(pattern)))
    if account_type:
        query = query.filter(Account.type == account_type)
    return query.order_by(Account.name.asc()).limit(limit).all()


def _signed_for(account_id: int, tx: Transaction) -> float:
    """Effect of tx on account_id's balance (bank side takes the opposite sign)."""
    amount = signed_amount(tx.type, tx.amount)
    return amount if tx.account_id == account_id else -amount


def account_statement(account_id: int, *, start=None, end=None) -> dict:
    """
    Chronological statement with running balance.

    opening balance for the period = account opening balance + every movement
    dated before start. Debit/credit columns are from this account's view.
    """
    account = get_account(account_id)

    base = db.session.query(Transaction).filter(
        or_(Transaction.account_id == account_id, Transaction.bank_id == account_id)
    )

    opening = round_money(account.opening_balance)
    if start is not None:
        for tx in base.filter(Transaction.date < start).all():
            opening += round_money(_signed_for(account_id, tx))

    period = base
    if start is not None:
        period = period.filter(Transaction.date >= start)
    if end is not None:
        period = period.filter(Transaction.date < end)

    running = opening
    total_debit = round_money(0)
    total_credit = round_money(0)
    entries = []
    for tx in period.order_by(Transaction.date.asc(), Transaction.id.asc()).all():
        effect = round_money(_signed_for(account_id, tx))
        running += effect
        debit = effect if effect > 0 else round_money(0)
        credit = -effect if effect < 0 else round_money(0)
        total_debit += debit
        total_credit += credit
        row = tx.to_dict()
        row.update({"debit": float(debit), "credit": float(credit), "balance": float(running)})
        entries.append(row)

    return {
        "account": account.to_dict(),
        "openingBalance": float(opening),
        "entries": entries,
        "totalDebit": float(total_debit),
        "totalCredit": float(total_credit),
        "closingBalance": float(running),
    }


def last_transactions(account_id: int) -> dict:
    """Latest transaction and latest invoice/purchase for the account."""
    get_account(account_id)

    last_tx = (
        db.session.query(Transaction)
        .filter(or_(Transaction.account_id == account_id, Transaction.bank_id == account_id))
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .first()
    )

    candidates = []
    for model in (Invoice, Purchase):
        doc = (
            db.session.query(model)
            .filter(model.account_id == account_id)
            .order_by(model.date.desc(), model.id.desc())
            .first()
        )
        if doc is not None:
            candidates.append(doc)
    last_doc = max(candidates, key=lambda d: (d.date, d.id)) if candidates else None

    return {
        "lastTransaction": last_tx.to_dict() if last_tx else None,
        "lastInvoice": last_doc.to_dict() if last_doc else None,
    }


def reconcile_balances(*, fix: bool = False) -> list[dict]:
    """
    Compare stored balances with opening balance + transaction history.

    Returns one entry per mismatching account. With fix=True the stored
    balances are corrected and committed.
    """
    expected = expected_balances()
    mismatches = []
    for account in db.session.query(Account).order_by(Account.id.asc()).all():
        want = expected.get(account.id, as_float(account.opening_balance))
        have = as_float(account.current_balance)
        if want != have:
            mismatches.append({
                "accountId": account.id,
                "name": account.name,
                "stored": have,
                "expected": want,
            })
            if fix:
                account.current_balance = want

    if fix and mismatches:
        db.session.commit()
        logger.warning("Reconciled %d account balance(s)", len(mismatches))
    return mismatches
