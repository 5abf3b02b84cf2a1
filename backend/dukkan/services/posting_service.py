# Overview: Inventory and balance side effects of invoices and purchases (apply / reverse).

"""
Posting Service

A document "takes effect" exactly once, when it enters the posted state:

    kind             stock   inventory tx   financial tx   balance
    sale             -qty    sale           debit          +total
    sale_return      +qty    return         credit         -total
    purchase         +qty    purchase       credit         -total
    purchase_return  -qty    return         debit          +total

Reversal does not trust the document's current lines (they may already have
been replaced by an edit). It reads the audit trail written for the document,
nets it per (product, warehouse) and per account, and appends compensating
rows flagged is_reversal. Applying after reversing therefore yields a net
change of new - old, whatever changed in between.

Nothing here commits; document_service wraps apply/reverse together with the
document write in a single database transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryTransaction
from ..money import round_money
from .inventory_service import apply_movement
from .transaction_service import document_net_by_account, record_transaction
from dukkan.time_utils import utcnow

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    SALE = "sale"
    SALE_RETURN = "sale_return"
    PURCHASE = "purchase"
    PURCHASE_RETURN = "purchase_return"


@dataclass(frozen=True)
class KindEffect:
    stock_sign: int
    inventory_tx_type: str
    transaction_type: str
    number_prefix: str


KIND_EFFECTS: dict[DocumentKind, KindEffect] = {
    DocumentKind.SALE: KindEffect(-1, "sale", "debit", "INV"),
    DocumentKind.SALE_RETURN: KindEffect(+1, "return", "credit", "SRT"),
    DocumentKind.PURCHASE: KindEffect(+1, "purchase", "credit", "PUR"),
    DocumentKind.PURCHASE_RETURN: KindEffect(-1, "return", "debit", "PRT"),
}


def effect_for(kind: str) -> KindEffect:
    return KIND_EFFECTS[DocumentKind(kind)]


def apply_effects(doc, *, user_id: int | None = None) -> None:
    """Move stock and balance for a document that is entering the posted state."""
    if doc.posted_at is not None:
        return

    effect = effect_for(doc.kind)
    for line in doc.details:
        apply_movement(
            product_id=line.product_id,
            warehouse_id=doc.warehouse_id,
            delta=effect.stock_sign * line.quantity,
            tx_type=effect.inventory_tx_type,
            document_id=doc.id,
            document_type=doc.DOCUMENT_TYPE,
            notes=doc.number,
            user_id=user_id,
            date=doc.date,
        )

    if round_money(doc.total) > 0:
        record_transaction(
            account_id=doc.account_id,
            amount=doc.total,
            tx_type=effect.transaction_type,
            reference=doc.number,
            date=doc.date,
            payment_method="credit",
            notes=f"{doc.DOCUMENT_TYPE} {doc.number}",
            document_id=doc.id,
            document_type=doc.DOCUMENT_TYPE,
            user_id=user_id,
        )

    doc.posted_at = utcnow()
    logger.info("Posted %s %s (kind=%s total=%s)", doc.DOCUMENT_TYPE, doc.number, doc.kind, doc.total)


def reverse_effects(doc, *, user_id: int | None = None, reason: str = "reversal") -> None:
    """Undo whatever stock and balance effects currently stand for the document."""
    if doc.posted_at is None:
        return

    effect = effect_for(doc.kind)
    net_stock = (
        db.session.query(
            InventoryTransaction.product_id,
            InventoryTransaction.warehouse_id,
            func.sum(InventoryTransaction.quantity),
        )
        .filter(
            InventoryTransaction.document_type == doc.DOCUMENT_TYPE,
            InventoryTransaction.document_id == doc.id,
        )
        .group_by(InventoryTransaction.product_id, InventoryTransaction.warehouse_id)
        .all()
    )
    for product_id, warehouse_id, net in net_stock:
        # product_id is NULL once a product is deleted; its lines were gone first
        if not net or product_id is None:
            continue
        apply_movement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            delta=-net,
            tx_type=effect.inventory_tx_type,
            document_id=doc.id,
            document_type=doc.DOCUMENT_TYPE,
            is_reversal=True,
            notes=f"{doc.number} ({reason})",
            user_id=user_id,
        )

    for account_id, net in document_net_by_account(doc.DOCUMENT_TYPE, doc.id).items():
        if not net:
            continue
        record_transaction(
            account_id=account_id,
            amount=abs(net),
            tx_type="credit" if net > 0 else "debit",
            reference=doc.number,
            payment_method="credit",
            notes=f"{doc.DOCUMENT_TYPE} {doc.number} ({reason})",
            document_id=doc.id,
            document_type=doc.DOCUMENT_TYPE,
            is_reversal=True,
            user_id=user_id,
        )

    doc.posted_at = None
    logger.info("Reversed %s %s (%s)", doc.DOCUMENT_TYPE, doc.number, reason)
