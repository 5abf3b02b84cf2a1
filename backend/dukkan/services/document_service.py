# Overview: Service-layer operations for invoices and purchases; totals, numbering, and lifecycle.

"""
Document Service

Shared workflow for sales invoices (Invoice) and purchases (Purchase).

TOTALS (recomputed on every save; client totals are ignored):
- line.total = round(quantity * unit_price)
- subtotal   = round(sum(line.total))
- discount   = round(sum(line.discount) + discount_amount)
- tax        = round(sum(line.tax) + round((subtotal - discount) * tax_rate / 100))
- total      = round(subtotal - discount + tax)
Every step rounds half-up to 2 places.

LIFECYCLE:
    draft -> posted
    posted -> paid | partially_paid | cancelled
    paid <-> partially_paid, both -> cancelled
Only entering posted has side effects (posting_service.apply_effects).
Every other transition, cancelled included, only changes the status: stock
and balances moved at posting stay where they are. Effects are reversed
only by editing a posted document (reverse, then re-apply) or deleting it.
Same-status transitions are no-ops, which makes re-posting idempotent.
A draft that is no longer wanted is deleted.

ATOMICITY:
Each create/update/status change/delete runs through unit_of_work.run_atomic
and commits once. Any error rolls back the document, its lines, every stock
movement and every balance change made for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account, DocumentSequence, Invoice, InvoiceDetail, Product, Purchase, PurchaseDetail, Warehouse
from ..models.documents import (
    DOCUMENT_STATUSES,
    EFFECTIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_PAID,
    STATUS_PARTIALLY_PAID,
    STATUS_POSTED,
)
from ..money import ZERO, as_float, round_money, sum_money, to_decimal
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    normalize_keys,
    require_id,
    require_number,
)
from .unit_of_work import run_atomic
from .posting_service import apply_effects, effect_for, reverse_effects
from dukkan.time_utils import parse_iso_datetime

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_POSTED},
    STATUS_POSTED: {STATUS_PAID, STATUS_PARTIALLY_PAID, STATUS_CANCELLED},
    STATUS_PAID: {STATUS_PARTIALLY_PAID, STATUS_CANCELLED},
    STATUS_PARTIALLY_PAID: {STATUS_PAID, STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}

DETAIL_MODELS = {Invoice: InvoiceDetail, Purchase: PurchaseDetail}

# Header keys clients may send. Totals are accepted and ignored.
HEADER_FIELDS = {
    "number", "invoice_number", "purchase_number", "kind", "account_id", "warehouse_id",
    "date", "due_date", "status", "notes", "payment_terms", "discount_amount", "tax_rate",
}
IGNORED_HEADER_FIELDS = {"id", "subtotal", "discount", "tax", "total", "user_id", "created_at", "updated_at",
                         "posted_at", "account", "account_name", "document_type", "details"}
IGNORED_LINE_FIELDS = {"id", "total", "product_name", "invoice_id", "purchase_id"}


class DocumentStateError(ConflictError):
    """Raised when an operation is invalid for the document's current status."""


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""


# =============================================================================
# Totals
# =============================================================================


@dataclass
class LineInput:
    product_id: int
    quantity: float
    unit_price: float
    discount: float = 0.0
    tax: float = 0.0


@dataclass
class DocumentTotals:
    line_totals: list[Decimal] = field(default_factory=list)
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO


def compute_totals(lines: list[LineInput], discount_amount=0, tax_rate=0) -> DocumentTotals:
    """Aggregate document totals, rounding to 2 places at each step."""
    line_totals = [round_money(to_decimal(l.quantity) * to_decimal(l.unit_price)) for l in lines]
    subtotal = sum_money(line_totals)
    discount = round_money(sum_money(l.discount for l in lines) + to_decimal(discount_amount))
    header_tax = round_money((subtotal - discount) * to_decimal(tax_rate) / Decimal(100))
    tax = round_money(sum_money(l.tax for l in lines) + header_tax)
    total = round_money(subtotal - discount + tax)
    return DocumentTotals(line_totals=line_totals, subtotal=subtotal, discount=discount, tax=tax, total=total)


# =============================================================================
# Numbering
# =============================================================================


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next number for a document type. Does not commit.

    The counter moves with an atomic UPDATE; a missing counter row is inserted
    inside a savepoint and falls back to the UPDATE if another request won.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{next_num:0{pad}d}"


def _allocate_number(model, kind: str) -> str:
    prefix = effect_for(kind).number_prefix
    # Skip numbers already taken by manually numbered documents
    for _ in range(1000):
        candidate = next_document_number(document_type=kind, prefix=prefix)
        if not db.session.query(model.id).filter(model.number == candidate).first():
            return candidate
    raise DocumentSequenceError(f"Could not allocate a free {kind} number")


# =============================================================================
# Payload parsing
# =============================================================================


def _split_payload(model, payload: dict) -> tuple[dict, list | None]:
    """Accept {invoice|purchase: {...}, details: [...]} or a flat header with details."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    key = model.DOCUMENT_TYPE
    header = payload.get(key)
    if header is None:
        header = {k: v for k, v in payload.items() if k not in ("details", "lines")}
    if not isinstance(header, dict):
        raise ValidationError(f"{key} must be an object")
    details = payload.get("details", payload.get("lines"))
    if details is not None and not isinstance(details, list):
        raise ValidationError("details must be a list")
    return normalize_keys(header), details


def _parse_date(value, label: str):
    if value is None or value == "":
        return None
    try:
        dt = parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{label} must be an ISO-8601 date")
    return dt


def _parse_header(model, header: dict, *, partial: bool) -> dict:
    for k in header:
        if k not in HEADER_FIELDS and k not in IGNORED_HEADER_FIELDS:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}

    number = header.get("number") or header.get(f"{model.DOCUMENT_TYPE}_number")
    if number not in (None, ""):
        number = str(number).strip()
        if len(number) > 64:
            raise ValidationError("number exceeds max length 64")
        patch["number"] = number

    if "kind" in header and header["kind"] is not None:
        if header["kind"] not in model.KINDS:
            raise ValidationError(f"kind must be one of: {', '.join(model.KINDS)}")
        patch["kind"] = header["kind"]

    if not partial or "account_id" in header:
        patch["account_id"] = require_id(header, "account_id", "accountId")
    if not partial or "warehouse_id" in header:
        patch["warehouse_id"] = require_id(header, "warehouse_id", "warehouseId")

    if "date" in header:
        dt = _parse_date(header["date"], "date")
        if dt is not None:
            patch["date"] = dt
    if "due_date" in header:
        patch["due_date"] = _parse_date(header["due_date"], "dueDate")

    if "status" in header and header["status"] is not None:
        if header["status"] not in DOCUMENT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(DOCUMENT_STATUSES)}")
        patch["status"] = header["status"]

    for key in ("notes", "payment_terms"):
        if key in header:
            value = header[key]
            patch[key] = str(value).strip() if value is not None else None

    if "discount_amount" in header:
        patch["discount_amount"] = require_number(header, "discount_amount", minimum=0, default=0) \
            if header["discount_amount"] is not None else 0.0
    if "tax_rate" in header:
        patch["tax_rate"] = require_number(header, "tax_rate", minimum=0, default=0) \
            if header["tax_rate"] is not None else 0.0

    if "account_id" in patch and db.session.get(Account, patch["account_id"]) is None:
        raise ValidationError(f"Account {patch['account_id']} not found")
    if "warehouse_id" in patch and db.session.get(Warehouse, patch["warehouse_id"]) is None:
        raise ValidationError(f"Warehouse {patch['warehouse_id']} not found")

    return patch


def _parse_lines(details: list) -> list[LineInput]:
    if not details:
        raise ValidationError("At least one line item is required")

    lines = []
    for index, raw in enumerate(details, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {index} must be an object")
        data = normalize_keys(raw)
        for k in data:
            if k not in {"product_id", "quantity", "unit_price", "discount", "tax"} | IGNORED_LINE_FIELDS:
                raise ValidationError(f"Line {index}: field not allowed: {k}")
        try:
            product_id = require_id(data, "product_id", "productId")
            quantity = require_number(data, "quantity", minimum=0, strict=True)
            unit_price = require_number(data, "unit_price", minimum=0)
            discount = require_number(data, "discount", minimum=0, default=0)
            tax = require_number(data, "tax", minimum=0, default=0)
        except ValidationError as e:
            raise ValidationError(f"Line {index}: {e}")

        if db.session.get(Product, product_id) is None:
            raise ValidationError(f"Line {index}: product {product_id} not found")
        lines.append(LineInput(product_id, quantity, unit_price, discount, tax))
    return lines


def _check_transition(current: str, new: str) -> None:
    if new == current:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise DocumentStateError(f"Cannot change status from {current} to {new}")


# =============================================================================
# Workflow
# =============================================================================


def _write_lines_and_totals(doc, lines: list[LineInput] | None) -> None:
    detail_model = DETAIL_MODELS[type(doc)]
    if lines is not None:
        doc.details.clear()
        db.session.flush()
        for line in lines:
            doc.details.append(detail_model(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=as_float(line.unit_price),
                discount=as_float(line.discount),
                tax=as_float(line.tax),
            ))

    current = [
        LineInput(d.product_id, d.quantity, d.unit_price, d.discount, d.tax) for d in doc.details
    ]
    totals = compute_totals(current, doc.discount_amount or 0, doc.tax_rate or 0)
    if totals.total < 0:
        raise ValidationError("Discount cannot exceed the document subtotal plus tax")

    for detail, line_total in zip(doc.details, totals.line_totals):
        detail.total = float(line_total)
    doc.subtotal = float(totals.subtotal)
    doc.discount = float(totals.discount)
    doc.tax = float(totals.tax)
    doc.total = float(totals.total)


def get_document(model, document_id: int):
    doc = db.session.get(model, document_id)
    if doc is None:
        raise NotFoundError(f"{model.DOCUMENT_TYPE.capitalize()} {document_id} not found")
    return doc


def create_document(model, payload: dict, *, user_id: int | None = None):
    """
    Create a draft or posted document with its lines.

    Raises ValidationError (400) before any write on bad input, ConflictError
    on a duplicate number, InsufficientStockError when stock would go negative
    and that is disabled.
    """
    header, details = _split_payload(model, payload)
    patch = _parse_header(model, header, partial=False)
    lines = _parse_lines(details or [])

    status = patch.pop("status", STATUS_DRAFT)
    if status not in (STATUS_DRAFT, STATUS_POSTED):
        raise ValidationError("New documents must be draft or posted")
    kind = patch.pop("kind", model.DEFAULT_KIND)

    number = patch.pop("number", None)
    if number and db.session.query(model.id).filter(model.number == number).first():
        raise ConflictError(f"{model.DOCUMENT_TYPE.capitalize()} number '{number}' already exists")

    def _op():
        doc = model(kind=kind, status=status, user_id=user_id, **patch)
        doc.number = number or _allocate_number(model, kind)
        db.session.add(doc)
        _write_lines_and_totals(doc, lines)
        db.session.flush()
        if status == STATUS_POSTED:
            apply_effects(doc, user_id=user_id)
        return doc

    try:
        doc = run_atomic(_op, label=f"create {model.DOCUMENT_TYPE}")
    except IntegrityError:
        raise ConflictError(f"{model.DOCUMENT_TYPE.capitalize()} number already exists")

    logger.info("Created %s %s status=%s total=%s", model.DOCUMENT_TYPE, doc.number, doc.status, doc.total)
    return doc


def update_document(model, document_id: int, payload: dict, *, user_id: int | None = None):
    """
    Edit header and/or lines.

    When the document's effects stand, they are reversed first and
    re-applied after the edit, so the net stock change for a line edited from
    Q1 to Q2 is Q2 - Q1.
    """
    header, details = _split_payload(model, payload)
    patch = _parse_header(model, header, partial=True)
    lines = _parse_lines(details) if details is not None else None

    doc = get_document(model, document_id)
    if doc.status == STATUS_CANCELLED:
        raise DocumentStateError("Cancelled documents cannot be edited")

    new_status = patch.pop("status", doc.status)
    _check_transition(doc.status, new_status)

    number = patch.pop("number", None)
    if number and number != doc.number:
        if db.session.query(model.id).filter(model.number == number, model.id != doc.id).first():
            raise ConflictError(f"{model.DOCUMENT_TYPE.capitalize()} number '{number}' already exists")

    def _op():
        target = get_document(model, document_id)
        was_effective = target.is_effective
        if was_effective:
            reverse_effects(target, user_id=user_id, reason="edit")

        for key, value in patch.items():
            setattr(target, key, value)
        if number:
            target.number = number
        target.status = new_status
        _write_lines_and_totals(target, lines)
        db.session.flush()

        # An edit keeps standing effects standing; a draft gains them on entering posted
        if was_effective or new_status in EFFECTIVE_STATUSES:
            apply_effects(target, user_id=user_id)
        return target

    return run_atomic(_op, label=f"update {model.DOCUMENT_TYPE} {document_id}")


def change_status(model, document_id: int, status: str, *, user_id: int | None = None):
    """Move a document along its lifecycle. Same-status requests change nothing."""
    if status not in DOCUMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(DOCUMENT_STATUSES)}")

    doc = get_document(model, document_id)
    _check_transition(doc.status, status)
    if status == doc.status:
        return doc

    def _op():
        target = get_document(model, document_id)
        target.status = status
        if status == STATUS_POSTED:
            apply_effects(target, user_id=user_id)
        return target

    doc = run_atomic(_op, label=f"{model.DOCUMENT_TYPE} {document_id} -> {status}")

    logger.info("%s %s status -> %s", model.DOCUMENT_TYPE, doc.number, status)
    return doc


def delete_document(model, document_id: int, *, user_id: int | None = None) -> None:
    """Delete a document, reversing its stock and balance effects first if they stand."""
    get_document(model, document_id)

    def _op():
        target = get_document(model, document_id)
        reverse_effects(target, user_id=user_id, reason="deleted")
        db.session.delete(target)

    run_atomic(_op, label=f"delete {model.DOCUMENT_TYPE} {document_id}")


def list_documents(
    model,
    *,
    account_id: int | None = None,
    start=None,
    end=None,
    status: str | None = None,
    kind: str | None = None,
    limit: int = 500,
) -> list:
    query = db.session.query(model)
    if account_id:
        query = query.filter(model.account_id == account_id)
    if start is not None:
        query = query.filter(model.date >= start)
    if end is not None:
        query = query.filter(model.date < end)
    if status:
        query = query.filter(model.status == status)
    if kind:
        query = query.filter(model.kind == kind)
    return (
        query.order_by(model.date.desc(), model.id.desc())
        .limit(max(1, min(limit, 5000)))
        .all()
    )
