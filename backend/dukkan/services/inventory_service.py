# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Service

Every change to an Inventory row goes through apply_movement:
- the row is created lazily (savepoint insert, tolerant of a concurrent insert)
- quantity changes with an atomic ``UPDATE ... SET quantity = quantity + :delta``
- one InventoryTransaction audit row is appended per movement

apply_movement never commits. Callers (posting workflow, count endpoint,
product create/delete) own the transaction boundary, so a failure anywhere in
a document posting rolls back every stock change made for it.

COUNT SEMANTICS (isCount=true):
The payload quantity is the absolute on-hand figure. The difference to the
current quantity is recorded as an "adjustment"; a zero difference writes
nothing, so repeating the same count is a no-op.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Inventory, InventoryTransaction, Product, Warehouse
from ..validation import ConflictError, NotFoundError, ValidationError, normalize_keys, require_id, require_number
from .settings_service import negative_stock_allowed
from dukkan.time_utils import utcnow

logger = logging.getLogger(__name__)

NOTE_COUNT_ADJUSTMENT = "Quantity count adjustment"
NOTE_INITIAL_COUNT = "Initial count"
NOTE_MANUAL_ADJUSTMENT = "Manual adjustment"


class InsufficientStockError(ConflictError):
    """Raised when a movement would take stock below zero and negative stock is disabled."""


def _ensure_row(product_id: int, warehouse_id: int) -> bool:
    """Make sure an inventory row exists. Returns True when this call created it."""
    exists = (
        db.session.query(Inventory.id)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .scalar()
    )
    if exists:
        return False

    try:
        with db.session.begin_nested():
            db.session.add(Inventory(product_id=product_id, warehouse_id=warehouse_id, quantity=0.0))
    except IntegrityError:
        # A concurrent request inserted the row first; the UPDATE below applies to it.
        return False
    return True


def current_quantity(product_id: int, warehouse_id: int) -> float:
    qty = (
        db.session.query(Inventory.quantity)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .scalar()
    )
    return float(qty or 0.0)


def apply_movement(
    *,
    product_id: int,
    warehouse_id: int,
    delta: float,
    tx_type: str,
    document_id: int | None = None,
    document_type: str | None = None,
    is_reversal: bool = False,
    notes: str | None = None,
    user_id: int | None = None,
    date=None,
    check_stock: bool = True,
) -> float:
    """
    Apply a signed quantity change and append its audit row. Does not commit.

    Returns the resulting on-hand quantity.

    Raises:
        InsufficientStockError: delta < 0, check_stock is set, negative stock is
            disabled and the result would be below zero. The caller must roll back.
    """
    _ensure_row(product_id, warehouse_id)

    db.session.execute(
        update(Inventory)
        .where(Inventory.product_id == product_id, Inventory.warehouse_id == warehouse_id)
        .values(quantity=Inventory.quantity + delta, updated_at=func.now())
    )
    new_qty = current_quantity(product_id, warehouse_id)

    if check_stock and delta < 0 and new_qty < 0 and not negative_stock_allowed():
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id}: "
            f"{new_qty - delta:g} on hand, {-delta:g} requested"
        )

    entry = InventoryTransaction(
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=delta,
        type=tx_type,
        document_id=document_id,
        document_type=document_type,
        is_reversal=is_reversal,
        notes=notes,
        user_id=user_id,
    )
    entry.date = date or utcnow()
    db.session.add(entry)
    return new_qty


def set_count(
    *,
    product_id: int,
    warehouse_id: int,
    quantity: float,
    user_id: int | None = None,
    notes: str | None = None,
) -> tuple[Inventory, float]:
    """
    Set the absolute on-hand quantity. Does not commit.

    Returns (inventory_row, applied_delta). applied_delta is 0 when the row
    already held that quantity, in which case nothing is written.
    """
    created = _ensure_row(product_id, warehouse_id)
    # FOR UPDATE is ignored by SQLite; other backends lock the row until commit
    row = (
        db.session.query(Inventory)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .with_for_update()
        .one()
    )

    delta = quantity - float(row.quantity or 0.0)
    if delta != 0:
        apply_movement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            delta=delta,
            tx_type="adjustment",
            notes=notes or (NOTE_INITIAL_COUNT if created else NOTE_COUNT_ADJUSTMENT),
            user_id=user_id,
            check_stock=False,
        )
        db.session.refresh(row)
    return row, delta


def _require_product_and_warehouse(product_id: int, warehouse_id: int) -> tuple[Product, Warehouse]:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found")
    return product, warehouse


def update_inventory(payload: dict, *, user_id: int | None = None) -> dict:
    """
    Handle POST /api/inventory: {productId, warehouseId, quantity, isCount}.

    isCount=true sets the absolute quantity; otherwise quantity is a delta.
    Commits on success, rolls back on failure.
    """
    data = normalize_keys(payload or {})
    product_id = require_id(data, "product_id")
    warehouse_id = require_id(data, "warehouse_id")
    is_count = data.get("is_count") in (True, 1, "true", "1")

    if is_count:
        quantity = require_number(data, "quantity", minimum=0)
    else:
        quantity = require_number(data, "quantity")
        if quantity == 0:
            raise ValidationError("quantity must be non-zero for an adjustment")

    _require_product_and_warehouse(product_id, warehouse_id)

    try:
        if is_count:
            row, delta = set_count(
                product_id=product_id, warehouse_id=warehouse_id, quantity=quantity, user_id=user_id
            )
        else:
            apply_movement(
                product_id=product_id,
                warehouse_id=warehouse_id,
                delta=quantity,
                tx_type="adjustment",
                notes=data.get("notes") or NOTE_MANUAL_ADJUSTMENT,
                user_id=user_id,
            )
            delta = quantity
            row = db.session.query(Inventory).filter_by(
                product_id=product_id, warehouse_id=warehouse_id
            ).one()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if delta:
        logger.info("Inventory product=%s warehouse=%s changed by %g (count=%s)",
                    product_id, warehouse_id, delta, is_count)
    result = row.to_dict()
    result["appliedDelta"] = delta
    return result


def get_inventory(product_id: int, warehouse_id: int) -> Inventory | None:
    return (
        db.session.query(Inventory)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .first()
    )


def _inventory_row(inv: Inventory, product: Product, warehouse: Warehouse) -> dict:
    data = inv.to_dict()
    data.update({
        "productName": product.name,
        "productCode": product.code,
        "unit": product.unit,
        "warehouseName": warehouse.name,
        "costPrice": product.cost_price,
        "sellPrice": product.sell_price_1,
        "minStock": product.min_stock,
        "value": round((inv.quantity or 0.0) * (product.cost_price or 0.0), 2),
    })
    return data


def list_inventory(*, warehouse_id: int | None = None) -> list[dict]:
    query = (
        db.session.query(Inventory, Product, Warehouse)
        .join(Product, Product.id == Inventory.product_id)
        .join(Warehouse, Warehouse.id == Inventory.warehouse_id)
    )
    if warehouse_id:
        query = query.filter(Inventory.warehouse_id == warehouse_id)
    rows = query.order_by(Product.name.asc(), Warehouse.id.asc()).all()
    return [_inventory_row(inv, product, warehouse) for inv, product, warehouse in rows]


def list_inventory_transactions(
    *,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    document_type: str | None = None,
    document_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    query = db.session.query(InventoryTransaction)
    if product_id:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if warehouse_id:
        query = query.filter(InventoryTransaction.warehouse_id == warehouse_id)
    if document_type:
        query = query.filter(InventoryTransaction.document_type == document_type)
    if document_id:
        query = query.filter(InventoryTransaction.document_id == document_id)
    return (
        query.order_by(InventoryTransaction.date.desc(), InventoryTransaction.id.desc())
        .limit(max(1, min(limit, 1000)))
        .all()
    )


def stock_totals() -> dict[int, float]:
    """Total on-hand quantity per product across all warehouses."""
    rows = (
        db.session.query(Inventory.product_id, func.coalesce(func.sum(Inventory.quantity), 0.0))
        .group_by(Inventory.product_id)
        .all()
    )
    return {product_id: float(total) for product_id, total in rows}


def low_stock_products() -> list[dict]:
    """Active products whose total stock is below their min_stock threshold."""
    totals = stock_totals()
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.min_stock > 0)
        .order_by(Product.name.asc())
        .all()
    )
    result = []
    for product in products:
        on_hand = totals.get(product.id, 0.0)
        if on_hand < product.min_stock:
            data = product.to_dict()
            data["quantity"] = on_hand
            result.append(data)
    return result
