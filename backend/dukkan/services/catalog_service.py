# Overview: Service-layer operations for categories, products, and warehouses.

"""
Catalog Service

DEFAULT FLAGS:
At most one category and one warehouse carry is_default. Setting the flag on
one row clears it everywhere else in the same commit.

REFERENTIAL INTEGRITY:
- A category referenced by products or child categories is only deleted when
  the caller names a reassignment target; products and children move first,
  in the same transaction.
- A warehouse referenced by documents or stock history cannot be deleted.
- A product referenced by invoice/purchase lines cannot be deleted.

PRODUCT DELETE is a two-step compensating operation:
1. every non-zero inventory row is counted down to zero (committed, audited)
2. the product and its inventory rows are deleted, retried on transient
   database errors
If step 2 fails the product keeps existing with zero stock. Movement history
is never deleted: inventory_transactions.product_id is ON DELETE SET NULL,
and the zeroing counts name the product in their notes.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Category,
    Inventory,
    InventoryTransaction,
    Invoice,
    InvoiceDetail,
    Product,
    Purchase,
    PurchaseDetail,
    Settings,
    Warehouse,
)
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    normalize_keys,
    require_number,
    validate_payload,
)
from .unit_of_work import run_atomic
from .inventory_service import apply_movement, set_count

logger = logging.getLogger(__name__)


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "parent_id", "description", "is_default"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "code", "barcode", "category_id", "cost_price",
        "sell_price_1", "sell_price_2", "sell_price_3", "sell_price_4",
        "unit", "description", "min_stock", "is_active",
    },
    required_on_create={"name", "code"},
    non_negative_fields={
        "cost_price", "sell_price_1", "sell_price_2", "sell_price_3", "sell_price_4", "min_stock",
    },
)

WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "location", "manager", "is_default", "is_active"},
    required_on_create={"name"},
)

# Keys accepted on product create besides the column fields
PRODUCT_CREATE_EXTRAS = {"initial_quantity", "warehouse_id"}

DEFAULT_CATEGORY_NAME = "عام"
DEFAULT_WAREHOUSE_NAME = "المخزن الرئيسي"


class CategoryInUseError(ConflictError):
    """Raised when deleting a category that still has products or children."""


class WarehouseInUseError(ConflictError):
    """Raised when deleting a warehouse that documents or stock history reference."""


class ProductInUseError(ConflictError):
    """Raised when deleting a product that document lines reference."""


# =============================================================================
# Categories
# =============================================================================


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()


def default_category() -> Category | None:
    return db.session.query(Category).filter_by(is_default=True).first()


def _check_parent(category_id: int | None, parent_id: int | None) -> None:
    if parent_id is None:
        return
    parent = db.session.get(Category, parent_id)
    if parent is None:
        raise ValidationError(f"Parent category {parent_id} not found")
    # Walk up from the proposed parent; meeting ourselves means a cycle
    seen = set()
    node = parent
    while node is not None:
        if category_id is not None and node.id == category_id:
            raise ValidationError("A category cannot be its own ancestor")
        if node.id in seen:
            break
        seen.add(node.id)
        node = node.parent


def _clear_other_defaults(model, keep_id: int | None) -> None:
    query = db.session.query(model).filter(model.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(model.id != keep_id)
    query.update({model.is_default: False}, synchronize_session="fetch")


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    _check_parent(None, patch.get("parent_id"))

    category = Category(**patch)
    db.session.add(category)
    db.session.flush()
    if category.is_default:
        _clear_other_defaults(Category, category.id)
    db.session.commit()
    return category


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    if "parent_id" in patch:
        _check_parent(category.id, patch["parent_id"])

    for key, value in patch.items():
        setattr(category, key, value)
    if patch.get("is_default"):
        _clear_other_defaults(Category, category.id)
    db.session.commit()
    return category


def _resolve_reassign_target(category: Category, reassign_to) -> Category:
    if reassign_to == "default":
        target = default_category()
        if target is None:
            raise ValidationError("No default category to reassign to")
    else:
        try:
            target_id = int(reassign_to)
        except (TypeError, ValueError):
            raise ValidationError("reassignTo must be a category id or 'default'")
        target = db.session.get(Category, target_id)
        if target is None:
            raise ValidationError(f"Category {target_id} not found")

    if target.id == category.id:
        raise ValidationError("Cannot reassign a category to itself")
    # The target must not sit underneath the category being removed
    node = target.parent
    while node is not None:
        if node.id == category.id:
            raise ValidationError("Cannot reassign to a descendant of the deleted category")
        node = node.parent
    return target


def delete_category(category_id: int, *, reassign_to=None) -> dict:
    """
    Delete a category.

    Without reassign_to, a category with products or child categories is
    rejected (CategoryInUseError). With it, products and children move to the
    target first, in the same transaction, so no row is left pointing at a
    deleted category.
    """
    category = get_category(category_id)

    product_count = db.session.query(Product).filter(Product.category_id == category.id).count()
    child_count = db.session.query(Category).filter(Category.parent_id == category.id).count()

    if (product_count or child_count) and reassign_to in (None, ""):
        raise CategoryInUseError(
            f"Category has {product_count} product(s) and {child_count} subcategor(ies); "
            f"pass reassignTo to move them first"
        )

    target = None
    if product_count or child_count:
        target = _resolve_reassign_target(category, reassign_to)

    try:
        if target is not None:
            db.session.query(Product).filter(Product.category_id == category.id).update(
                {Product.category_id: target.id}, synchronize_session="fetch"
            )
            db.session.query(Category).filter(Category.parent_id == category.id).update(
                {Category.parent_id: target.id}, synchronize_session="fetch"
            )
        db.session.delete(category)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {
        "ok": True,
        "reassignedTo": target.id if target is not None else None,
        "movedProducts": product_count,
        "movedChildren": child_count,
    }


# =============================================================================
# Warehouses
# =============================================================================


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found")
    return warehouse


def list_warehouses(*, active_only: bool = False) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if active_only:
        query = query.filter(Warehouse.is_active.is_(True))
    return query.order_by(Warehouse.id.asc()).all()


def default_warehouse() -> Warehouse | None:
    settings = db.session.query(Settings).order_by(Settings.id.asc()).first()
    if settings is not None and settings.default_warehouse_id:
        warehouse = db.session.get(Warehouse, settings.default_warehouse_id)
        if warehouse is not None:
            return warehouse
    return db.session.query(Warehouse).filter_by(is_default=True).first()


def create_warehouse(payload: dict) -> Warehouse:
    patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=False)
    warehouse = Warehouse(**patch)
    db.session.add(warehouse)
    db.session.flush()
    if warehouse.is_default:
        _clear_other_defaults(Warehouse, warehouse.id)
    db.session.commit()
    return warehouse


def update_warehouse(warehouse_id: int, payload: dict) -> Warehouse:
    warehouse = get_warehouse(warehouse_id)
    patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=True)
    for key, value in patch.items():
        setattr(warehouse, key, value)
    if patch.get("is_default"):
        _clear_other_defaults(Warehouse, warehouse.id)
    db.session.commit()
    return warehouse


def delete_warehouse(warehouse_id: int) -> None:
    warehouse = get_warehouse(warehouse_id)

    for model in (Invoice, Purchase):
        if db.session.query(model.id).filter(model.warehouse_id == warehouse_id).first():
            raise WarehouseInUseError("Warehouse is referenced by invoices or purchases")
    if db.session.query(InventoryTransaction.id).filter(InventoryTransaction.warehouse_id == warehouse_id).first():
        raise WarehouseInUseError("Warehouse has stock history and cannot be deleted")

    try:
        db.session.query(Inventory).filter(Inventory.warehouse_id == warehouse_id).delete(synchronize_session="fetch")
        db.session.delete(warehouse)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# =============================================================================
# Products
# =============================================================================


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    category_id: int | None = None,
    active_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    List products with optional pagination.

    If page is None, returns all items (backward compatible).
    If page is provided, returns paginated results with metadata.
    """
    query = db.session.query(Product)
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        items = query.all()
        return {"items": [p.to_dict() for p in items], "count": len(items)}

    per_page = max(1, min(per_page or 20, 100))
    page = max(1, page)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [p.to_dict() for p in items],
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
    }


def search_products(query_text: str, *, limit: int = 50) -> list[Product]:
    text = (query_text or "").strip()
    query = db.session.query(Product)
    if text:
        pattern = f"%{text}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.code.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))
    return query.order_by(Product.name.asc()).limit(limit).all()


def _check_product_refs(patch: dict, product_id: int | None = None) -> None:
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise ValidationError(f"Category {patch['category_id']} not found")
    if patch.get("code"):
        clash = db.session.query(Product.id).filter(Product.code == patch["code"])
        if product_id is not None:
            clash = clash.filter(Product.id != product_id)
        if clash.first():
            raise ConflictError(f"Product code '{patch['code']}' already exists")


def create_product(payload: dict, *, user_id: int | None = None) -> Product:
    """
    Create a product, optionally stocking initialQuantity in warehouseId
    (or the default warehouse) in the same transaction.
    """
    data = normalize_keys(payload or {})
    extras = {k: data.pop(k) for k in list(data) if k in PRODUCT_CREATE_EXTRAS}

    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    _check_product_refs(patch)

    if patch.get("category_id") is None:
        fallback = default_category()
        if fallback is not None:
            patch["category_id"] = fallback.id

    initial_qty = 0.0
    warehouse = None
    if extras.get("initial_quantity") not in (None, "", 0):
        initial_qty = require_number(extras, "initial_quantity", minimum=0)
        if extras.get("warehouse_id") not in (None, ""):
            warehouse = db.session.get(Warehouse, int(extras["warehouse_id"]))
            if warehouse is None:
                raise ValidationError(f"Warehouse {extras['warehouse_id']} not found")
        else:
            warehouse = default_warehouse()
            if warehouse is None:
                raise ValidationError("initialQuantity needs warehouseId or a default warehouse")

    product = Product(**patch)
    db.session.add(product)
    try:
        db.session.flush()
        if initial_qty > 0:
            set_count(product_id=product.id, warehouse_id=warehouse.id, quantity=initial_qty, user_id=user_id)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Product code '{patch['code']}' already exists")
    except Exception:
        db.session.rollback()
        raise

    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    _check_product_refs(patch, product_id=product.id)

    for key, value in patch.items():
        setattr(product, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product code already exists")
    return product


def _zero_inventory(product: Product, user_id: int | None) -> list[dict]:
    """Count every non-zero stock row of the product down to zero and commit."""
    product_id = product.id
    note = f"Stock cleared before deleting product {product.code} ({product.name})"
    rows = (
        db.session.query(Inventory)
        .filter(Inventory.product_id == product_id, Inventory.quantity != 0)
        .all()
    )
    zeroed = []
    try:
        for row in rows:
            warehouse_id = row.warehouse_id
            _, delta = set_count(
                product_id=product_id, warehouse_id=warehouse_id, quantity=0.0, user_id=user_id, notes=note,
            )
            zeroed.append({"warehouseId": warehouse_id, "removed": -delta})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return zeroed


def delete_product(product_id: int, *, user_id: int | None = None) -> dict:
    """
    Zero the product's stock, then delete it with bounded retry.

    Raises ProductInUseError (after zeroing) when document lines reference
    the product; stock is not restored in that case.
    """
    zeroed = _zero_inventory(get_product(product_id), user_id)
    if zeroed:
        logger.info("Zeroed stock of product %s before delete: %s", product_id, zeroed)

    for detail_model in (InvoiceDetail, PurchaseDetail):
        if db.session.query(detail_model.id).filter(detail_model.product_id == product_id).first():
            raise ProductInUseError(
                "Product is used on invoices or purchases and cannot be deleted; "
                "its stock has been set to zero"
            )

    def _op():
        db.session.query(Inventory).filter(Inventory.product_id == product_id).delete(synchronize_session=False)
        db.session.query(Product).filter(Product.id == product_id).delete(synchronize_session=False)

    run_atomic(_op, label=f"delete product {product_id}", backoff=0.5)
    db.session.expunge_all()
    return {"ok": True, "zeroed": zeroed}


def ensure_defaults() -> tuple[Category, Warehouse]:
    """Create the default category and warehouse if missing (idempotent). Does not commit."""
    category = default_category()
    if category is None:
        category = Category(name=DEFAULT_CATEGORY_NAME, is_default=True)
        db.session.add(category)

    warehouse = db.session.query(Warehouse).filter_by(is_default=True).first()
    if warehouse is None:
        warehouse = Warehouse(name=DEFAULT_WAREHOUSE_NAME, is_default=True, is_active=True)
        db.session.add(warehouse)
    db.session.flush()
    return category, warehouse


def move_stock(*, product_id: int, from_warehouse_id: int, to_warehouse_id: int, quantity: float, user_id: int | None = None) -> None:
    """Transfer stock between warehouses as a pair of 'transfer' movements and commit."""
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError("Source and destination warehouses must differ")
    get_product(product_id)
    get_warehouse(from_warehouse_id)
    get_warehouse(to_warehouse_id)

    try:
        apply_movement(product_id=product_id, warehouse_id=from_warehouse_id, delta=-quantity,
                       tx_type="transfer", notes=f"Transfer to warehouse {to_warehouse_id}", user_id=user_id)
        apply_movement(product_id=product_id, warehouse_id=to_warehouse_id, delta=quantity,
                       tx_type="transfer", notes=f"Transfer from warehouse {from_warehouse_id}", user_id=user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
