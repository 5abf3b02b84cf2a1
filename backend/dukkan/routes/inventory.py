# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/dukkan/routes/inventory.py
"""
Inventory routes.

POST /api/inventory body: {productId, warehouseId, quantity, isCount}
- isCount=true: quantity is the absolute on-hand figure (physical count)
- otherwise:    quantity is a signed adjustment delta

The response carries the resulting row plus appliedDelta, the change that
was actually written (0 when a count matched the stored quantity).
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth, current_user_id
from ..services import catalog_service, inventory_service
from ..validation import normalize_keys, require_id, require_number
from . import DOMAIN_ERRORS, error_response

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")
inventory_transactions_bp = Blueprint(
    "inventory_transactions", __name__, url_prefix="/api/inventory-transactions"
)


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    """Query params: warehouseId (optional)."""
    return inventory_service.list_inventory(warehouse_id=request.args.get("warehouseId", type=int))


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    return inventory_service.low_stock_products()


@inventory_bp.get("/<int:product_id>/<int:warehouse_id>")
@require_auth
def get_inventory_route(product_id: int, warehouse_id: int):
    inv = inventory_service.get_inventory(product_id, warehouse_id)
    if inv is None:
        return {"error": "Inventory record not found"}, 404
    return inv.to_dict()


@inventory_bp.post("")
@require_auth
def update_inventory_route():
    payload = request.get_json(silent=True) or {}
    try:
        return inventory_service.update_inventory(payload, user_id=current_user_id())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory")
        return {"error": "Internal server error"}, 500


@inventory_bp.post("/transfer")
@require_auth
def transfer_route():
    """Move stock between warehouses: {productId, fromWarehouseId, toWarehouseId, quantity}."""
    data = normalize_keys(request.get_json(silent=True) or {})
    try:
        product_id = require_id(data, "product_id")
        from_id = require_id(data, "from_warehouse_id")
        to_id = require_id(data, "to_warehouse_id")
        quantity = require_number(data, "quantity", minimum=0, strict=True)
        catalog_service.move_stock(
            product_id=product_id,
            from_warehouse_id=from_id,
            to_warehouse_id=to_id,
            quantity=quantity,
            user_id=current_user_id(),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)

    source = inventory_service.get_inventory(product_id, from_id)
    target = inventory_service.get_inventory(product_id, to_id)
    return {
        "ok": True,
        "from": source.to_dict() if source else None,
        "to": target.to_dict() if target else None,
    }


@inventory_transactions_bp.get("")
@require_auth
def list_inventory_transactions_route():
    """Query params: productId, warehouseId, documentType, documentId, limit."""
    rows = inventory_service.list_inventory_transactions(
        product_id=request.args.get("productId", type=int),
        warehouse_id=request.args.get("warehouseId", type=int),
        document_type=request.args.get("documentType") or None,
        document_id=request.args.get("documentId", type=int),
        limit=request.args.get("limit", default=200, type=int),
    )
    return [r.to_dict() for r in rows]
