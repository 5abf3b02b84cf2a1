# Overview: Flask API routes for categories, products and warehouses; parses input and returns JSON responses.

# backend/dukkan/routes/catalog.py
"""
Catalog routes.

SECURITY: All routes require authentication.

Deletes are guarded:
- DELETE /api/categories/<id>?reassignTo=<id|default> moves products and
  subcategories before removing a category that still has them
- DELETE /api/products/<id> zeroes stock first; 409 if document lines use it
- DELETE /api/warehouses/<id> is refused while documents or stock reference it
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, current_user_id
from ..services import catalog_service
from . import DOMAIN_ERRORS, bool_arg, error_response

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
products_bp = Blueprint("products", __name__, url_prefix="/api/products")
warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")


# =============================================================================
# Categories
# =============================================================================


@categories_bp.get("")
@require_auth
def list_categories_route():
    return [c.to_dict() for c in catalog_service.list_categories()]


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.create_category(payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return category.to_dict(), 201


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        return catalog_service.get_category(category_id).to_dict()
    except DOMAIN_ERRORS as e:
        return error_response(e)


@categories_bp.route("/<int:category_id>", methods=["PUT", "PATCH"])
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.update_category(category_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return category.to_dict()


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    try:
        return catalog_service.delete_category(category_id, reassign_to=request.args.get("reassignTo"))
    except DOMAIN_ERRORS as e:
        return error_response(e)


# =============================================================================
# Products
# =============================================================================


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - categoryId: int (optional)
    - activeOnly: bool (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - perPage: int (optional) - items per page (default 20, max 100)
    """
    try:
        return catalog_service.list_products(
            category_id=request.args.get("categoryId", type=int),
            active_only=bool_arg("activeOnly"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("perPage", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)


@products_bp.get("/search")
@require_auth
def search_products_route():
    products = catalog_service.search_products(request.args.get("query") or request.args.get("q") or "")
    return [p.to_dict() for p in products]


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a product. Optional initialQuantity (+ warehouseId, else the
    default warehouse) stocks it as an initial count.
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = catalog_service.create_product(payload, user_id=current_user_id())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return catalog_service.get_product(product_id).to_dict()
    except DOMAIN_ERRORS as e:
        return error_response(e)


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = catalog_service.update_product(product_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return product.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        return catalog_service.delete_product(product_id, user_id=current_user_id())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product %s (user %s)", product_id, g.current_user.id)
        return {"error": "Product could not be deleted; its stock may already be zero"}, 500


# =============================================================================
# Warehouses
# =============================================================================


@warehouses_bp.get("")
@require_auth
def list_warehouses_route():
    return [w.to_dict() for w in catalog_service.list_warehouses(active_only=bool_arg("activeOnly"))]


@warehouses_bp.post("")
@require_auth
def create_warehouse_route():
    payload = request.get_json(silent=True) or {}
    try:
        warehouse = catalog_service.create_warehouse(payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return warehouse.to_dict(), 201


@warehouses_bp.get("/<int:warehouse_id>")
@require_auth
def get_warehouse_route(warehouse_id: int):
    try:
        return catalog_service.get_warehouse(warehouse_id).to_dict()
    except DOMAIN_ERRORS as e:
        return error_response(e)


@warehouses_bp.route("/<int:warehouse_id>", methods=["PUT", "PATCH"])
@require_auth
def update_warehouse_route(warehouse_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        warehouse = catalog_service.update_warehouse(warehouse_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return warehouse.to_dict()


@warehouses_bp.delete("/<int:warehouse_id>")
@require_auth
def delete_warehouse_route(warehouse_id: int):
    try:
        catalog_service.delete_warehouse(warehouse_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"ok": True}
