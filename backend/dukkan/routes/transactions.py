# Overview: Flask API routes for financial transactions; parses input and returns JSON responses.

# backend/dukkan/routes/transactions.py
"""
Financial transaction routes.

Creating, editing or deleting a manual transaction moves the balance of its
account (and, with bankId, the opposite move on the bank/cash account).
Transactions written by invoice/purchase posting are read-only here (409).
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth, current_user_id
from ..services import transaction_service
from . import DOMAIN_ERRORS, error_response, period_args

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """Query params: accountId, type (debit|credit), startDate, endDate, limit."""
    try:
        start, end = period_args()
    except DOMAIN_ERRORS as e:
        return error_response(e)

    rows = transaction_service.list_transactions(
        account_id=request.args.get("accountId", type=int),
        start=start,
        end=end,
        tx_type=request.args.get("type") or None,
        limit=request.args.get("limit", default=500, type=int),
    )
    return [r.to_dict() for r in rows]


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    payload = request.get_json(silent=True) or {}
    try:
        tx = transaction_service.create_transaction(payload, user_id=current_user_id())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return {"error": "Internal server error"}, 500
    return tx.to_dict(), 201


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        return transaction_service.get_transaction(transaction_id).to_dict()
    except DOMAIN_ERRORS as e:
        return error_response(e)


@transactions_bp.route("/<int:transaction_id>", methods=["PUT", "PATCH"])
@require_auth
def update_transaction_route(transaction_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        tx = transaction_service.update_transaction(transaction_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return tx.to_dict()


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
def delete_transaction_route(transaction_id: int):
    try:
        transaction_service.delete_transaction(transaction_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"ok": True}
