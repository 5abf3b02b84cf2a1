# Overview: Flask API routes for accounts operations; parses input and returns JSON responses.

# backend/dukkan/routes/accounts.py
"""
Account (party ledger) routes.

SECURITY: All routes require authentication.
currentBalance is never writable here; it only moves through transactions.
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth
from ..services import account_service
from . import DOMAIN_ERRORS, bool_arg, error_response, period_args

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.get("")
@require_auth
def list_accounts_route():
    """
    Query params:
    - type: customer|supplier|expense|income|bank|cash (optional)
    - showNonZeroOnly: bool, only accounts with a non-zero balance
    - showActiveOnly: bool
    """
    accounts = account_service.list_accounts(
        account_type=request.args.get("type") or None,
        show_non_zero_only=bool_arg("showNonZeroOnly"),
        show_active_only=bool_arg("showActiveOnly"),
    )
    return [a.to_dict() for a in accounts]


@accounts_bp.get("/search")
@require_auth
def search_accounts_route():
    accounts = account_service.search_accounts(
        request.args.get("query") or request.args.get("q") or "",
        account_type=request.args.get("type") or None,
    )
    return [a.to_dict() for a in accounts]


@accounts_bp.post("")
@require_auth
def create_account_route():
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.create_account(payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return account.to_dict(), 201


@accounts_bp.get("/<int:account_id>")
@require_auth
def get_account_route(account_id: int):
    try:
        return account_service.get_account(account_id).to_dict()
    except DOMAIN_ERRORS as e:
        return error_response(e)


@accounts_bp.route("/<int:account_id>", methods=["PUT", "PATCH"])
@require_auth
def update_account_route(account_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.update_account(account_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return account.to_dict()


@accounts_bp.delete("/<int:account_id>")
@require_auth
def delete_account_route(account_id: int):
    try:
        account_service.delete_account(account_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"ok": True}


@accounts_bp.get("/<int:account_id>/statement")
@require_auth
def account_statement_route(account_id: int):
    """Running-balance statement; ?startDate=&endDate= bound the period."""
    try:
        start, end = period_args()
        return account_service.account_statement(account_id, start=start, end=end)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build statement for account %s", account_id)
        return {"error": "Internal server error"}, 500


@accounts_bp.get("/<int:account_id>/last-transactions")
@require_auth
def last_transactions_route(account_id: int):
    try:
        return account_service.last_transactions(account_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
