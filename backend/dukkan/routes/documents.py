# Overview: Flask API routes for invoices and purchases; parses input and returns JSON responses.

# backend/dukkan/routes/documents.py
"""
Invoice and purchase routes.

Both document types share one workflow (document_service) and one set of
endpoints, built per model by make_document_blueprint():

    GET    /api/<docs>                ?accountId&startDate&endDate&status&kind&include=details
    POST   /api/<docs>                {invoice|purchase: {...header}, details: [...]}
    GET    /api/<docs>/<id>           header + details
    PATCH  /api/<docs>/<id>           edit header/lines (effects reversed and re-applied)
    PATCH  /api/<docs>/<id>/status    {status}
    DELETE /api/<docs>/<id>           effects reversed, then deleted

GET /api/invoices?type=purchases answers with purchases (combined list view).

Every mutation answers with the document as stored after commit.
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth, current_user_id
from ..models import Invoice, Purchase
from ..services import document_service
from . import DOMAIN_ERRORS, bool_arg, error_response, period_args


def _list_response(model):
    try:
        start, end = period_args()
    except DOMAIN_ERRORS as e:
        return error_response(e)

    include_details = request.args.get("include") == "details" or bool_arg("includeDetails")
    docs = document_service.list_documents(
        model,
        account_id=request.args.get("accountId", type=int),
        start=start,
        end=end,
        status=request.args.get("status") or None,
        kind=request.args.get("kind") or None,
        limit=request.args.get("limit", default=500, type=int),
    )
    return [d.to_dict(include_details=include_details) for d in docs]


def make_document_blueprint(model, name: str) -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=f"/api/{name}")
    label = model.DOCUMENT_TYPE

    @bp.get("")
    @require_auth
    def list_documents_route():
        source = model
        if model is Invoice and request.args.get("type") == "purchases":
            source = Purchase
        return _list_response(source)

    @bp.post("")
    @require_auth
    def create_document_route():
        payload = request.get_json(silent=True) or {}
        try:
            doc = document_service.create_document(model, payload, user_id=current_user_id())
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to create %s", label)
            return {"error": "Internal server error"}, 500
        return doc.to_dict(include_details=True), 201

    @bp.get("/<int:document_id>")
    @require_auth
    def get_document_route(document_id: int):
        try:
            return document_service.get_document(model, document_id).to_dict(include_details=True)
        except DOMAIN_ERRORS as e:
            return error_response(e)

    @bp.route("/<int:document_id>", methods=["PUT", "PATCH"])
    @require_auth
    def update_document_route(document_id: int):
        payload = request.get_json(silent=True) or {}
        try:
            doc = document_service.update_document(model, document_id, payload, user_id=current_user_id())
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to update %s %s", label, document_id)
            return {"error": "Internal server error"}, 500
        return doc.to_dict(include_details=True)

    @bp.patch("/<int:document_id>/status")
    @require_auth
    def change_status_route(document_id: int):
        payload = request.get_json(silent=True) or {}
        status = payload.get("status")
        if not status:
            return {"error": "status is required"}, 400
        try:
            doc = document_service.change_status(model, document_id, status, user_id=current_user_id())
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to change status of %s %s", label, document_id)
            return {"error": "Internal server error"}, 500
        return doc.to_dict(include_details=True)

    @bp.delete("/<int:document_id>")
    @require_auth
    def delete_document_route(document_id: int):
        try:
            document_service.delete_document(model, document_id, user_id=current_user_id())
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to delete %s %s", label, document_id)
            return {"error": "Internal server error"}, 500
        return {"ok": True}

    return bp


invoices_bp = make_document_blueprint(Invoice, "invoices")
purchases_bp = make_document_blueprint(Purchase, "purchases")
