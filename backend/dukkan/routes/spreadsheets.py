# Overview: Flask API routes for Excel export, templates and import.

# backend/dukkan/routes/spreadsheets.py
"""
Spreadsheet routes.

GET  /api/export/<products|accounts|invoices|transactions>   -> xlsx download
GET  /api/export/templates/<entity>                           -> empty template with a sample row
POST /api/import/<products|accounts>   multipart field "file" -> {created, updated, errors}
"""
import io

from flask import Blueprint, request, send_file

from ..decorators import require_auth, current_user_id
from ..services import spreadsheet_service
from ..services.spreadsheet_service import XLSX_MIMETYPE
from . import DOMAIN_ERRORS, error_response

spreadsheets_bp = Blueprint("spreadsheets", __name__, url_prefix="/api")


def _download(content: bytes, filename: str):
    return send_file(
        io.BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@spreadsheets_bp.get("/export/templates/<entity>")
@require_auth
def template_route(entity: str):
    try:
        content, filename = spreadsheet_service.template_workbook(entity)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return _download(content, filename)


@spreadsheets_bp.get("/export/<entity>")
@require_auth
def export_route(entity: str):
    try:
        content, filename = spreadsheet_service.export_workbook(entity)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return _download(content, filename)


@spreadsheets_bp.post("/import/<entity>")
@require_auth
def import_route(entity: str):
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return {"error": "file is required"}, 400
    try:
        stream = io.BytesIO(upload.read())
        return spreadsheet_service.import_workbook(entity, stream, user_id=current_user_id())
    except DOMAIN_ERRORS as e:
        return error_response(e)
