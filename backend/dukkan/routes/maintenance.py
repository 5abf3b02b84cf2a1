# Overview: Flask API routes for backup and restore; parses input and returns JSON responses.

# backend/dukkan/routes/maintenance.py
"""
Backup/restore routes (admin only).

POST /api/backup   {backupPath?}                     -> {success, message, backupFile, size}
POST /api/restore  {backupFile, restoreData?, restoreTemplates?}
GET  /api/backups  ?backupPath=                      -> backups found in the directory

backupPath defaults to the BACKUP_DIR setting.
"""
from flask import Blueprint, request, current_app, g

from ..decorators import require_admin, require_auth
from ..services import backup_service
from . import DOMAIN_ERRORS, error_response

maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/api")


@maintenance_bp.post("/backup")
@require_auth
@require_admin
def backup_route():
    data = request.get_json(silent=True) or {}
    try:
        result = backup_service.create_backup(data.get("backupPath"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except OSError:
        current_app.logger.exception("Failed to create backup")
        return {"error": "Error creating backup"}, 500
    return result


@maintenance_bp.post("/restore")
@require_auth
@require_admin
def restore_route():
    data = request.get_json(silent=True) or {}
    restore_data = data.get("restoreData", True)
    # the session is torn down during restore
    username = g.current_user.username
    try:
        result = backup_service.restore_backup(
            data.get("backupFile"),
            restore_data=bool(restore_data),
            restore_templates=bool(data.get("restoreTemplates", False)),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except OSError:
        current_app.logger.exception("Failed to restore database")
        return {"error": "Error restoring database"}, 500
    current_app.logger.warning("Database restore requested by %s", username)
    return result


@maintenance_bp.get("/backups")
@require_auth
@require_admin
def list_backups_route():
    return {"backups": backup_service.list_backups(request.args.get("backupPath"))}
