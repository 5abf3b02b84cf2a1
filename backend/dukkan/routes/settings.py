from __future__ import annotations

from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_admin, require_auth
from ..services import settings_service
from . import DOMAIN_ERRORS, error_response


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def get_settings_route():
    return jsonify(settings_service.get_settings().to_dict())


@settings_bp.route("", methods=["PUT", "PATCH"])
@require_auth
@require_admin
def update_settings_route():
    payload = request.get_json(silent=True) or {}
    try:
        settings = settings_service.update_settings(payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("Settings updated by %s: %s", g.current_user.username, sorted(payload))
    return jsonify(settings.to_dict())
