# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/dukkan/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- bcrypt password check
- Session token delivered in an httpOnly cookie (SameSite=Lax)
- Bearer header accepted as a fallback for non-browser clients
- Only administrators can create users; self-registration does not exist
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_admin, require_auth, request_token
from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError, UserExistsError
from ..models.auth import USER_ROLES


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _set_session_cookie(response, token: str):
    config = current_app.config
    response.set_cookie(
        config["SESSION_COOKIE_NAME"],
        token,
        max_age=config["SESSION_LIFETIME_DAYS"] * 24 * 3600,
        httponly=True,
        secure=config["SESSION_COOKIE_SECURE"],
        samesite="Lax",
        path="/",
    )
    return response


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create a session.

    Returns user info; the session token is set as an httpOnly cookie and
    also returned in the body for API clients.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        })
        return _set_session_cookie(response, token), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke the current session and clear the cookie.

    WHY: Explicit logout prevents token reuse.
    """
    token = request_token()
    if not token:
        return jsonify({"error": "Authentication required"}), 401

    revoked = session_service.revoke_session(token, reason="User logout")

    response = jsonify({"message": "Logout successful"} if revoked else {"error": "Invalid or expired session"})
    response.delete_cookie(current_app.config["SESSION_COOKIE_NAME"], path="/")
    return response, (200 if revoked else 401)


@auth_bp.get("/status")
def status_route():
    """Report whether the caller holds a valid session (never 401)."""
    context = session_service.validate_session(request_token())
    if not context:
        return jsonify({"authenticated": False, "user": None}), 200
    return jsonify({"authenticated": True, "user": context.user.to_dict()}), 200


@users_bp.get("")
@require_auth
def list_users_route():
    return jsonify([u.to_dict() for u in auth_service.list_users()])


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """Create a user (admin only)."""
    data = request.get_json(silent=True) or {}
    role = data.get("role") or "user"
    if role not in USER_ROLES:
        return jsonify({"error": f"role must be one of: {', '.join(USER_ROLES)}"}), 400

    try:
        user = auth_service.create_user(
            data.get("username"),
            data.get("password"),
            full_name=data.get("fullName"),
            email=data.get("email"),
            phone=data.get("phone"),
            role=role,
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except UserExistsError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("User %s created by %s", user.username, g.current_user.username)
    return jsonify(user.to_dict()), 201
