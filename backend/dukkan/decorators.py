# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


def request_token() -> str | None:
    """Session token from the httpOnly cookie, falling back to a Bearer header."""
    token = request.cookies.get(current_app.config["SESSION_COOKIE_NAME"])
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def current_user_id() -> int | None:
    context = getattr(g, "session_context", None)
    return context.user_id if context else None


def require_auth(f):
    """
    Require an authenticated session.

    Sets the following Flask g attributes for this request only:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No session cookie and no Authorization header
    - Invalid, expired, or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired session"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require the authenticated user to be an admin.

    Must be stacked below @require_auth.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if not user.is_admin:
            return jsonify({"error": "Administrator access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
