"""
Authentication and authorization tests.

Verifies:
- Unauthenticated requests return 401
- Login sets an httpOnly session cookie; Bearer tokens work as a fallback
- Logout revokes the session
- Non-admin users are denied administrative operations (403)
"""

from datetime import timedelta

import pytest

from dukkan.extensions import db
from dukkan.models import SessionToken, User
from dukkan.services import session_service
from dukkan.services.auth_service import (
    PasswordValidationError,
    UserExistsError,
    create_user,
    validate_password_strength,
)
from dukkan.time_utils import utcnow

ADMIN_PASSWORD = "Admin123!"


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a session."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/accounts"),
            ("POST", "/api/accounts"),
            ("GET", "/api/products"),
            ("GET", "/api/inventory"),
            ("POST", "/api/inventory"),
            ("GET", "/api/transactions"),
            ("GET", "/api/invoices"),
            ("POST", "/api/purchases"),
            ("GET", "/api/settings"),
            ("GET", "/api/stats"),
            ("GET", "/api/reports?type=sales"),
            ("GET", "/api/export/products"),
            ("POST", "/api/backup"),
            ("GET", "/api/users"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/accounts", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_sets_cookie(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["user"]["username"] == "admin"
        assert data["token"]

        cookie = resp.headers.get("Set-Cookie")
        assert "dukkan_session=" in cookie
        assert "HttpOnly" in cookie

        assert client.get("/api/accounts").status_code == 200

    def test_bearer_token_fallback(self, app, admin_user, login):
        data = login(app.test_client(), "admin", ADMIN_PASSWORD)

        fresh = app.test_client()
        resp = fresh.get("/api/accounts", headers={"Authorization": f"Bearer {data['token']}"})
        assert resp.status_code == 200

    def test_token_stored_hashed(self, client, admin_user, login):
        data = login(client, "admin", ADMIN_PASSWORD)
        stored = db.session.query(SessionToken.token_hash).all()
        assert [row[0] for row in stored] == [session_service.hash_token(data["token"])]

    @pytest.mark.parametrize(
        "body,status",
        [
            ({}, 400),
            ({"username": "admin"}, 400),
            ({"username": "admin", "password": "wrong-Pass1!"}, 401),
            ({"username": "ghost", "password": ADMIN_PASSWORD}, 401),
        ],
    )
    def test_bad_login(self, client, admin_user, body, status):
        assert client.post("/api/auth/login", json=body).status_code == status

    def test_inactive_user_cannot_login(self, client, admin_user):
        db.session.query(User).filter_by(username="admin").update({User.is_active: False})
        db.session.commit()

        resp = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
        assert resp.status_code == 401

    def test_status(self, client, admin_user, login):
        assert client.get("/api/auth/status").get_json() == {"authenticated": False, "user": None}

        login(client, "admin", ADMIN_PASSWORD)
        data = client.get("/api/auth/status").get_json()
        assert data["authenticated"] is True
        assert data["user"]["role"] == "admin"

    def test_logout_revokes_session(self, auth_client):
        resp = auth_client.post("/api/auth/logout")
        assert resp.status_code == 200

        assert auth_client.get("/api/accounts").status_code == 401
        assert auth_client.post("/api/auth/logout").status_code == 401


# =============================================================================
# ADMIN-ONLY OPERATIONS (403)
# =============================================================================


class TestAdminOnly:

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("POST", "/api/users", {"username": "x", "password": "Xyz12345!"}),
            ("PUT", "/api/settings", {"companyName": "Hacked"}),
            ("POST", "/api/backup", {}),
            ("POST", "/api/restore", {"backupFile": "x"}),
            ("GET", "/api/backups", None),
        ],
    )
    def test_clerk_denied(self, clerk_client, method, path, body):
        kwargs = {"json": body} if body is not None else {}
        resp = getattr(clerk_client, method.lower())(path, **kwargs)
        assert resp.status_code == 403

    def test_clerk_can_read_settings_and_users(self, clerk_client):
        assert clerk_client.get("/api/settings").status_code == 200
        assert clerk_client.get("/api/users").status_code == 200

    def test_admin_creates_user(self, auth_client):
        resp = auth_client.post("/api/users", json={
            "username": "cashier", "password": "Cashier1!", "fullName": "Cashier", "role": "user",
        })
        assert resp.status_code == 201
        assert resp.get_json()["role"] == "user"

        again = auth_client.post("/api/users", json={"username": "cashier", "password": "Cashier1!"})
        assert again.status_code == 409

    @pytest.mark.parametrize(
        "body",
        [
            {"username": "weak", "password": "password"},
            {"username": "role", "password": "Strong12!", "role": "owner"},
            {"password": "Strong12!"},
        ],
    )
    def test_admin_create_user_validation(self, auth_client, body):
        assert auth_client.post("/api/users", json=body).status_code == 400

    def test_admin_updates_settings(self, auth_client):
        resp = auth_client.put("/api/settings", json={"companyName": "Dukkan Trading", "decimalPlaces": 3})
        assert resp.status_code == 200
        assert resp.get_json()["companyName"] == "Dukkan Trading"

        bad = auth_client.put("/api/settings", json={"decimalPlaces": 9})
        assert bad.status_code == 400


@pytest.mark.parametrize(
    "password",
    ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"],
)
def test_password_strength_rules(password):
    with pytest.raises(PasswordValidationError):
        validate_password_strength(password)


def test_default_admin_password_is_strong():
    validate_password_strength(ADMIN_PASSWORD)


def test_expired_session_is_revoked(app, admin_user):
    session, token = session_service.create_session(user_id=admin_user.id)
    session.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    assert session_service.validate_session(token) is None
    assert db.session.get(SessionToken, session.id).is_revoked is True


def test_users_share_username_namespace(db_session):
    create_user("dup", "Dup12345!")
    with pytest.raises(UserExistsError):
        create_user("dup", "Dup12345!")
