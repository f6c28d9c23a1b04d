"""
Tests for authentication endpoints
"""
from datetime import datetime, timedelta
from jose import jwt

from gridportal.config import settings
from gridportal.core.auth import verify_token
from gridportal.models import AuditLog

from conftest import make_user, auth_headers, TEST_PASSWORD


class TestAuthAPI:
    """Test register, login, refresh and token checks"""

    def test_register_assigns_default_role(self, client):
        response = client.post("/api/Auth/register", json={
            "username": "newuser",
            "password": "password1",
            "email": "new@example.com",
            "firstName": "New"
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Registration successful"
        assert data["token"]
        assert data["tokenExpiration"]
        assert data["user"]["username"] == "newuser"
        assert data["user"]["firstName"] == "New"
        assert data["user"]["roles"] == ["User"]

    def test_register_duplicate_username(self, client, regular_user):
        response = client.post("/api/Auth/register", json={"username": "viewer", "password": "password1"})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Username already exists",
            "token": None,
            "tokenExpiration": None,
            "user": None,
        }

    def test_register_validation(self, client):
        response = client.post("/api/Auth/register", json={"username": "ab", "password": "123"})
        assert response.status_code == 422
        assert response.json()["message"] == "Validation error"

    def test_login(self, client, db_session, manager_user):
        response = client.post("/api/Auth/login", json={"username": "manager", "password": TEST_PASSWORD})
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["roles"] == ["Manager"]

        payload = verify_token(data["token"])
        assert payload.sub == manager_user.id
        assert payload.name == "manager"
        assert payload.roles == ["Manager"]

        db_session.refresh(manager_user)
        assert manager_user.last_login_at is not None
        assert db_session.query(AuditLog).filter(AuditLog.action == "login").count() == 1

    def test_login_wrong_password(self, client, db_session, manager_user):
        response = client.post("/api/Auth/login", json={"username": "manager", "password": "wrong"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid username or password"
        audit = db_session.query(AuditLog).filter(AuditLog.action == "login").first()
        assert audit.status == "failure"

    def test_login_inactive_user(self, client, db_session):
        make_user(db_session, "disabled", ["User"], is_active=False)
        response = client.post("/api/Auth/login", json={"username": "disabled", "password": TEST_PASSWORD})
        assert response.status_code == 401

    def test_refresh_accepts_expired_token(self, client, regular_user):
        expired = jwt.encode({
            "sub": str(regular_user.id),
            "name": regular_user.username,
            "roles": ["User"],
            "iss": settings.JWT_ISSUER,
            "aud": settings.JWT_AUDIENCE,
            "exp": datetime.utcnow() - timedelta(hours=1),
        }, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

        response = client.post("/api/Auth/refresh", json=expired)
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Token refreshed successfully"
        assert verify_token(data["token"]) is not None

    def test_refresh_rejects_bad_token(self, client):
        response = client.post("/api/Auth/refresh", json="not-a-token")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_refresh_requires_token(self, client):
        response = client.post("/api/Auth/refresh", json="  ")
        assert response.status_code == 400
        assert response.json()["message"] == "Token is required"

    def test_token_check(self, client, admin_user):
        response = client.get("/api/Auth/test", headers=auth_headers(admin_user))
        assert response.status_code == 200
        assert response.json() == {
            "message": "You are authenticated!",
            "userId": str(admin_user.id),
            "username": "admin",
            "roles": ["Admin"],
        }

    def test_missing_token(self, client):
        response = client.get("/api/Auth/test")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_expired_token_rejected(self, client, regular_user):
        expired = jwt.encode({
            "sub": str(regular_user.id),
            "name": regular_user.username,
            "iss": settings.JWT_ISSUER,
            "aud": settings.JWT_AUDIENCE,
            "exp": datetime.utcnow() - timedelta(minutes=1),
        }, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        response = client.get("/api/Auth/test", headers={"Authorization": f"Bearer {expired}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_user_without_roles_gets_default_role(self, client, db_session):
        user = make_user(db_session, "norole", [])
        response = client.get("/api/Auth/test", headers=auth_headers(user))
        assert response.json()["roles"] == ["User"]


class TestSystemEndpoints:
    """Test health, root and configuration endpoints"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Process-Time" in response.headers
        assert response.headers["X-Request-ID"]

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"

    def test_drill_down_settings(self, client):
        response = client.get("/api/Configuration/drill-down-settings")
        assert response.status_code == 200
        assert response.json() == {
            "enableUnlimitedDrillDown": settings.ENABLE_UNLIMITED_DRILL_DOWN,
            "defaultMaxDepth": settings.DEFAULT_MAX_DEPTH,
        }
