"""Tests for registration, login and token handling over HTTP."""
from datetime import datetime, timedelta, timezone

from facegallery.models import User
from facegallery.security import create_access_token


class TestRegister:
    def test_register_defaults_to_student(self, client):
        r = client.post("/api/register", json={"name": "alice", "password": "secret123"})
        assert r.status_code == 201
        assert r.json()["message"] == "User registered successfully"

        r = client.post("/api/login", json={"name": "alice", "password": "secret123"})
        assert r.json()["user"]["role"] == "student"

    def test_duplicate_name_is_rejected(self, client, app):
        body = {"name": "alice", "password": "secret123"}
        assert client.post("/api/register", json=body).status_code == 201
        r = client.post("/api/register", json=body)
        assert r.status_code == 400
        assert r.json()["message"] == "Username already exists"

        with app.state.session_factory() as db:
            assert db.query(User).filter(User.name == "alice").count() == 1

    def test_missing_fields(self, client):
        r = client.post("/api/register", json={"name": "alice"})
        assert r.status_code == 400
        assert r.json()["message"] == "Name and password are required"

    def test_short_password(self, client):
        r = client.post("/api/register", json={"name": "alice", "password": "12345"})
        assert r.status_code == 400
        assert "at least 6" in r.json()["message"]

    def test_unknown_role(self, client):
        r = client.post("/api/register", json={"name": "alice", "password": "secret123", "role": "guest"})
        assert r.status_code == 400

    def test_malformed_body_is_a_400(self, client):
        r = client.post("/api/register", json={"name": ["x"], "password": "secret123"})
        assert r.status_code == 400
        assert "message" in r.json()


class TestLogin:
    def test_login_returns_token_and_summary(self, client):
        client.post("/api/register", json={"name": "root", "password": "secret123", "role": "admin"})
        r = client.post("/api/login", json={"name": "root", "password": "secret123"})
        assert r.status_code == 200
        data = r.json()
        assert data["token"]
        assert data["user"]["name"] == "root"
        assert data["user"]["role"] == "admin"
        assert "id" in data["user"]

    def test_wrong_password(self, client):
        client.post("/api/register", json={"name": "root", "password": "secret123"})
        r = client.post("/api/login", json={"name": "root", "password": "nope-nope"})
        assert r.status_code == 400
        assert r.json()["message"] == "Invalid credentials"

    def test_unknown_user(self, client):
        r = client.post("/api/login", json={"name": "ghost", "password": "secret123"})
        assert r.status_code == 400


class TestTokenValidation:
    def test_missing_token(self, client):
        r = client.get("/api/verify-status")
        assert r.status_code == 401
        assert r.json()["message"] == "Please authenticate"

    def test_invalid_token(self, client):
        r = client.get("/api/verify-status", headers={"Authorization": "Bearer garbage"})
        assert r.status_code == 401

    def test_expired_token(self, client, app, student_headers):
        with app.state.session_factory() as db:
            user = db.query(User).filter(User.name == "student").one()
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = create_access_token(user.id, user.role, app.state.settings.jwt_secret, now=issued)
        r = client.get("/api/verify-status", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
        assert r.json()["message"] == "Token expired"

    def test_token_for_deleted_user_is_rejected(self, client, app, student_headers):
        with app.state.session_factory() as db:
            db.query(User).filter(User.name == "student").delete()
            db.commit()
        r = client.get("/api/verify-status", headers=student_headers)
        assert r.status_code == 401

    def test_verify_status(self, client, student_headers):
        r = client.get("/api/verify-status", headers=student_headers)
        assert r.status_code == 200
        data = r.json()
        assert data["isVerified"] is False
        assert data["user"]["name"] == "student"
