from datetime import timedelta

import pytest

from src.auth.schemas import StaffRole
from src.auth.service import BOOTSTRAP_ADMIN_ID, StaffService
from src.auth.utils import create_access_token, get_password_hash, verify_password
from tests.helpers import ADMIN_EMAIL, ADMIN_PASSWORD, auth_header


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = get_password_hash("gate-pass")
        assert hashed != "gate-pass"
        assert verify_password("gate-pass", hashed)
        assert not verify_password("wrong", hashed)


class TestLogin:
    def test_bootstrap_admin(self, client):
        response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["id"] == BOOTSTRAP_ADMIN_ID
        assert body["user"]["role"] == "admin"

        me = client.get("/api/auth/me", headers=auth_header(body["access_token"])).json()
        assert me["email"] == ADMIN_EMAIL
        assert me["role"] == "admin"

    def test_database_staff(self, client, db_session):
        StaffService.create_staff(db_session, "Gate One", "Gate1@Example.com", "gate-pass", StaffRole.STAFF)

        response = client.post("/api/auth/login", json={"email": "gate1@example.com", "password": "gate-pass"})
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["role"] == "staff"
        assert user["name"] == "Gate One"

    def test_inactive_staff(self, client, db_session):
        staff = StaffService.create_staff(db_session, "Old", "old@example.com", "gate-pass")
        staff.is_active = False
        db_session.commit()

        response = client.post("/api/auth/login", json={"email": "old@example.com", "password": "gate-pass"})
        assert response.status_code == 401

    @pytest.mark.parametrize("email, password", [
        (ADMIN_EMAIL, "wrong"),
        ("nobody@example.com", "whatever"),
    ])
    def test_bad_credentials(self, client, email, password):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 401
        assert response.json()["error"] == "Incorrect email or password"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_bootstrap_admin_during_outage(self, outage_client):
        response = outage_client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.status_code == 200

    def test_database_staff_during_outage(self, outage_client):
        response = outage_client.post("/api/auth/login", json={"email": "gate1@example.com", "password": "x"})
        assert response.status_code == 401


class TestTokens:
    def test_expired_token(self, client):
        token = create_access_token({"sub": "1", "email": "a@example.com", "role": "staff"},
                                    expires_delta=timedelta(minutes=-1))
        assert client.get("/api/auth/me", headers=auth_header(token)).status_code == 401

    def test_garbage_token(self, client):
        assert client.get("/api/auth/me", headers=auth_header("not-a-jwt")).status_code == 401

    def test_token_without_subject(self, client):
        token = create_access_token({"email": "a@example.com"})
        assert client.get("/api/auth/me", headers=auth_header(token)).status_code == 401

    def test_unknown_role(self, client):
        token = create_access_token({"sub": "1", "email": "a@example.com", "role": "superuser"})
        assert client.get("/api/auth/me", headers=auth_header(token)).status_code == 401
