"""
Endpoint tests for local password login (/api/v1/auth).
"""
import pytest

from plankalink.core.security import verify_token
from plankalink.services.planka_token_service import PlankaTokenService

API = "/api/v1/auth"


def test_login_with_local_password(client, local_user):
    response = client.post(f"{API}/login", json={"email": "Bob@Example.com", "password": "bob-local-password"})

    assert response.status_code == 200
    body = response.json()
    assert verify_token(body["token"])["sub"] == str(local_user.id)
    assert body["user"]["email"] == "bob@example.com"
    assert body["user"]["plankaConnected"] is False
    assert "password" not in body["user"]


def test_login_reports_planka_link(client, session, local_user):
    PlankaTokenService(session).store(local_user.id, "tok")

    response = client.post(f"{API}/login", json={"email": "bob@example.com", "password": "bob-local-password"})

    assert response.json()["user"]["plankaConnected"] is True


@pytest.mark.parametrize("password", ["wrong", ""])
def test_login_rejects_bad_password(client, local_user, password):
    response = client.post(f"{API}/login", json={"email": "bob@example.com", "password": password})

    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect email or password"


def test_planka_created_account_accepts_planka_password(client, planka_enabled, fake_planka):
    fake_planka.add("POST", "/api/access-tokens", (200, {"item": "abc.def.ghi"}))
    fake_planka.add("GET", "/api/users/me", (200, {"item": {"email": "alice@example.com", "username": "alice"}}))
    assert client.post("/api/v1/planka/login", json={"emailOrUsername": "alice", "password": "secret"}).status_code == 200

    response = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "secret"})

    assert response.status_code == 200
    assert response.json()["user"]["provider"] == "planka"


def test_logout_clears_cookie(client, auth_headers):
    response = client.post(f"{API}/logout", headers=auth_headers)

    assert response.status_code == 204
    assert "access_token" in response.headers.get("set-cookie", "")
