import pytest

from tests.helpers import auth


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "store": "ok"}


@pytest.mark.asyncio
async def test_register_and_me(client):
    """Registering returns a session usable as a bearer token"""
    response = await client.post(
        "/api/auth/register",
        json={"email": "Principal@Example.com", "password": "secret123", "name": "Ms. Rivera"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == "principal@example.com"
    assert data["user"]["role"] == "ADMIN"

    response = await client.get("/api/auth/me", headers=auth(data["access_token"]))
    assert response.status_code == 200
    assert response.json()["name"] == "Ms. Rivera"


@pytest.mark.asyncio
async def test_register_validation(client, admin_token):
    response = await client.post(
        "/api/auth/register",
        json={"email": "admin@stjosefschool.com", "password": "secret123", "name": "Copy"},
    )
    assert response.status_code == 409

    response = await client.post(
        "/api/auth/register",
        json={"email": "not-an-email", "password": "secret123", "name": "Someone"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_and_logout(client, admin_token):
    response = await client.post(
        "/api/auth/login",
        json={"email": "admin@stjosefschool.com", "password": "wrong"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid login credentials"

    response = await client.post(
        "/api/auth/login",
        json={"email": "ADMIN@stjosefschool.com", "password": "secret123"},
    )
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = await client.post("/api/auth/logout", headers=auth(token))
    assert response.status_code == 204

    response = await client.get("/api/auth/me", headers=auth(token))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_requires_login(client):
    response = await client.get("/api/auth/me")
    assert response.status_code == 401

    response = await client.post("/api/auth/logout")
    assert response.status_code == 401
