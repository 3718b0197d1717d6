"""Auth + user search API tests.

Learn: Tests cover:
1. Signup → user + token pair, duplicate email prevention
2. Login with good and bad credentials
3. Token refresh (only with a refresh token)
4. Protected /me endpoint
5. User search never returns the caller
"""

import pytest


# ═══════════════════════════════════════════════════════════
# Signup
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_signup_returns_user_and_tokens(client):
    r = await client.post(
        "/api/v1/auth/signup",
        json={"name": "Ada", "email": "Ada@Example.com", "password": "password123"},
    )
    assert r.status_code == 201
    data = r.json()
    assert data["user"]["name"] == "Ada"
    assert data["user"]["email"] == "ada@example.com"
    assert data["user"]["pic"]
    assert "password_hash" not in data["user"]
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_signup_duplicate_email(client, signup):
    await signup("Ada")
    r = await client.post(
        "/api/v1/auth/signup",
        json={"name": "Other", "email": "ADA@example.com", "password": "password123"},
    )
    assert r.status_code == 409
    assert r.json()["kind"] == "conflict"


@pytest.mark.asyncio
async def test_signup_short_password(client):
    r = await client.post(
        "/api/v1/auth/signup",
        json={"name": "Short", "email": "short@example.com", "password": "abc"},
    )
    assert r.status_code == 422


# ═══════════════════════════════════════════════════════════
# Login + refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_success(client, signup):
    await signup("Ada")
    r = await client.post(
        "/api/v1/auth/login",
        json={"email": "ada@example.com", "password": "password123"},
    )
    assert r.status_code == 200
    assert r.json()["user"]["name"] == "Ada"
    assert r.json()["access_token"]


@pytest.mark.asyncio
async def test_login_wrong_password(client, signup):
    await signup("Ada")
    r = await client.post(
        "/api/v1/auth/login",
        json={"email": "ada@example.com", "password": "not-the-password"},
    )
    assert r.status_code == 401
    assert r.json() == {"detail": "Invalid email or password", "kind": "unauthenticated"}
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_login_unknown_email(client):
    r = await client.post(
        "/api/v1/auth/login",
        json={"email": "nobody@example.com", "password": "password123"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_exchange(client):
    r = await client.post(
        "/api/v1/auth/signup",
        json={"name": "Ada", "email": "ada@example.com", "password": "password123"},
    )
    tokens = r.json()

    r = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert r.status_code == 200
    fresh = r.json()

    me = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {fresh['access_token']}"},
    )
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(client, signup):
    ada = await signup("Ada")
    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": ada["token"]})
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# /me + protected routes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_returns_current_user(client, signup):
    ada = await signup("Ada")
    r = await client.get("/api/v1/auth/me", headers=ada["headers"])
    assert r.status_code == 200
    assert r.json()["id"] == ada["user"]["id"]
    assert "created_at" in r.json()


@pytest.mark.asyncio
async def test_me_requires_token(client):
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.json()["kind"] == "unauthenticated"


@pytest.mark.asyncio
async def test_garbage_token_rejected(client):
    r = await client.get(
        "/api/v1/conversations", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# User search
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_search_excludes_caller(client, signup):
    ada = await signup("Ada")
    await signup("Adam")
    await signup("Bob")

    r = await client.get("/api/v1/users", params={"search": "ada"}, headers=ada["headers"])
    assert r.status_code == 200
    assert [u["name"] for u in r.json()] == ["Adam"]

    r = await client.get("/api/v1/users", headers=ada["headers"])
    assert {u["name"] for u in r.json()} == {"Adam", "Bob"}


@pytest.mark.asyncio
async def test_search_matches_email(client, signup):
    ada = await signup("Ada")
    await signup("Bob")

    r = await client.get(
        "/api/v1/users", params={"search": "BOB@EXAMPLE"}, headers=ada["headers"]
    )
    assert [u["name"] for u in r.json()] == ["Bob"]


@pytest.mark.asyncio
async def test_search_requires_auth(client):
    r = await client.get("/api/v1/users")
    assert r.status_code == 401
