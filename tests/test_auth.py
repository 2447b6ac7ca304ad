from datetime import timedelta

import pytest
from jose import jwt

from school_admin.core.auth import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    refresh_access_token,
    verify_password,
)
from school_admin.core.config import settings
from school_admin.core.exceptions import AuthError


async def test_issued_token_verifies():
    token = create_access_token("admin", "admin", "System Administrator")

    claims = decode_access_token(token)

    assert claims["sub"] == "admin"
    assert claims["role"] == "admin"
    assert claims["name"] == "System Administrator"
    assert claims["exp"] - claims["iat"] == 24 * 60 * 60


async def test_expired_token_has_distinct_reason():
    token = create_access_token("admin", "admin", "Admin", expires_delta=timedelta(seconds=-5))

    with pytest.raises(AuthError) as excinfo:
        decode_access_token(token)

    assert excinfo.value.reason == AuthError.EXPIRED
    assert excinfo.value.status_code == 401


async def test_tampered_token_is_invalid():
    token = jwt.encode({"sub": "admin", "role": "admin"}, "another-secret", algorithm="HS256")

    with pytest.raises(AuthError) as excinfo:
        decode_access_token(token)

    assert excinfo.value.reason == AuthError.INVALID


async def test_refresh_expired_token():
    expired = create_access_token("clerk", "user", "Front Desk", expires_delta=timedelta(hours=-1))

    fresh = refresh_access_token(expired)

    claims = decode_access_token(fresh)
    assert (claims["sub"], claims["role"], claims["name"]) == ("clerk", "user", "Front Desk")


async def test_refresh_rejects_bad_signature():
    forged = jwt.encode({"sub": "admin", "role": "admin"}, "another-secret", algorithm=settings.algorithm)
    with pytest.raises(AuthError):
        refresh_access_token(forged)


async def test_password_hashing():
    hashed = get_password_hash("admin123")
    assert hashed != "admin123"
    assert verify_password("admin123", hashed)
    assert not verify_password("wrong", hashed)


async def test_login(client):
    resp = await client.post("/api/auth/login", json={"id": "admin", "password": "admin123"})

    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["data"]["user"] == {
        "id": "admin",
        "name": settings.admin_name,
        "email": settings.admin_email,
        "role": "admin"
    }
    assert decode_access_token(body["data"]["token"])["sub"] == "admin"


async def test_login_wrong_password(client):
    resp = await client.post("/api/auth/login", json={"id": "admin", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["success"] is False


async def test_login_missing_fields(client):
    resp = await client.post("/api/auth/login", json={"id": "admin"})
    assert resp.status_code == 400


async def test_login_inactive_user(client, admin_headers):
    await client.post(
        "/api/users",
        json={"id": "temp", "name": "Temp", "email": "temp@school.edu", "password": "pw123"},
        headers=admin_headers
    )
    await client.delete("/api/users/temp", headers=admin_headers)

    resp = await client.post("/api/auth/login", json={"id": "temp", "password": "pw123"})

    assert resp.status_code == 401


async def test_verify_endpoint(client):
    token = create_access_token("admin", "admin", "Admin")

    ok = await client.post("/api/auth/verify", json={"token": token})
    bad = await client.post("/api/auth/verify", json={"token": "not-a-token"})

    assert ok.status_code == 200
    assert ok.json()["data"]["valid"] is True
    assert ok.json()["data"]["claims"]["sub"] == "admin"
    assert bad.status_code == 401
    assert bad.json()["error"] == "token_invalid"


async def test_verify_endpoint_expired(client):
    token = create_access_token("admin", "admin", "Admin", expires_delta=timedelta(minutes=-1))
    resp = await client.post("/api/auth/verify", json={"token": token})
    assert resp.status_code == 401
    assert resp.json()["error"] == "token_expired"


async def test_refresh_endpoint(client):
    expired = create_access_token("admin", "admin", "Admin", expires_delta=timedelta(minutes=-1))

    resp = await client.post("/api/auth/refresh", json={"token": expired})

    assert resp.status_code == 200
    assert decode_access_token(resp.json()["data"]["token"])["sub"] == "admin"


async def test_protected_route_requires_token(client):
    resp = await client.get("/api/students")
    assert resp.status_code == 401
    assert resp.json()["success"] is False


async def test_protected_route_rejects_expired_token(client):
    token = create_access_token("admin", "admin", "Admin", expires_delta=timedelta(minutes=-1))
    resp = await client.get("/api/students", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "token_expired"


async def test_me(client, admin_headers):
    resp = await client.get("/api/auth/me", headers=admin_headers)
    assert resp.json()["data"]["id"] == "admin"
    assert "password" not in resp.json()["data"]
    assert "hashed_password" not in resp.json()["data"]


async def test_unknown_route_uses_envelope(client):
    resp = await client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.json()["data"]["status"] == "healthy"
