from sqlalchemy import select

from school_admin.models import User


NEW_USER = {"id": "jdoe", "name": "Jane Doe", "email": "jdoe@school.edu", "password": "s3cret"}


async def test_create_user_hashes_password(client, admin_headers, session):
    resp = await client.post("/api/users", json=NEW_USER, headers=admin_headers)

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["role"] == "user"
    assert "password" not in data
    assert "hashed_password" not in data

    stored = (await session.execute(select(User).filter(User.id == "jdoe"))).scalar_one()
    assert stored.hashed_password != "s3cret"
    assert stored.hashed_password.startswith("$2")


async def test_new_user_can_log_in(client, admin_headers):
    await client.post("/api/users", json=NEW_USER, headers=admin_headers)

    resp = await client.post("/api/auth/login", json={"id": "jdoe", "password": "s3cret"})

    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["role"] == "user"


async def test_duplicate_id_and_email(client, admin_headers):
    await client.post("/api/users", json=NEW_USER, headers=admin_headers)

    same_id = await client.post("/api/users", json={**NEW_USER, "email": "other@school.edu"},
                                headers=admin_headers)
    same_email = await client.post("/api/users", json={**NEW_USER, "id": "other"}, headers=admin_headers)

    assert same_id.status_code == 400
    assert same_id.json()["message"] == "User id already exists"
    assert same_email.status_code == 400
    assert same_email.json()["message"] == "Email already registered"


async def test_list_never_returns_passwords(client, admin_headers):
    await client.post("/api/users", json=NEW_USER, headers=admin_headers)

    resp = await client.get("/api/users", headers=admin_headers)

    assert resp.json()["count"] == 2
    for user in resp.json()["data"]:
        assert "password" not in user
        assert "hashed_password" not in user


async def test_filter_by_role(client, admin_headers):
    await client.post("/api/users", json=NEW_USER, headers=admin_headers)
    resp = await client.get("/api/users", params={"role": "admin"}, headers=admin_headers)
    assert [u["id"] for u in resp.json()["data"]] == ["admin"]


async def test_update_password(client, admin_headers):
    await client.post("/api/users", json=NEW_USER, headers=admin_headers)

    resp = await client.put("/api/users/jdoe", json={"password": "changed", "name": "Jane D."},
                            headers=admin_headers)

    assert resp.json()["data"]["name"] == "Jane D."
    old = await client.post("/api/auth/login", json={"id": "jdoe", "password": "s3cret"})
    new = await client.post("/api/auth/login", json={"id": "jdoe", "password": "changed"})
    assert old.status_code == 401
    assert new.status_code == 200


async def test_protected_admin_cannot_be_deactivated(client, admin_headers):
    resp = await client.delete("/api/users/admin", headers=admin_headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"

    demote = await client.put("/api/users/admin", json={"role": "user"}, headers=admin_headers)
    assert demote.status_code == 403


async def test_deactivate_user(client, admin_headers):
    await client.post("/api/users", json=NEW_USER, headers=admin_headers)
    resp = await client.delete("/api/users/jdoe", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["is_active"] is False


async def test_unknown_user(client, admin_headers):
    resp = await client.get("/api/users/ghost", headers=admin_headers)
    assert resp.status_code == 404


async def test_user_role_cannot_manage_users(client, user_headers):
    listing = await client.get("/api/users", headers=user_headers)
    creating = await client.post("/api/users", json=NEW_USER, headers=user_headers)

    assert listing.status_code == 403
    assert creating.status_code == 403


async def test_user_role_can_manage_school_records(client, user_headers):
    resp = await client.post("/api/students", json={"name": "Via Clerk", "email": "clerk@school.edu"},
                             headers=user_headers)
    assert resp.status_code == 201
