import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="school_admin_tests_")
# TEST_DATABASE_URL runs the suite against a real server, e.g. PostgreSQL
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/test.db")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "development"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SEED_DEMO_DATA"] = "false"

import itertools  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from school_admin.main import app  # noqa: E402
from school_admin.core.auth import create_access_token  # noqa: E402
from school_admin.core.database import AsyncSessionLocal, Base, engine  # noqa: E402
from school_admin.core.seed import ensure_admin_user  # noqa: E402

_counter = itertools.count(1)


@pytest.fixture(autouse=True)
async def database():
    """Fresh schema plus the admin account for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        await ensure_admin_user(session)
    yield


@pytest.fixture
async def session():
    async with AsyncSessionLocal() as s:
        yield s


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def admin_headers(client):
    resp = await client.post("/api/auth/login", json={"id": "admin", "password": "admin123"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}


@pytest.fixture
def user_headers():
    token = create_access_token("clerk", "user", "Front Desk")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_student(client, admin_headers):
    async def _make(**overrides):
        n = next(_counter)
        payload = {"name": f"Student {n}", "email": f"student{n}@school.edu"}
        payload.update(overrides)
        resp = await client.post("/api/students", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]
    return _make


@pytest.fixture
def make_group(client, admin_headers):
    async def _make(**overrides):
        n = next(_counter)
        payload = {"code": f"GRP-{n:03d}", "name": f"Group {n}", "capacity": 30}
        payload.update(overrides)
        resp = await client.post("/api/groups", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]
    return _make


@pytest.fixture
def enroll(client, admin_headers):
    async def _enroll(student_id, group_id):
        return await client.post(
            "/api/enrollments",
            json={"student_id": student_id, "group_id": group_id},
            headers=admin_headers
        )
    return _enroll


@pytest.fixture
def fetch_group(client, admin_headers):
    async def _fetch(group_id):
        resp = await client.get(f"/api/groups/{group_id}", headers=admin_headers)
        assert resp.status_code == 200
        return resp.json()["data"]
    return _fetch
