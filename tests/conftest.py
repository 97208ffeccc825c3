import os
import sys
import tempfile
import uuid

import pytest

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Set up environment variables before importing app
_TEST_DIR = tempfile.mkdtemp(prefix="hse-tests-")

os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["TRUSTED_HOSTS"] = "testserver,localhost"
os.environ["BOOTSTRAP_ADMIN_EMAIL"] = "admin@example.com"
os.environ["BOOTSTRAP_ADMIN_PASSWORD"] = "Adm1n!Passw0rd"
os.environ["LOG_LEVEL"] = "WARNING"

# Cheapest parameters the settings still accept
os.environ["ARGON2_TIME_COST"] = "2"
os.environ["ARGON2_MEMORY_COST"] = "65536"
os.environ["ARGON2_PARALLELISM"] = "1"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1n!Passw0rd"
USER_PASSWORD = "Str0ng!Secret"


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient
    from app.main import app

    with TestClient(app) as c:
        yield c


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def register(client, email=None, password=USER_PASSWORD, first_name="Ada", last_name="Lovelace"):
    email = email or unique_email()
    response = client.post("/v1/auth/register", json={
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "password": password,
    })
    assert response.status_code == 201, response.json()
    return response.json()


def login(client, email, password=USER_PASSWORD):
    response = client.post("/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.json()
    return response.json()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def drain_audit(client):
    """Block until the app's audit recorder has written everything queued."""
    from app.main import app

    client.portal.call(app.state.audit_recorder.drain)


def fetch_audit_rows(client, **filters):
    from sqlalchemy import select
    from app.core.database import async_session_maker
    from app.models.audit import AuditLog

    async def _fetch():
        async with async_session_maker() as session:
            query = select(AuditLog).filter_by(**filters).order_by(AuditLog.id)
            return list((await session.execute(query)).scalars())

    drain_audit(client)
    return client.portal.call(_fetch)


@pytest.fixture
def user(client):
    """A freshly registered USER with tokens."""
    data = register(client)
    tokens = login(client, data["email"])
    return {**data, **tokens}


@pytest.fixture
def admin(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
