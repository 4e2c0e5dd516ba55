"""
Shared fixtures: an in-memory motor database, a mocked NeoWs and an
HTTP client bound to the app.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-do-not-use")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("REQUEST_DELAY", "0")
os.environ.setdefault("SESSION_SWEEP_INTERVAL", "0")
os.environ.setdefault("MONGO_TRANSACTIONS", "false")

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from staroracle.config import get_settings
from staroracle.database import ensure_indexes, get_db, get_transaction_client
from staroracle.main import app
from staroracle.neo import NASANeoClient, get_neo_client
from staroracle.security import TokenCodec
from staroracle.sessions import SessionStore

from helpers import TEST_PASSWORD, FakeNeoWs


@pytest_asyncio.fixture
async def db():
    database = AsyncMongoMockClient()["star_oracle_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def neows():
    return FakeNeoWs()


@pytest.fixture
def neo_client(neows):
    return NASANeoClient(get_settings(), transport=httpx.MockTransport(neows.handler))


@pytest.fixture
def codec():
    return TokenCodec(get_settings().jwt_secret)


@pytest.fixture
def sessions(db):
    return SessionStore(db)


@pytest_asyncio.fixture
async def client(db, neo_client):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_transaction_client] = lambda: None
    app.dependency_overrides[get_neo_client] = lambda: neo_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register an account through the API and return the response body."""

    async def _register(email, role="observer", password=TEST_PASSWORD, **extra):
        body = {"name": "Test Observer", "email": email, "password": password, "role": role}
        body.update(extra)
        response = await client.post("/api/auth/register", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture
def login(client, register):
    """Register, log in, and return (token, auth headers, login body)."""

    async def _login(email, role="observer", **extra):
        registered = await register(email, role=role, **extra)
        body = {"email": email, "password": TEST_PASSWORD}
        if role == "researcher":
            body["research_id"] = registered["user"]["research_id"]
            response = await client.post("/api/auth/login/researcher", json=body)
        else:
            response = await client.post("/api/auth/login", json=body)
        assert response.status_code == 200, response.text
        token = response.json()["token"]
        return token, {"Authorization": f"Bearer {token}"}, response.json()

    return _login
