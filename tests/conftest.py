import os
from types import SimpleNamespace
from typing import Generator

# Settings are read at import time; make sure tests never need a real secret
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from user_service.auth.google import TOKEN_URL, USERINFO_URL, GoogleOAuthClient  # noqa: E402
from user_service.config import Settings  # noqa: E402
from user_service.database import Database  # noqa: E402
from user_service.main import create_app  # noqa: E402
from user_service.services.user_repository import UserRepository  # noqa: E402

# In-memory SQLite shared across connections via StaticPool.
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        JWT_SECRET_KEY="test-secret-key",
        GOOGLE_CLIENT_ID="google-client-id",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        PUBLIC_BASE_URL="http://testserver",
        LOG_LEVEL="WARNING",
    )


@pytest_asyncio.fixture()
async def database() -> Database:
    """A fresh in-memory database with the schema created."""
    db = Database(url=TEST_DATABASE_URL)
    await db.connect()
    await db.create_all()
    try:
        yield db
    finally:
        await db.disconnect()


@pytest_asyncio.fixture()
async def repository(database) -> UserRepository:
    return UserRepository(database)


@pytest.fixture()
def google_profile() -> dict:
    """Userinfo payload returned by the fake Google endpoint; tests may mutate it."""
    return {
        "sub": "google-sub-123",
        "email": "ada@example.com",
        "given_name": "Ada",
        "family_name": "Lovelace",
        "name": "Ada Lovelace",
    }


@pytest.fixture()
def google_client(settings, google_profile) -> GoogleOAuthClient:
    """Real OAuth client wired to an in-process fake of Google's endpoints."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(TOKEN_URL):
            if b"code=bad-code" in request.content:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "google-access-token", "token_type": "Bearer"})
        if url.startswith(USERINFO_URL):
            assert request.headers["Authorization"] == "Bearer google-access-token"
            return httpx.Response(200, json=google_profile)
        return httpx.Response(404)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleOAuthClient(settings, http_client=http_client)


@pytest.fixture()
def app(settings, google_client):
    return create_app(
        settings=settings,
        database=Database(url=TEST_DATABASE_URL),
        google_client=google_client,
    )


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    """TestClient that also runs the lifespan (connect, create tables, dispose)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def user_factory(client):
    """Create users through the API and return their JSON representation."""
    counter = {"n": 0}

    def _create_user(**overrides) -> dict:
        counter["n"] += 1
        payload = {
            "email": f"user{counter['n']}@example.com",
            "firstName": "Test",
            "lastName": f"User{counter['n']}",
        }
        payload.update(overrides)
        response = client.post("/api/users", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _create_user


@pytest.fixture()
def auth_headers(app):
    """Build an Authorization header carrying a token for a user JSON body."""

    def _headers(user: dict) -> dict:
        principal = SimpleNamespace(id=user["id"], email=user["email"], role=user["role"])
        token = app.state.token_service.issue(principal)
        return {"Authorization": f"Bearer {token}"}

    return _headers
