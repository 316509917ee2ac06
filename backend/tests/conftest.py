"""
Pytest configuration and fixtures for the backend tests.
"""
import os

# Settings are read at import time; these must exist before the app is imported
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-token-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-token-secret")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import uuid
from datetime import timedelta
from typing import AsyncGenerator, Optional
from fastapi import UploadFile
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from unittest.mock import AsyncMock
from faker import Faker

from main import app
from api.dependencies import get_asset_uploader, get_user_store
from core.security import TokenConfig
from db.mongodb import ensure_indexes
from db.user_store import UserStore
from services.token_service import TokenService

# Initialize Faker for test data generation
fake = Faker()

API = "/api/v1/users"


class FakeUploader:
    """Stands in for Cloudinary; records what it was asked to upload."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploaded = []

    async def upload(self, file: Optional[UploadFile]):
        if file is None or self.fail:
            return None
        content = await file.read()
        if not content:
            return None
        self.uploaded.append(file.filename)
        url = f"https://res.cloudinary.com/demo/image/upload/{file.filename}"
        return {"url": url.replace("https://", "http://"), "secure_url": url}


@pytest.fixture
async def mongo_db():
    """In-memory Motor-compatible database with the production indexes."""
    client = AsyncMongoMockClient()
    db = client[f"videotube_test_{uuid.uuid4().hex}"]
    await ensure_indexes(db)
    yield db


@pytest.fixture
def store(mongo_db) -> UserStore:
    return UserStore(mongo_db)


@pytest.fixture
def token_config() -> TokenConfig:
    return app.state.token_config


@pytest.fixture
def token_service(store: UserStore, token_config: TokenConfig) -> TokenService:
    return TokenService(store, token_config)


@pytest.fixture
def expired_config(token_config: TokenConfig) -> TokenConfig:
    """Same secrets, but every token is already expired when minted."""
    return TokenConfig(
        access_secret=token_config.access_secret,
        access_expires=timedelta(seconds=-60),
        refresh_secret=token_config.refresh_secret,
        refresh_expires=timedelta(seconds=-60),
        algorithm=token_config.algorithm,
    )


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
async def async_client(store: UserStore, uploader: FakeUploader) -> AsyncGenerator[AsyncClient, None]:
    """Async test client wired to the in-memory store and fake asset host."""
    app.dependency_overrides[get_user_store] = lambda: store
    app.dependency_overrides[get_asset_uploader] = lambda: uploader

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def mock_store():
    """UserStore double for service-level tests."""
    mock = AsyncMock(spec=UserStore)
    mock.is_password_correct = UserStore.is_password_correct
    return mock


@pytest.fixture
def sample_user_data():
    """Sample registration form for testing."""
    return {
        "fullName": fake.name(),
        "email": fake.unique.email(),
        "username": fake.unique.user_name(),
        "password": "testpassword123",
    }


@pytest.fixture
def avatar_file():
    return {"avatar": ("avatar.png", b"\x89PNG fake avatar bytes", "image/png")}


@pytest.fixture
async def registered_user(store: UserStore, sample_user_data):
    """A user created directly through the store, plus the plaintext password."""
    user = await store.create_user(
        username=sample_user_data["username"],
        email=sample_user_data["email"],
        full_name=sample_user_data["fullName"],
        password=sample_user_data["password"],
        avatar="https://res.cloudinary.com/demo/image/upload/avatar.png",
    )
    return {**user, "plain_password": sample_user_data["password"]}


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def login(client: AsyncClient, username: str, password: str) -> dict:
    response = await client.post(f"{API}/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    # Tokens are passed explicitly in tests; drop whatever the cookie jar kept
    client.cookies.clear()
    return response.json()["data"]
