"""
Pytest configuration and fixtures for the novel platform tests.
"""

from typing import AsyncGenerator, Dict, List

import httpx
import mongomock
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import database
import identity
from config import Settings, get_settings
from main import app as application
from security import Session, create_access_token
from uploads import ImageUploader, get_uploader


# =============================================================================
# Test Settings
# =============================================================================

def get_test_settings() -> Settings:
    """Return settings configured for testing."""
    return Settings(
        DATABASE_NAME="novel_platform_test",
        JWT_SECRET_KEY="test-secret",
        CLOUDINARY_CLOUD_NAME="demo",
        CLOUDINARY_API_KEY="test-key",
        CLOUDINARY_API_SECRET="test-secret",
        REQUIRE_GENRES=False,
    )


@pytest.fixture
def settings() -> Settings:
    return get_test_settings()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db(settings):
    """Install an in-memory MongoDB for the duration of a test."""
    yield database.init_db(settings, client=mongomock.MongoClient())
    database.close_db()


# =============================================================================
# User Fixtures
# =============================================================================

class Writer:
    def __init__(self, user: Dict, settings: Settings):
        self.user = user
        self.id = user["_id"]
        self.session = Session(user_id=user["_id"])
        self.headers = {"Authorization": f"Bearer {create_access_token(user['_id'], settings)}"}


@pytest.fixture
def make_writer(db, settings):
    counter = {"n": 0}

    def _make(name: str = None) -> Writer:
        counter["n"] += 1
        name = name or f"writer{counter['n']}"
        user = identity.register(name, f"{name}@example.com", "secret123")
        return Writer(user, settings)

    return _make


@pytest.fixture
def author(make_writer) -> Writer:
    return make_writer("author")


@pytest.fixture
def stranger(make_writer) -> Writer:
    return make_writer("stranger")


# =============================================================================
# Upload Fixtures
# =============================================================================

@pytest.fixture
def upload_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def uploader(settings, upload_requests) -> ImageUploader:
    """ImageUploader whose HTTP traffic goes to a fake image host."""

    def handler(request: httpx.Request) -> httpx.Response:
        upload_requests.append(request)
        return httpx.Response(
            200,
            json={"secure_url": f"https://res.cloudinary.com/demo/image/upload/{len(upload_requests)}.jpg"},
        )

    return ImageUploader(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.fixture
def jpeg():
    """Build a JPEG-looking payload of the given size."""

    def _jpeg(size: int) -> bytes:
        header = b"\xff\xd8\xff\xe0"
        return header + b"\x00" * (size - len(header))

    return _jpeg


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def app(db, uploader):
    """FastAPI application wired to the in-memory database and fake image host."""
    application.dependency_overrides[get_settings] = get_test_settings
    application.dependency_overrides[get_uploader] = lambda: uploader

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
