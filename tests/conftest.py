# tests/conftest.py
import os
import tempfile

# Set up test environment variables BEFORE any other imports
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="image-chat-tests-"))
os.environ["AIML_API_KEY"] = ""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.dependencies import get_generation_client, get_image_store
from app.database import get_db
from app.domains.chat.repository import ChatRepository
from app.domains.chat.service import ChatService
from app.main import app
from app.services.image_generation import ImageGenerationClient
from app.services.image_store import ImageStore
from models import Base
from tests.factories import AssistantMessageFactory, UserMessageFactory

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_db():
    """Create a fresh in-memory database session."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    TestSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def image_store(tmp_path):
    """Image store rooted in a per-test directory."""
    store = ImageStore(root=tmp_path / "images")
    store.ensure_dirs()
    return store


@pytest.fixture
def generator():
    """Generation client double; every call returns two image references."""
    mock = MagicMock(spec=ImageGenerationClient)
    mock.configured = True
    mock.generate = AsyncMock(return_value=["gen-1", "gen-2"])
    mock.request = AsyncMock(return_value={"images": ["gen-1"]})
    return mock


@pytest.fixture
def chat_service(test_db, image_store, generator):
    return ChatService(test_db, image_store=image_store, generator=generator)


@pytest.fixture
def repository(test_db):
    return ChatRepository(test_db)


@pytest_asyncio.fixture
async def client(test_db, image_store, generator):
    """Create a test client with database, store and generator overrides."""
    app.dependency_overrides[get_db] = lambda: test_db
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_generation_client] = lambda: generator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# Chat fixtures
@pytest_asyncio.fixture
async def empty_chat(repository):
    return await repository.create(title="New Chat")


@pytest_asyncio.fixture
async def answered_chat(repository):
    """One prompt with a two-version response: ``[a, b]`` then ``[c]``."""
    return await repository.create(
        title="draw a cat",
        messages=[
            UserMessageFactory(prompt="draw a cat", inputImages=["/api/images/input/u0.png"]),
            AssistantMessageFactory(versions=[{"images": ["a", "b"]}, {"images": ["c"]}], currentVersion=1),
        ],
    )
