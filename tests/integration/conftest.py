"""Shared fixtures for integration tests.

Integration tests run the collection layer against an in-memory SQLite
database through aiosqlite, with a real change notifier delivering to an
``InMemoryBroker``. The HTTP fixtures wire the same collections into the
application through FastAPI dependency overrides.
"""

from collections.abc import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.api.dependencies import get_feedback_collection, reset_collections
from src.api.main import create_app
from src.collections.feedback import FeedbackCollection, feedback_collection
from src.collections.media import MediaCollection, media_collection
from src.core.config import get_settings
from src.core.context import RequestContext
from src.infrastructure.database.base import Base
from src.infrastructure.database.dependencies import get_db
from src.infrastructure.database.session import create_session_factory
from src.infrastructure.messaging.broker import InMemoryBroker
from src.infrastructure.messaging.notifier import ChangeNotifier

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def clean_state() -> Generator[None]:
    """Reset settings, request context and cached collections."""
    get_settings.cache_clear()
    RequestContext.clear()
    reset_collections()
    yield
    get_settings.cache_clear()
    RequestContext.clear()
    reset_collections()


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory database with every mapped table created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Ambient session factory over the test database."""
    return create_session_factory(db_engine)


@pytest.fixture
def broker() -> InMemoryBroker:
    """Broker recording every change event."""
    return InMemoryBroker()


@pytest.fixture
async def notifier(broker: InMemoryBroker) -> AsyncGenerator[ChangeNotifier]:
    """Change notifier delivering to the in-memory broker."""
    change_notifier = ChangeNotifier(broker, worker_count=2, queue_size=100)
    yield change_notifier
    await change_notifier.stop()


@pytest.fixture
def media(
    session_factory: async_sessionmaker[AsyncSession], notifier: ChangeNotifier
) -> MediaCollection:
    """Media collection over the test database."""
    return media_collection(session_factory, notifier)


@pytest.fixture
def feedback(
    session_factory: async_sessionmaker[AsyncSession],
    media: MediaCollection,
    notifier: ChangeNotifier,
) -> FeedbackCollection:
    """Feedback collection over the test database."""
    return feedback_collection(session_factory, media, notifier)


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    feedback: FeedbackCollection,
) -> AsyncGenerator[AsyncClient]:
    """HTTP client for the application wired to the test collections."""
    app = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_feedback_collection] = lambda: feedback

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
