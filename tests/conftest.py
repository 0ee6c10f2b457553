"""Pytest configuration and fixtures."""

import os

# Must be set before the app and its settings are imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("ASSEMBLYAI_API_KEY", "aai_test")
os.environ.setdefault("GROQ_API_KEY", "gsk_test")

from typing import AsyncGenerator  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from studly.auth.security import CurrentUser, require_user  # noqa: E402
from studly.db import models  # noqa: E402, F401
from studly.db.models import Subscription, SubscriptionStatus  # noqa: E402
from studly.db.session import Base, get_db  # noqa: E402
from studly.main import app  # noqa: E402
from studly.services.storage import storage_service  # noqa: E402
from studly.services.usage import month_start  # noqa: E402

# In-memory SQLite shared across connections for the duration of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def user_id() -> str:
    return str(uuid4())


@pytest.fixture
def current_user(user_id: str) -> CurrentUser:
    return CurrentUser(id=user_id, email="student@example.com")


@pytest_asyncio.fixture
async def anon_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the real authentication dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, current_user: CurrentUser
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client signed in as `current_user`."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[require_user] = lambda: current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def subscription(db_session: AsyncSession, user_id: str) -> Subscription:
    """An active starter subscription with no usage this month."""
    sub = Subscription(
        user_id=user_id,
        stripe_customer_id="cus_test",
        stripe_subscription_id="sub_test",
        plan_name="starter",
        status=SubscriptionStatus.ACTIVE,
        hours_used=0.0,
        usage_period_start=month_start(),
    )
    db_session.add(sub)
    await db_session.commit()
    return sub


@pytest.fixture(autouse=True)
def fake_storage(monkeypatch):
    """Keep object storage calls in memory."""
    stored = {}

    def upload_recording(content, user_id, content_type="audio/webm"):
        path = storage_service.generate_path(user_id, content_type)
        stored[path] = content
        return path

    def delete_recording(path):
        stored.pop(path, None)

    monkeypatch.setattr(storage_service, "upload_recording", upload_recording)
    monkeypatch.setattr(storage_service, "delete_recording", delete_recording)
    monkeypatch.setattr(
        storage_service,
        "generate_presigned_url",
        lambda path, expires_in=3600: f"https://storage.test/{path}?expires={expires_in}",
    )
    monkeypatch.setattr(storage_service, "health_check", lambda: True)
    return stored


@pytest.fixture(autouse=True)
def enqueued(monkeypatch):
    """Record background processing requests instead of sending them to Celery."""
    calls = []
    monkeypatch.setattr(
        "studly.api.recordings.enqueue_processing", lambda recording_id: calls.append(recording_id)
    )
    return calls
