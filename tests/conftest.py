"""
Pytest configuration for ProjectHub backend tests.

The app runs in-process over httpx's ASGI transport against an in-memory
SQLite database and a fake Redis. Celery tasks run eagerly and Resend is
replaced by a recorder, so no external service is contacted.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client.apps.googleusercontent.com")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")

import uuid
from dataclasses import dataclass
from uuid import UUID

import fakeredis
import httpx
import pytest
import pytest_asyncio
import resend
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from projecthub.core.database import get_db
from projecthub.core.dependencies import get_redis
from projecthub.core.security import create_access_token
from projecthub.main import app
from projecthub.models import Base, User
from projecthub.workers.celery_app import celery_app

celery_app.conf.update(task_always_eager=True, task_eager_propagates=True)


@dataclass
class AuthUser:
    """A user row plus the bearer header that authenticates as it."""

    id: UUID
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def unique_email(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}@example.com"


# ---------------------------------------------------------------------------
# Database / Redis
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.aclose()


# ---------------------------------------------------------------------------
# Outbound e-mail
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Every Resend call lands here instead of the network."""
    sent: list[dict] = []

    def fake_send(params):
        sent.append(params)
        return {"id": f"msg_{len(sent)}"}

    monkeypatch.setattr(resend.Emails, "send", staticmethod(fake_send))
    return sent


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(session_factory, redis):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Insert a user directly and mint an access token for it."""

    async def _make_user(
        email: str | None = None,
        display_name: str = "Test User",
        email_verified: bool = True,
    ) -> AuthUser:
        async with session_factory() as session:
            user = User(
                email=(email or unique_email("user")).lower(),
                display_name=display_name,
                email_verified=email_verified,
            )
            session.add(user)
            await session.commit()
        return AuthUser(id=user.id, email=user.email, token=create_access_token(str(user.id)))

    return _make_user
