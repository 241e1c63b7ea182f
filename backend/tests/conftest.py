"""
TrailMemo Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the whole suite.
How:   Three levels of fakes, picked per test module:

    mock_db_session   AsyncMock session; service and SQL-shape tests
    db_session        real AsyncSession on in-memory SQLite (aiosqlite);
                      store tests against actual SQL
    test_client       httpx AsyncClient → create_app(context=...) with the
                      SQLite engine, FakeIdentityVerifier and a
                      LocalObjectStore under tmp_path

PostgreSQL-only behavior (full-text search) is covered by SQL compilation
tests and tests/test_integration_postgres.py (TEST_POSTGRES_URL).
"""

import os
import tempfile
from datetime import datetime, timezone
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Before any trailmemo import: the module-level Settings() reads these.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="trailmemo_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from trailmemo.config import Settings  # noqa: E402
from trailmemo.context import AppContext  # noqa: E402
from trailmemo.database import Base, build_session_factory  # noqa: E402
from trailmemo.exceptions import AuthenticationError  # noqa: E402
from trailmemo.models import Memo, User  # noqa: E402
from trailmemo.services.identity import IdentityVerifier, VerifiedIdentity  # noqa: E402
from trailmemo.services.object_store import LocalObjectStore  # noqa: E402

API = "/api/v1"


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class FakeIdentityVerifier(IdentityVerifier):
    """Accepts "<user>-token" for every user in `known`."""

    def __init__(self, known: Optional[Dict[str, str]] = None):
        self.known = known or {
            "alice": "alice@example.com",
            "bob": "bob@example.com",
        }

    async def verify(self, token: str) -> VerifiedIdentity:
        user, _, suffix = token.rpartition("-")
        if suffix != "token" or user not in self.known:
            raise AuthenticationError("Invalid or expired token")
        return VerifiedIdentity(subject_id=user, email=self.known[user])


def auth_header(user: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {user}-token"}


def make_user(user_id: str = "alice", **overrides) -> User:
    values = {
        "user_id": user_id,
        "email": f"{user_id}@example.com",
        "display_name": user_id.capitalize(),
        "department": "Rangers",
        "color": "#3a7bd5",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return User(**values)


def make_memo(user_id: str = "alice", **overrides) -> Memo:
    values = {
        "user_id": user_id,
        "user_name": user_id.capitalize(),
        "user_color": "#3a7bd5",
        "title": None,
        "audio_url": "https://placeholder.com/audio.m4a",
        "text": "Trail marker down near the creek",
        "duration_seconds": 12,
        "latitude": None,
        "longitude": None,
        "location_accuracy": None,
        "address": None,
        "park_name": None,
    }
    values.update(overrides)
    return Memo(**values)


# ══════════════════════════════════════════════════════════════════════════
# Mocked Session
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    AsyncMock standing in for AsyncSession.

    Usage:
        result = MagicMock()
        result.scalar_one_or_none.return_value = memo
        mock_db_session.execute.return_value = result
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.add = MagicMock()
    return session


def scalar_result(value) -> MagicMock:
    result = MagicMock()
    result.scalar.return_value = value
    result.scalar_one_or_none.return_value = value
    return result


def scalars_result(items) -> MagicMock:
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(items)
    return result


# ══════════════════════════════════════════════════════════════════════════
# SQLite-backed Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        storage_backend="local",
        storage_root=str(tmp_path / "storage"),
        public_base_url="http://test",
        rate_limit_enabled=False,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def engine():
    """
    One in-memory database per test. StaticPool keeps the single
    connection alive across sessions; foreign keys are off by default in
    SQLite and must be enabled per connection for ON DELETE CASCADE.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
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
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def object_store(test_settings) -> LocalObjectStore:
    return LocalObjectStore(
        storage_root=test_settings.storage_root,
        url_prefix=f"{test_settings.public_base_url}{test_settings.api_prefix}/files",
        max_upload_size=test_settings.max_upload_size,
        allowed_extensions=test_settings.allowed_audio_extensions_set,
    )


@pytest.fixture
def app_context(test_settings, engine, session_factory, object_store) -> AppContext:
    return AppContext(
        settings=test_settings,
        engine=engine,
        session_factory=session_factory,
        identity_verifier=FakeIdentityVerifier(),
        object_store=object_store,
    )


@pytest_asyncio.fixture
async def test_client(test_settings, app_context):
    """
    HTTP client bound to a fresh app. ASGITransport does not run the
    lifespan, so the injected context is used as-is.
    """
    from trailmemo.main import create_app

    app = create_app(test_settings, context=app_context)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
