"""
Pytest configuration and shared fixtures.

Tests run against a temporary SQLite file through aiosqlite, using the same
engine setup as the application (``create_engine_for_url``) so the write
lock and foreign key behavior match production SQLite deployments.
"""
from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from salesfloor.auth.models import User, UserRole
from salesfloor.calls import models as call_models  # noqa: F401
from salesfloor.config import get_settings
from salesfloor.lead_lists import models as lead_list_models  # noqa: F401
from salesfloor.main import create_app
from salesfloor.messages import models as message_models  # noqa: F401
from salesfloor.prospects.models import Prospect
from salesfloor.shared.database import Base, create_engine_for_url, get_db_session
from salesfloor.telephony.adapters.mock import MockTelephonyProvider
from salesfloor.telephony.config import ProviderType, TelephonyConfig
from salesfloor.telephony.factory import get_telephony_config, get_telephony_provider


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a file-backed SQLite engine with the full schema."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'salesfloor.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def users(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, User]:
    """One admin, one manager and two agents."""
    seeded = {
        "admin": User(email="admin@example.com", first_name="Ada", last_name="Admin", role=UserRole.ADMIN.value),
        "manager": User(email="manager@example.com", first_name="Max", last_name="Manager", role=UserRole.MANAGER.value),
        "agent": User(email="agent@example.com", first_name="Alex", last_name="Agent", role=UserRole.AGENT.value),
        "agent2": User(email="agent2@example.com", first_name="Bea", last_name="Agent", role=UserRole.AGENT.value),
    }
    async with session_factory() as session:
        session.add_all(seeded.values())
        await session.commit()
    return seeded


ProspectFactory = Callable[..., Any]


@pytest.fixture
def make_prospect(session_factory: async_sessionmaker[AsyncSession]) -> ProspectFactory:
    counter = {"n": 0}

    async def _make(**overrides: Any) -> Prospect:
        counter["n"] += 1
        values: dict[str, Any] = {
            "first_name": "Pat",
            "last_name": f"Prospect{counter['n']}",
            "company": "Acme",
            "phone": f"+1555123{counter['n']:04d}",
        }
        values.update(overrides)
        prospect = Prospect(**values)
        async with session_factory() as session:
            session.add(prospect)
            await session.commit()
        return prospect

    return _make


@pytest_asyncio.fixture
async def prospect(make_prospect: ProspectFactory) -> Prospect:
    return await make_prospect(first_name="Jane", last_name="Doe", phone="+15551234567")


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def make_token(user: User, **overrides: Any) -> str:
    settings = get_settings()
    claims: dict[str, Any] = {
        "user_id": str(user.id),
        "role": user.role,
        "email": user.email,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    claims.update(overrides)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(user: User, **overrides: Any) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user, **overrides)}"}


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_provider() -> MockTelephonyProvider:
    return MockTelephonyProvider()


@pytest.fixture
def telephony_config() -> TelephonyConfig:
    return TelephonyConfig(
        provider_type=ProviderType.MOCK,
        webhook_base_url="https://hooks.example.com",
        twilio_from_number="+15557654321",
        verify_signatures=False,
    )


@pytest.fixture
def app(
    session_factory: async_sessionmaker[AsyncSession],
    mock_provider: MockTelephonyProvider,
    telephony_config: TelephonyConfig,
):
    application = create_app()

    async def _override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = _override_get_db_session
    application.dependency_overrides[get_telephony_provider] = lambda: mock_provider
    application.dependency_overrides[get_telephony_config] = lambda: telephony_config
    return application


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
