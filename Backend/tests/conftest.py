"""
Pytest configuration and fixtures for async database testing.

Each test gets its own database: a throwaway SQLite file by default, or the
PostgreSQL database named by TEST_DATABASE_URL (tables are created before
and dropped after every test).
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Settings are read once at import time, so point the app at a scratch
# database and keep the scheduler and email delivery off before importing it.
os.environ["DATABASE_URL"] = TEST_DATABASE_URL or (
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'floatbook_app.db')}"
)
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["OPERATOR_EMAILS"] = ""

if TEST_DATABASE_URL and "neon" in TEST_DATABASE_URL.lower():
    raise RuntimeError(
        f"DANGER: Tests are configured to use a production database!\n"
        f"TEST_DATABASE_URL: {TEST_DATABASE_URL}\n"
        f"Tests drop every table they create; point them at a scratch database."
    )

from floatbook.core.db import Base, engine_options, get_session  # noqa: E402
from floatbook.models import (  # noqa: E402
    ActivationStatus,
    CalendarDay,
    CalendarDayStatus,
    Package,
    PackageActivation,
)


@pytest.fixture(scope="function")
def database_url(tmp_path):
    return TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'floatbook_test.db'}"


@pytest.fixture(scope="function")
async def async_engine(database_url):
    """
    Create async SQLAlchemy engine for the test database.

    Engine is created per test with a fresh schema.
    """
    engine = create_async_engine(database_url, **engine_options(database_url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def async_session(session_factory):
    """Session for arranging and asserting state directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(session_factory):
    """
    FastAPI AsyncClient whose requests each get their own session from the
    test database, the way get_session works in production.
    """
    from floatbook.main import app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing emails instead of calling Resend."""
    sent = []

    async def fake_send_email(to_email, subject, html):
        sent.append({"to": to_email, "subject": subject, "html": html})
        return True

    monkeypatch.setattr("floatbook.notifications.send_email", fake_send_email)
    return sent


# ============================================================================
# DATA HELPERS
# ============================================================================

@pytest.fixture
async def package(async_session):
    package = Package(name="6-Month Float Pass", duration="6-Month", sessions=3, total_price=45000, discount=10)
    async_session.add(package)
    await async_session.commit()
    await async_session.refresh(package)
    return package


@pytest.fixture
def make_activation(async_session, package):
    """Factory for activations in any state; defaults to a usable one."""

    async def _make(
        status: ActivationStatus = ActivationStatus.CONFIRMED,
        used_count: int = 0,
        total_sessions: int = 3,
        expiry_date=None,
        email: str = "member@example.com",
    ) -> PackageActivation:
        now = datetime.now(timezone.utc)
        if expiry_date is None and status == ActivationStatus.CONFIRMED:
            expiry_date = now + timedelta(days=30)
        activation = PackageActivation(
            package_id=package.id,
            package_name=package.name,
            full_name="Nimal Perera",
            email=email,
            phone="0771234567",
            address="12 Galle Road, Colombo",
            message="",
            preferred_date=now,
            status=status,
            total_sessions=total_sessions,
            used_count=used_count,
            start_date=now - timedelta(days=1) if status == ActivationStatus.CONFIRMED else None,
            expiry_date=expiry_date,
        )
        async_session.add(activation)
        await async_session.commit()
        await async_session.refresh(activation)
        return activation

    return _make


@pytest.fixture
def make_calendar_day(async_session):
    async def _make(
        day,
        remaining_sessions: int,
        status: CalendarDayStatus = CalendarDayStatus.BOOKABLE,
    ) -> CalendarDay:
        calendar_day = CalendarDay(
            date=day,
            status=status,
            open_time="09:00",
            close_time="21:00",
            remaining_sessions=remaining_sessions,
        )
        async_session.add(calendar_day)
        await async_session.commit()
        await async_session.refresh(calendar_day)
        return calendar_day

    return _make


@pytest.fixture
def booking_payload():
    """Builder for a valid booking request body."""

    def _build(**overrides) -> dict:
        payload = {
            "name": "Kasun Silva",
            "date": "2030-03-14",
            "time": "10:00",
            "email": "Kasun@Example.com",
            "contactNumber": "0719876543",
            "specialNote": "",
        }
        payload.update(overrides)
        return payload

    return _build
