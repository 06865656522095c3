"""Test fixtures for the castle bookings backend."""
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import date, time
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("CALENDAR_BACKEND", "memory")

from castle_bookings.core.config import get_settings
from castle_bookings.core.settings import BookingRules
from castle_bookings.db.base import Base
from castle_bookings.db.session import dispose_engine, get_sessionmaker
from castle_bookings.integrations.google_calendar import InMemoryCalendarClient
from castle_bookings.main import app
from castle_bookings.models import Booking, BookingStatus, Castle
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.calendar_sync_service import CalendarSyncService


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest.fixture()
def rules() -> BookingRules:
    return BookingRules()


@pytest.fixture()
def calendar() -> InMemoryCalendarClient:
    return InMemoryCalendarClient()


@pytest_asyncio.fixture()
async def session(reset_database: None, db_url: str) -> AsyncIterator[AsyncSession]:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as db_session:
        yield db_session


@pytest.fixture()
def store(session: AsyncSession) -> SqlBookingStore:
    return SqlBookingStore(session)


@pytest.fixture()
def sync_service(
    store: SqlBookingStore, calendar: InMemoryCalendarClient, rules: BookingRules
) -> CalendarSyncService:
    return CalendarSyncService(store, calendar, rules=rules, timeout=2)


@pytest_asyncio.fixture()
async def castles(session: AsyncSession) -> dict[str, Castle]:
    """Seed two active castles and one retired castle."""
    fleet = {
        "CastleA": Castle(name="CastleA", castle_type="Themed", price_pence=12000),
        "CastleB": Castle(name="CastleB", castle_type="Combo", price_pence=15000),
        "Retired": Castle(
            name="Retired", castle_type="Themed", price_pence=9000, is_active=False
        ),
    }
    session.add_all(fleet.values())
    await session.commit()
    for castle in fleet.values():
        await session.refresh(castle)
    return fleet


@pytest.fixture()
def make_booking(
    session: AsyncSession, castles: dict[str, Castle]
) -> Callable[..., Awaitable[Booking]]:
    """Insert a booking directly, bypassing validation."""
    counter = iter(range(1, 1000))

    async def _make(
        castle: str = "CastleA",
        *,
        event_date: date,
        start_time: time | None = time(10, 0),
        end_time: time | None = time(14, 0),
        status: BookingStatus = BookingStatus.CONFIRMED,
        **fields: Any,
    ) -> Booking:
        fields.setdefault("booking_ref", f"TS{event_date:%y%m%d}{next(counter):03d}")
        fields.setdefault("customer_name", "Jane Smith")
        fields.setdefault("total_price_pence", castles[castle].price_pence)
        booking = Booking(
            castle_id=castles[castle].id,
            castle_name=castle,
            event_date=event_date,
            start_time=start_time,
            end_time=end_time,
            status=status,
            **fields,
        )
        session.add(booking)
        await session.commit()
        await session.refresh(booking)
        return booking

    return _make


@pytest_asyncio.fixture()
async def client(
    castles: dict[str, Castle], calendar: InMemoryCalendarClient
) -> AsyncIterator[AsyncClient]:
    """Yield an API client sharing the in-memory calendar with the test."""
    app.state.calendar = calendar
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as api_client:
        yield api_client
    app.state.calendar = None
