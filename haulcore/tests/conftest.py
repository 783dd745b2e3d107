"""
Centralized Test Configuration.
"""

import os

# Point the app's own engine at SQLite before anything imports settings
os.environ.setdefault("HAULCORE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from haulcore.app.main import app
from haulcore.app.core.jwt import create_access_token
from haulcore.app.core.reliability import notification_circuit_breaker
from haulcore.app.db.session import get_db, Base
from haulcore.app.domain.money import ZERO, to_money
from haulcore.app.domain.results import DriverIdentity
from haulcore.app.models.load import Load
from haulcore.app.models.load_enums import LoadStatus
from haulcore.app.models.trip import Trip
from haulcore.app.models.trip_enums import TripStatus
from haulcore.app.models.trip_load import TripLoad
from haulcore.app.services.notification_service import set_owner_notifier

COMPANY_ID = 1
OTHER_COMPANY_ID = 2
DRIVER_ID = 10

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class RecordingNotifier:
    """Owner notifier that remembers what it was sent."""

    def __init__(self):
        self.events = []

    async def notify(self, event_kind, entity_id, payload):
        self.events.append((event_kind, entity_id, payload))

    def kinds(self):
        return [kind for kind, _, _ in self.events]


class Factory:
    """Inserts rows directly so tests can start from any state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, status=LoadStatus.PENDING, company_id=COMPANY_ID, contract_balance_due=0, **fields) -> Load:
        due = to_money(contract_balance_due)
        values = {
            "company_id": company_id,
            "status": status,
            "contract_balance_due": due,
            "amount_collected_at_pickup": ZERO,
            "amount_collected_on_delivery": ZERO,
            "remaining_balance": due,
        }
        values.update(fields)
        load = Load(**values)
        self.db.add(load)
        await self.db.commit()
        return load

    async def trip(self, status=TripStatus.PLANNED, company_id=COMPANY_ID, driver_id=DRIVER_ID, **fields) -> Trip:
        values = {
            "company_id": company_id,
            "driver_id": driver_id,
            "status": status,
            "current_delivery_index": 1,
        }
        values.update(fields)
        trip = Trip(**values)
        self.db.add(trip)
        await self.db.commit()
        return trip

    async def attach(self, trip: Trip, *loads: Load) -> None:
        for position, load in enumerate(loads, start=1):
            self.db.add(TripLoad(trip_id=trip.id, load_id=load.id, sequence_index=position))
        await self.db.commit()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Route the app's sessions to the test database for the whole session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def notifier():
    """Every test gets a fresh recording notifier and a closed circuit."""
    recorder = RecordingNotifier()
    set_owner_notifier(recorder)
    notification_circuit_breaker.reset_state()
    yield recorder
    set_owner_notifier(None)
    notification_circuit_breaker.reset_state()


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


@pytest.fixture
def driver():
    return DriverIdentity(company_id=COMPANY_ID, driver_id=DRIVER_ID)


@pytest.fixture
def owner():
    return DriverIdentity(company_id=COMPANY_ID, role="OWNER")


@pytest.fixture
def outsider():
    """A driver from another company."""
    return DriverIdentity(company_id=OTHER_COMPANY_ID, driver_id=99)


def make_auth_headers(company_id=COMPANY_ID, driver_id=DRIVER_ID, role="DRIVER") -> dict:
    claims = {"sub": f"{role.lower()}-{driver_id}", "company_id": company_id, "role": role}
    if driver_id is not None:
        claims["driver_id"] = driver_id
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def auth_headers():
    """Builds bearer headers: auth_headers(), auth_headers(role="OWNER", driver_id=None)."""
    return make_auth_headers


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
