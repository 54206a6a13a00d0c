"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from ridepool.app.main import app
from ridepool.app.db.session import get_db, Base
from ridepool.app.core.exceptions import ExternalLookupFailedError
from ridepool.app.core.redis_client import get_redis
from ridepool.app.domain.matching.geometry import Point, point_distance
from ridepool.app.services.geo_adapter import GeoAdapter, RouteResult, get_geo_adapter
import ridepool.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event destination and a driver origin ~10 km due north of it
VENUE = Point(32.0, 34.8)
DRIVER_HOME = Point(32.09, 34.8)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class FakeGeoAdapter(GeoAdapter):
    """
    Deterministic stand-in for Nominatim/OSRM.

    Known addresses geocode from ``places``; routes are straight lines.
    Set ``fail`` to make every call raise like an unreachable service.
    """

    def __init__(self):
        self.places = {
            "venue": VENUE,
            "driver home": DRIVER_HOME,
            "halfway": Point(32.045, 34.8),
        }
        self.fail = False
        self.distance_km = None  # Overrides the routed distance when set
        self.calls = []

    async def geocode(self, text: str) -> Point:
        self.calls.append(("geocode", text))
        if self.fail:
            raise ExternalLookupFailedError("geocode", "connection refused")
        point = self.places.get(text.strip().lower())
        if point is None:
            raise ExternalLookupFailedError("geocode", f"no match for '{text}'")
        return point

    async def route(self, origin: Point, destination: Point) -> RouteResult:
        self.calls.append(("route", origin, destination))
        if self.fail:
            raise ExternalLookupFailedError("route", "connection refused")
        distance = self.distance_km if self.distance_km is not None else point_distance(origin, destination)
        return RouteResult(
            distance_km=distance,
            duration_minutes=distance / 50 * 60,
            polyline=[list(origin), list(destination)],
        )


@pytest.fixture
def redis_client_session(monkeypatch):
    mock = MockRedis()
    # Patch the global redis client used by the health check
    monkeypatch.setattr(redis_client_module, "redis_client", mock)
    return mock


@pytest.fixture
def geo():
    return FakeGeoAdapter()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
def apply_overrides(request, redis_client_session, geo):
    """Point the app at the test database, the mock Redis and the fake geo adapter."""
    if "session_factory" in request.fixturenames:
        session_factory = request.getfixturevalue("session_factory")

        async def override_get_db():
            async with session_factory() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_geo_adapter] = lambda: geo
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client(session_factory):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ===================== Account helpers =====================

@pytest.fixture
def register(client):
    """Register an account and return its auth headers and id."""
    async def _register(name: str, phone: str, gender: str = "UNSPECIFIED", email: str = None):
        payload = {"name": name, "phone": phone, "password": "secret123", "gender": gender}
        if email:
            payload["email"] = email
        response = await client.post("/v1/auth/register", json=payload)
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
            "account_id": data["account_id"],
        }
    return _register


@pytest.fixture
async def driver(register):
    return await register("Dana Driver", "0501111111", email="dana@example.com")


@pytest.fixture
async def passenger(register):
    return await register("Avi Passenger", "0502222222")


@pytest.fixture
async def passenger_b(register):
    return await register("Bela Passenger", "0503333333")


@pytest.fixture
async def event_id(client, driver):
    """A public event organized by the driver."""
    response = await client.post(
        "/v1/events",
        json={
            "name": "Summer Festival",
            "event_date": "2026-07-01",
            "destination_address": "Venue",
        },
        headers=driver["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.fixture
def create_offer(client, driver, event_id):
    """Publish an offer from the driver's home to the event."""
    async def _create(total_seats: int = 3, headers: dict = None, **overrides):
        payload = {
            "event_id": event_id,
            "total_seats": total_seats,
            "legs": [{"direction": "GOING", "address": "Driver home"}],
        }
        payload.update(overrides)
        response = await client.post("/v1/offers", json=payload, headers=headers or driver["headers"])
        assert response.status_code == 201, response.text
        return response.json()
    return _create


@pytest.fixture
def submit_join(client):
    async def _submit(offer_id: int, who: dict, passenger_count: int = 1, **overrides):
        payload = {"direction": "GOING", "pickup_address": "Halfway", "passenger_count": passenger_count}
        payload.update(overrides)
        return await client.post(f"/v1/offers/{offer_id}/join-requests", json=payload, headers=who["headers"])
    return _submit
