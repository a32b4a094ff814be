"""
Centralized Test Configuration.
"""

import pytest
from types import SimpleNamespace
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.pool import Pool

from fulfillment_engine.app.main import app
from fulfillment_engine.app.api.deps import get_engine_options
from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.db.session import get_db, Base, build_engine, build_session_factory
from fulfillment_engine.app.core.redis_client import get_redis
import fulfillment_engine.app.core.redis_client as redis_client_module
from fulfillment_engine.app.models.courier import Courier
from fulfillment_engine.app.models.hub import Hub, HubCourier
from fulfillment_engine.app.models.shipping_rate import ShippingRate
from fulfillment_engine.app.models.zone import Zone
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.schemas.orders import OrderCreate, OrderItemIn

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = build_session_factory(engine)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    app.dependency_overrides.pop(get_engine_options, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def use_options():
    """Override the API's engine options for one test."""
    def apply(**values):
        options = EngineOptions(**values)
        app.dependency_overrides[get_engine_options] = lambda: options
        return options
    return apply


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def options():
    return EngineOptions(operation_timeout_seconds=5.0)


@pytest.fixture
def repository(db_session):
    return FulfillmentRepository(db_session, timeout=5.0)


@pytest.fixture
async def network(db_session):
    """
    Reference network:
    - South-South (Delta, Rivers, Edo) and South-West (Lagos, Ogun) zones
    - Warri Hub (GIGL primary) and Lagos Hub (Fez primary p5, GIGL p10)
    - Rates: Warri 1500 + 200/kg free from 50,000; Lagos 1000 + 100/kg
      free from 40,000; South-West zone-wide 2000 flat
    """
    south_south = Zone(name="South-South", code="SS", states=["Delta", "Rivers", "Edo"], estimated_delivery_days=4)
    south_west = Zone(name="South-West", code="SW", states=["Lagos", "Ogun"], estimated_delivery_days=2)
    warri = Hub(name="Warri Hub", code="WRI", city="Warri", state="Delta")
    lagos = Hub(name="Lagos Hub", code="LOS", city="Ikeja", state="Lagos")
    fez = Courier(name="Fez Delivery", code="FEZ", base_rate=1200)
    gigl = Courier(name="GIG Logistics", code="GIGL", base_rate=1000)
    db_session.add_all([south_south, south_west, warri, lagos, fez, gigl])
    await db_session.flush()

    db_session.add_all([
        HubCourier(hub_id=lagos.id, courier_id=fez.id, is_primary=True, priority=5),
        HubCourier(hub_id=lagos.id, courier_id=gigl.id, is_primary=False, priority=10),
        HubCourier(hub_id=warri.id, courier_id=gigl.id, is_primary=True, priority=1),
    ])
    warri_rate = ShippingRate(
        zone_id=south_south.id, hub_id=warri.id, name="Warri standard",
        flat_rate=1500, per_kg_rate=200, free_shipping_threshold=50000, priority=0
    )
    lagos_rate = ShippingRate(
        zone_id=south_west.id, hub_id=lagos.id, name="Lagos standard",
        flat_rate=1000, per_kg_rate=100, free_shipping_threshold=40000, priority=0
    )
    south_west_default = ShippingRate(
        zone_id=south_west.id, hub_id=None, name="South-West flat", flat_rate=2000, priority=0
    )
    db_session.add_all([warri_rate, lagos_rate, south_west_default])
    await db_session.commit()

    return SimpleNamespace(
        south_south=south_south, south_west=south_west,
        warri=warri, lagos=lagos, fez=fez, gigl=gigl,
        warri_rate=warri_rate, lagos_rate=lagos_rate, south_west_default=south_west_default,
    )


def make_order(**overrides) -> OrderCreate:
    """Normalized storefront order; two Warri items from one vendor by default."""
    data = {
        "external_order_id": "WEB-1001",
        "customer_name": "Ada Okafor",
        "customer_email": "ada@example.com",
        "customer_phone": "+2348000000000",
        "delivery_address": "12 Airport Road",
        "delivery_city": "Warri",
        "delivery_state": "Delta",
        "shipping_fee_paid": 1900,
        "items": [
            {"product_id": "P-1", "product_name": "Kettle", "hub_id": None, "vendor_id": "V-1",
             "quantity": 2, "unit_price": 15000, "weight": 1.0},
        ],
    }
    data.update(overrides)
    return OrderCreate(
        **{key: value for key, value in data.items() if key != "items"},
        items=[OrderItemIn(**item) for item in data["items"]],
    )


@pytest.fixture
def order_factory(network):
    """make_order with hub ids filled in: items default to Warri Hub."""
    def build(**overrides):
        order = make_order(**overrides)
        for item in order.items:
            if item.hub_id is None and "items" not in overrides:
                item.hub_id = network.warri.id
        return order
    return build
