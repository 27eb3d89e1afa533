# tests/conftest.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from storefront.core.config import Settings
from storefront.core.enums import OrderStatus
from storefront.database import Base, Database
from storefront.main import create_app
from storefront.models import Order, StockVariant
from storefront.runtime import Runtime
from storefront.services.audit_logger import AuditLogger
from storefront.services.reservation_cache import ReservationCache
from storefront.services.reservation_manager import ReservationManager
from storefront.services.settlement import SettlementCoordinator
from storefront.services.stock_ledger import StockLedger
from tests.mocks import FrozenClock, MockGateway, MockRedis

WEBHOOK_SECRET = "sk_test_secret"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "checkout.db"


@pytest.fixture
def settings(db_path):
    """Provide test settings"""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{db_path}",
        REDIS_URL="",
        PAYSTACK_SECRET_KEY=WEBHOOK_SECRET,
        EXPIRY_SWEEP_ENABLED=False,
        RESERVATION_TTL_MINUTES=15,
        LOW_STOCK_THRESHOLD=5,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def cache(mock_redis):
    return ReservationCache(mock_redis)


@pytest.fixture
def gateway():
    return MockGateway(secret=WEBHOOK_SECRET)


@pytest.fixture
async def db(settings):
    """Temporary SQLite database with every table created (function-scoped)."""
    database = Database(settings.async_database_url)
    await database.open()
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def audit(db, clock):
    return AuditLogger(db, clock=clock)


@pytest.fixture
def ledger(db, audit, clock):
    return StockLedger(db, audit=audit, low_stock_threshold=5, clock=clock)


@pytest.fixture
def reservations(db, cache, clock):
    return ReservationManager(db, cache=cache, ttl_minutes=15, clock=clock)


@pytest.fixture
def settlement(db, gateway, reservations, cache, audit, clock):
    return SettlementCoordinator(
        db, gateway, reservations, cache=cache, audit=audit, currency="NGN", clock=clock
    )


@pytest.fixture
def make_variant(ledger):
    async def _make(stock: int = 5, sku: str = None, name: str = "Test Variant"):
        return await ledger.create_variant(sku=sku, name=name, stock=stock)
    return _make


@pytest.fixture
def make_order(db):
    async def _make(status: OrderStatus = OrderStatus.PENDING, total: Decimal = Decimal("5000.00")):
        async with db.transaction() as session:
            order = Order(status=status.value, total=total)
            session.add(order)
        return order
    return _make


# --- Route fixtures ---
# TestClient runs the app on its own event loop, so the schema and seed
# rows are written through a synchronous engine on the same SQLite file.


@pytest.fixture
def sync_engine(db_path):
    from storefront import models  # noqa: F401

    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seed(sync_engine):
    def _seed(*rows):
        with Session(sync_engine, expire_on_commit=False) as session:
            session.add_all(rows)
            session.commit()
        return rows
    return _seed


@pytest.fixture
def seeded_variant(seed):
    variant, = seed(StockVariant(sku="TSHIRT-M-BLK", name="T-shirt M black", stock=5))
    return variant


@pytest.fixture
def seeded_order(seed):
    order, = seed(Order(status=OrderStatus.PENDING.value, total=Decimal("5000.00")))
    return order


@pytest.fixture
def app_runtime(settings, mock_redis, gateway, clock):
    return Runtime(settings, cache=ReservationCache(mock_redis), gateway=gateway, clock=clock)


@pytest.fixture
def test_client(app_runtime, sync_engine):
    """Provide a test client wired to mocks and the temporary database"""
    app = create_app(runtime=app_runtime)
    with TestClient(app) as client:
        yield client
