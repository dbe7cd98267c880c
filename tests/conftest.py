"""Root-level pytest fixtures for all tests.

Provides:
- In-memory SQLite sessions with the full schema
- A fixed dispatch clock
- Default dispatch configuration
- Order factories
"""

import os
import tempfile
from collections.abc import Generator
from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Keep lastmile.db.connection from touching the user's data directory.
os.environ.setdefault("LASTMILE_DATA_DIR", tempfile.mkdtemp(prefix="lastmile-tests-"))

from lastmile.config import DispatchConfig, WarehouseConfig  # noqa: E402
from lastmile.db.models import Base, Order, ResolvedAddress  # noqa: E402

# Thursday 2024-03-14 09:00 in the dispatch timezone.
FIXED_NOW = datetime(2024, 3, 14, 9, 0, 0)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


# ============================================================================
# Clock / Config Fixtures
# ============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock(fixed_now):
    """Zero-argument clock returning the fixed dispatch time."""
    return lambda: fixed_now


@pytest.fixture
def dispatch_config() -> DispatchConfig:
    return DispatchConfig(
        warehouse=WarehouseConfig(address="12 Nguyễn Văn Linh, Quận 7, TP.HCM"),
    )


# ============================================================================
# Order Factories
# ============================================================================


@pytest.fixture
def make_order(db_session):
    """Create and persist an Order, optionally with a ResolvedAddress."""

    def _make(order_id: str, resolved: dict | None = None, **fields) -> Order:
        order = Order(id=order_id, **fields)
        db_session.add(order)
        if resolved is not None:
            db_session.add(ResolvedAddress(order_id=order_id, **resolved))
        db_session.commit()
        return order

    return _make
