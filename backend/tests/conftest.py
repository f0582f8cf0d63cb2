"""Shared test fixtures for all test modules."""

import contextlib
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storeledger.models  # noqa: F401
from storeledger.core import database as db_module
from storeledger.core.cache import account_cache
from storeledger.core.database import Base, get_db
from storeledger.core.locks import account_locks
from storeledger.main import app
from storeledger.services.relationship_service import RelationshipService

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

STORE_ID = 1
CLIENT_ID = 2


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data, the account cache, and the
    account locks after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    account_cache.clear()
    account_locks.reset()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def db_session():
    """Create a database session for direct service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def accepted_relationship(db_session):
    """Store 1 / client 2, accepted, with credit allowed up to 500."""
    service = RelationshipService(db_session)
    service.invite(STORE_ID, CLIENT_ID, "client@example.com")
    service.accept(STORE_ID, CLIENT_ID)
    return service.set_credit(STORE_ID, CLIENT_ID, True, Decimal("500"))


@pytest.fixture
def enabled_account_cache(monkeypatch):
    """Turn on the in-process account cache, which is off by default."""
    monkeypatch.setattr(account_cache, "enabled", True)
    return account_cache
