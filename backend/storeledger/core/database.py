from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storeledger.core.config import settings


def create_ledger_engine(dsn: str) -> Engine:
    """Engine for the ledger database.

    SQLite connections are shared with the request threadpool, wait for the
    writer lock instead of failing fast, and enforce foreign keys.
    """
    if not dsn.startswith("sqlite"):
        return create_engine(dsn, pool_pre_ping=True)

    sqlite_engine = create_engine(
        dsn,
        connect_args={"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = create_ledger_engine(settings.APP_DATABASE_DSN)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the ledger tables on the configured engine."""
    import storeledger.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
