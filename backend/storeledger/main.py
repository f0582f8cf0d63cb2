import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storeledger.core import database
from storeledger.core.config import settings
from storeledger.repositories.idempotency_repository import IdempotencyRepository
from storeledger.routers import accounts, invoices, payments, relationships

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Clients", "description": "Store invitations, client relationships, and credit settings."},
    {"name": "Invoices", "description": "Credit invoices and their payment status."},
    {"name": "Payments", "description": "Advances, invoice settlements, and cash receipts."},
    {"name": "Accounts", "description": "Derived client balances and credit authorization."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    database.init_db()
    db = database.SessionLocal()
    try:
        purged = IdempotencyRepository(db).delete_expired(settings.IDEMPOTENCY_MAX_AGE_HOURS)
    finally:
        db.close()
    if purged:
        logger.info("Purged %s expired idempotency records", purged)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Store credit and invoice settlement ledger. "
        "Manages client/store relationships, credit limits, invoices, "
        "advance payments, and settlements."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "Idempotency-Replayed"],
)

# Accounts first: its /clients/with-accounts route must win over /clients/{client_id}.
app.include_router(accounts.router, prefix="/v1", tags=["Accounts"])
app.include_router(relationships.router, prefix="/v1", tags=["Clients"])
app.include_router(invoices.router, prefix="/v1", tags=["Invoices"])
app.include_router(payments.router, prefix="/v1", tags=["Payments"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "currency": settings.CURRENCY,
        "status": "running",
    }
