"""IdempotencyRecord model for API request-level idempotency."""

from sqlalchemy import JSON, BigInteger, Column, Integer, String, UniqueConstraint

from storeledger.core.database import Base
from storeledger.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class IdempotencyRecord(Base):
    """Stores cached responses for idempotent money-moving requests."""

    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("store_id", "idempotency_key", name="uq_store_idempotency_key"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    store_id = Column(BigInteger, nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False, index=True)
    request_method = Column(String(10), nullable=False)
    request_path = Column(String(500), nullable=False)
    # NULL while the first request holding the key is still running
    response_status = Column(Integer, nullable=True)
    response_body = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
