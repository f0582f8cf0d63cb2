"""Client/store relationship model."""

from enum import Enum

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, Index, Numeric, String

from storeledger.core.database import Base
from storeledger.models.shared import UTCDateTime, utc_now


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ClientStoreRelationship(Base):
    """Per-store, per-client account record gating credit and invoicing.

    Created PENDING by a store invitation. Moves to ACCEPTED or REJECTED
    exactly once; both are terminal.
    """

    __tablename__ = "client_store_relationships"
    __table_args__ = (
        CheckConstraint(
            "credit_limit IS NULL OR credit_limit >= 0",
            name="ck_client_store_relationships_credit_limit",
        ),
        Index("ix_client_store_relationships_client_id", "client_id"),
    )

    store_id = Column(BigInteger, primary_key=True, autoincrement=False)
    client_id = Column(BigInteger, primary_key=True, autoincrement=False)
    client_email = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=RelationshipStatus.PENDING.value)
    allow_credit = Column(Boolean, nullable=False, default=False)
    credit_limit = Column(Numeric(12, 2), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    responded_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
