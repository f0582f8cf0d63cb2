"""Payment model for advances and invoice settlements."""

from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Numeric,
    String,
)

from storeledger.core.database import Base
from storeledger.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class PaymentKind(str, Enum):
    """Payment kind enum."""

    ADVANCE = "advance"
    SETTLEMENT = "settlement"


class PaymentMethod(str, Enum):
    """How the money moved."""

    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    ADVANCE = "advance"  # Consumes the client's advance balance


class Payment(Base):
    """Payment model - one money movement against a client/store account.

    ADVANCE rows credit the prepaid balance. SETTLEMENT rows pay down an
    invoice; those with ``method=advance`` consume the prepaid balance.
    """

    __tablename__ = "payments"
    __table_args__ = (
        ForeignKeyConstraint(
            ["store_id", "client_id"],
            ["client_store_relationships.store_id", "client_store_relationships.client_id"],
            ondelete="RESTRICT",
        ),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "NOT (kind = 'advance' AND method = 'advance')",
            name="ck_payments_advance_not_from_advance",
        ),
        Index("ix_payments_store_client", "store_id", "client_id"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    store_id = Column(BigInteger, nullable=False)
    client_id = Column(BigInteger, nullable=False)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    kind = Column(String(20), nullable=False)
    method = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    reference = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
