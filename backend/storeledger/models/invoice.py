"""Invoice model."""

from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKeyConstraint,
    Index,
    Numeric,
    String,
)

from storeledger.core.database import Base
from storeledger.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class InvoiceStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class Invoice(Base):
    """A billable debt created against an order, payable once."""

    __tablename__ = "invoices"
    __table_args__ = (
        ForeignKeyConstraint(
            ["store_id", "client_id"],
            ["client_store_relationships.store_id", "client_store_relationships.client_id"],
            ondelete="RESTRICT",
        ),
        CheckConstraint("amount > 0", name="ck_invoices_amount_positive"),
        CheckConstraint(
            "(status = 'paid') = (paid_date IS NOT NULL)",
            name="ck_invoices_paid_date_matches_status",
        ),
        Index("ix_invoices_store_client", "store_id", "client_id"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_number = Column(String(50), unique=True, index=True, nullable=False)
    store_id = Column(BigInteger, nullable=False)
    client_id = Column(BigInteger, nullable=False)
    order_id = Column(String(255), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.UNPAID.value)
    credit_funded = Column(Boolean, nullable=False, default=True)

    due_date = Column(UTCDateTime, nullable=False)
    paid_date = Column(UTCDateTime, nullable=True)
    payment_reference = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
