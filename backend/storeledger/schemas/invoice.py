"""Invoice schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storeledger.core.money import Money
from storeledger.models.invoice import InvoiceStatus


class InvoiceCreate(BaseModel):
    client_id: int = Field(gt=0)
    order_id: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    due_date: datetime | None = None
    credit_funded: bool = True


class InvoiceMarkPaid(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=255)


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    store_id: int
    client_id: int
    order_id: str
    amount: Money
    status: InvoiceStatus
    credit_funded: bool
    due_date: datetime
    paid_date: datetime | None = None
    payment_reference: str | None = None
    created_at: datetime
    updated_at: datetime


class OverdueInvoiceResponse(BaseModel):
    invoice: InvoiceResponse
    days_overdue: int
