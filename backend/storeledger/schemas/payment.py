"""Payment schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storeledger.core.money import Money
from storeledger.models.payment import PaymentKind, PaymentMethod


class AdvanceCreate(BaseModel):
    client_id: int = Field(gt=0)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CASH
    reference: str | None = Field(default=None, max_length=255)


class InvoicePay(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod
    reference: str | None = Field(default=None, max_length=255)


class ReceiptCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CASH
    reference: str | None = Field(default=None, max_length=255)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: int
    client_id: int
    invoice_id: UUID | None = None
    kind: PaymentKind
    method: PaymentMethod
    amount: Money
    reference: str | None = None
    created_at: datetime


class AdvanceSummaryResponse(BaseModel):
    total_advances: Money
    used_balance: Money
    available_balance: Money
    transactions: list[PaymentResponse]


class AdvanceCheckResponse(BaseModel):
    amount: Money
    available_balance: Money
    has_enough: bool


class PaymentStatsResponse(BaseModel):
    store_id: int
    total_payments: int
    total_amount: Money
    total_advances: Money
    average_payment_amount: Money
    last_payment_date: datetime | None = None
