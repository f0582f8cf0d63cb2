"""Derived client account schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from storeledger.core.money import Money
from storeledger.schemas.relationship import RelationshipResponse


class ClientAccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_id: int
    client_id: int
    balance_due: Money
    outstanding_balance: Money
    total_advances: Money
    advances_received: Money
    advances_consumed: Money
    allow_credit: bool
    credit_limit: Money | None = None
    credit_unlimited: bool
    available_credit: Money | None = None
    unpaid_invoice_count: int
    overdue_amount: Money
    next_due_date: datetime | None = None
    as_of: datetime


class ClientWithAccountResponse(BaseModel):
    relationship: RelationshipResponse
    account: ClientAccountResponse


class CreditCheckResponse(BaseModel):
    order_amount: Money
    approved: bool
