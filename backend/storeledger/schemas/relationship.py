"""Client/store relationship schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storeledger.core.money import Money
from storeledger.models.relationship import RelationshipStatus


class RelationshipInvite(BaseModel):
    client_id: int = Field(gt=0)
    client_email: EmailStr | None = None


class RelationshipCreditUpdate(BaseModel):
    allow_credit: bool
    credit_limit: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)


class RelationshipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    store_id: int
    client_id: int
    client_email: str | None = None
    status: RelationshipStatus
    allow_credit: bool
    credit_limit: Money | None = None
    created_at: datetime
    responded_at: datetime | None = None
    updated_at: datetime
