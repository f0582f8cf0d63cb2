"""Client account and credit check API endpoints."""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storeledger.core.database import get_db
from storeledger.core.errors import LedgerError
from storeledger.schemas.account import (
    ClientAccountResponse,
    ClientWithAccountResponse,
    CreditCheckResponse,
)
from storeledger.schemas.relationship import RelationshipResponse
from storeledger.services.account_service import AccountService, ClientAccount
from storeledger.services.credit_gate import can_afford_credit_order

router = APIRouter()


@router.get(
    "/stores/{store_id}/clients/with-accounts",
    response_model=list[ClientWithAccountResponse],
    summary="List clients with accounts",
)
def list_clients_with_accounts(
    store_id: int,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[ClientWithAccountResponse]:
    """Accepted clients of the store with their balance and credit view."""
    rows = AccountService(db).list_accounts_for_store(store_id, skip=skip, limit=limit)
    return [
        ClientWithAccountResponse(
            relationship=RelationshipResponse.model_validate(relationship),
            account=ClientAccountResponse.model_validate(account),
        )
        for relationship, account in rows
    ]


@router.get(
    "/stores/{store_id}/clients/{client_id}/account",
    response_model=ClientAccountResponse,
    summary="Get client account",
    responses={404: {"description": "Relationship not found"}},
)
def get_client_account(
    store_id: int,
    client_id: int,
    db: Session = Depends(get_db),
) -> ClientAccount:
    """Balance due, advances, and available credit for one client at one store."""
    try:
        return AccountService(db).get_account(store_id, client_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.get(
    "/stores/{store_id}/clients/{client_id}/credit/check",
    response_model=CreditCheckResponse,
    summary="Check credit order",
)
def check_credit_order(
    store_id: int,
    client_id: int,
    amount: Decimal = Query(gt=0),
    db: Session = Depends(get_db),
) -> CreditCheckResponse:
    """Whether a credit-funded order of ``amount`` would be approved right now."""
    return CreditCheckResponse(
        order_amount=amount,
        approved=can_afford_credit_order(db, store_id, client_id, amount),
    )
