"""Payment and advance API endpoints."""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from storeledger.core.database import get_db
from storeledger.core.errors import LedgerError
from storeledger.core.idempotency import (
    IdempotencyResult,
    check_idempotency,
    record_idempotency_response,
    release_idempotency_key,
)
from storeledger.models.payment import Payment
from storeledger.schemas.payment import (
    AdvanceCheckResponse,
    AdvanceCreate,
    AdvanceSummaryResponse,
    PaymentResponse,
    PaymentStatsResponse,
    ReceiptCreate,
)
from storeledger.services.payment_service import PaymentService

router = APIRouter()


@router.post(
    "/stores/{store_id}/payments/advance",
    response_model=PaymentResponse,
    status_code=201,
    summary="Record advance",
    responses={
        400: {"description": "Invalid amount or method"},
        404: {"description": "Relationship not found"},
        409: {"description": "Relationship not accepted"},
    },
)
async def record_advance(
    store_id: int,
    data: AdvanceCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> Payment | JSONResponse:
    """Record a prepayment that can later settle invoices."""
    idempotency = check_idempotency(request, db, store_id)
    if isinstance(idempotency, JSONResponse):
        return idempotency

    try:
        payment = PaymentService(db).record_advance(
            store_id, data.client_id, data.amount, data.method, data.reference
        )
    except LedgerError as e:
        release_idempotency_key(db, idempotency)
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None

    if isinstance(idempotency, IdempotencyResult):
        body = PaymentResponse.model_validate(payment).model_dump(mode="json")
        record_idempotency_response(db, idempotency, 201, body)

    return payment


# Plain def: runs in the threadpool because it blocks on the account lock.
@router.post(
    "/stores/{store_id}/clients/{client_id}/payments/record",
    response_model=list[PaymentResponse],
    status_code=201,
    summary="Record credit payment",
    responses={
        404: {"description": "Relationship not found"},
        409: {"description": "Relationship not accepted"},
        422: {"description": "Receipt exceeds outstanding balance"},
    },
)
def record_receipt(
    store_id: int,
    client_id: int,
    data: ReceiptCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> list[Payment] | JSONResponse:
    """Record money received against a client's debt, settling the oldest invoices first."""
    idempotency = check_idempotency(request, db, store_id)
    if isinstance(idempotency, JSONResponse):
        return idempotency

    try:
        payments = PaymentService(db).record_receipt(
            store_id, client_id, data.amount, data.method, data.reference
        )
    except LedgerError as e:
        release_idempotency_key(db, idempotency)
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None

    if isinstance(idempotency, IdempotencyResult):
        body = [PaymentResponse.model_validate(p).model_dump(mode="json") for p in payments]
        record_idempotency_response(db, idempotency, 201, body)

    return payments


@router.get(
    "/stores/{store_id}/clients/{client_id}/payments",
    response_model=list[PaymentResponse],
    summary="Client payment history",
    responses={404: {"description": "Relationship not found"}},
)
async def payment_history(
    store_id: int,
    client_id: int,
    db: Session = Depends(get_db),
) -> list[Payment]:
    try:
        return PaymentService(db).history(store_id, client_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.get(
    "/stores/{store_id}/clients/{client_id}/advances",
    response_model=AdvanceSummaryResponse,
    summary="Client advances",
    responses={404: {"description": "Relationship not found"}},
)
async def client_advances(
    store_id: int,
    client_id: int,
    db: Session = Depends(get_db),
) -> AdvanceSummaryResponse:
    try:
        summary = PaymentService(db).advance_summary(store_id, client_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None
    return AdvanceSummaryResponse(
        total_advances=summary.total_advances,
        used_balance=summary.used_balance,
        available_balance=summary.available_balance,
        transactions=[PaymentResponse.model_validate(p) for p in summary.transactions],
    )


@router.get(
    "/stores/{store_id}/clients/{client_id}/advances/check",
    response_model=AdvanceCheckResponse,
    summary="Check advance balance",
)
async def check_advance_balance(
    store_id: int,
    client_id: int,
    amount: Decimal = Query(gt=0),
    db: Session = Depends(get_db),
) -> AdvanceCheckResponse:
    service = PaymentService(db)
    available = service.available_advance_balance(store_id, client_id)
    return AdvanceCheckResponse(
        amount=amount,
        available_balance=available,
        has_enough=service.has_enough_advance_balance(store_id, client_id, amount),
    )


@router.get(
    "/stores/{store_id}/payments/stats",
    response_model=PaymentStatsResponse,
    summary="Store payment statistics",
)
async def payment_stats(
    store_id: int,
    db: Session = Depends(get_db),
) -> PaymentStatsResponse:
    return PaymentStatsResponse(**PaymentService(db).store_stats(store_id))
