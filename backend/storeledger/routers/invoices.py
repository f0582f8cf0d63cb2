"""Invoice API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
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
from storeledger.models.invoice import Invoice, InvoiceStatus
from storeledger.models.payment import Payment
from storeledger.repositories.invoice_repository import InvoiceRepository
from storeledger.schemas.invoice import (
    InvoiceCreate,
    InvoiceMarkPaid,
    InvoiceResponse,
    OverdueInvoiceResponse,
)
from storeledger.schemas.payment import InvoicePay, PaymentResponse
from storeledger.services.invoice_service import InvoiceService
from storeledger.services.payment_service import PaymentService

router = APIRouter()


@router.post(
    "/stores/{store_id}/invoices",
    response_model=InvoiceResponse,
    status_code=201,
    summary="Create invoice",
    responses={
        400: {"description": "Invalid amount or due date"},
        403: {"description": "Credit not allowed for this client"},
        404: {"description": "Relationship not found"},
        409: {"description": "Relationship not accepted"},
    },
)
async def create_invoice(
    store_id: int,
    data: InvoiceCreate,
    db: Session = Depends(get_db),
) -> Invoice:
    """Create an unpaid invoice for an accepted order."""
    service = InvoiceService(db)
    try:
        return service.create_invoice(
            store_id=store_id,
            client_id=data.client_id,
            order_id=data.order_id,
            amount=data.amount,
            due_date=data.due_date,
            credit_funded=data.credit_funded,
        )
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.get(
    "/stores/{store_id}/invoices",
    response_model=list[InvoiceResponse],
    summary="List store invoices",
)
async def list_store_invoices(
    store_id: int,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: InvoiceStatus | None = None,
    db: Session = Depends(get_db),
) -> list[Invoice]:
    repo = InvoiceRepository(db)
    response.headers["X-Total-Count"] = str(repo.count_for_store(store_id, status))
    return InvoiceService(db).list_for_store(store_id, status=status, skip=skip, limit=limit)


@router.get(
    "/stores/{store_id}/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
    responses={404: {"description": "Invoice not found"}},
)
async def get_invoice(
    store_id: int,
    invoice_id: UUID,
    db: Session = Depends(get_db),
) -> Invoice:
    try:
        return InvoiceService(db).get_invoice(invoice_id, store_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


# Plain def: runs in the threadpool because it blocks on the account lock.
@router.put(
    "/stores/{store_id}/invoices/{invoice_id}/mark-paid",
    response_model=InvoiceResponse,
    summary="Mark invoice paid",
    responses={
        404: {"description": "Invoice not found"},
        409: {"description": "Invoice already paid"},
    },
)
def mark_invoice_paid(
    store_id: int,
    invoice_id: UUID,
    data: InvoiceMarkPaid,
    db: Session = Depends(get_db),
) -> Invoice:
    """Mark an invoice paid with an external payment reference."""
    try:
        return InvoiceService(db).mark_paid_direct(
            invoice_id, data.payment_reference, store_id=store_id
        )
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.post(
    "/stores/{store_id}/invoices/{invoice_id}/pay",
    response_model=PaymentResponse,
    status_code=201,
    summary="Pay invoice",
    responses={
        404: {"description": "Invoice not found"},
        409: {"description": "Invoice already paid"},
        422: {"description": "Insufficient advance balance or overpayment"},
    },
)
def pay_invoice(
    store_id: int,
    invoice_id: UUID,
    data: InvoicePay,
    request: Request,
    db: Session = Depends(get_db),
) -> Payment | JSONResponse:
    """Apply a settlement payment (cash, card, transfer, or advance) to an invoice."""
    idempotency = check_idempotency(request, db, store_id)
    if isinstance(idempotency, JSONResponse):
        return idempotency

    try:
        payment = PaymentService(db).settle_invoice(
            invoice_id, data.amount, data.method, data.reference, store_id=store_id
        )
    except LedgerError as e:
        release_idempotency_key(db, idempotency)
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None

    if isinstance(idempotency, IdempotencyResult):
        body = PaymentResponse.model_validate(payment).model_dump(mode="json")
        record_idempotency_response(db, idempotency, 201, body)

    return payment


@router.get(
    "/stores/{store_id}/clients/{client_id}/invoices",
    response_model=list[InvoiceResponse],
    summary="List client invoices",
    responses={404: {"description": "Relationship not found"}},
)
async def list_client_invoices(
    store_id: int,
    client_id: int,
    status: InvoiceStatus | None = None,
    db: Session = Depends(get_db),
) -> list[Invoice]:
    try:
        return InvoiceService(db).list_for_relationship(store_id, client_id, status)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.get(
    "/stores/{store_id}/clients/{client_id}/invoices/overdue",
    response_model=list[OverdueInvoiceResponse],
    summary="List overdue invoices",
    responses={404: {"description": "Relationship not found"}},
)
async def list_overdue_invoices(
    store_id: int,
    client_id: int,
    as_of: datetime | None = None,
    db: Session = Depends(get_db),
) -> list[OverdueInvoiceResponse]:
    try:
        overdue = InvoiceService(db).compute_overdue(store_id, client_id, as_of)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None
    return [
        OverdueInvoiceResponse(
            invoice=InvoiceResponse.model_validate(item.invoice),
            days_overdue=item.days_overdue,
        )
        for item in overdue
    ]


@router.get(
    "/clients/{client_id}/invoices/unpaid",
    response_model=list[InvoiceResponse],
    summary="List client unpaid invoices",
)
async def list_client_unpaid_invoices(
    client_id: int,
    db: Session = Depends(get_db),
) -> list[Invoice]:
    """Unpaid invoices for a client across all stores, earliest due first."""
    return InvoiceService(db).list_unpaid_for_client(client_id)
