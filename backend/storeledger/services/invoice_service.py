"""Invoice ledger service."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from storeledger.core.cache import account_cache
from storeledger.core.config import settings
from storeledger.core.errors import (
    AlreadyPaid,
    CreditNotAuthorized,
    LedgerValidationError,
    NotFound,
)
from storeledger.core.locks import account_locks
from storeledger.core.money import to_money
from storeledger.models.invoice import Invoice, InvoiceStatus
from storeledger.models.shared import as_utc, utc_now
from storeledger.repositories.invoice_repository import InvoiceRepository
from storeledger.services.relationship_service import RelationshipService

logger = logging.getLogger(__name__)


@dataclass
class OverdueInvoice:
    """An unpaid invoice past its due date."""

    invoice: Invoice
    days_overdue: int


def days_overdue(due_date: datetime, as_of: datetime) -> int:
    """Whole days elapsed since the due date, floored."""
    return (as_utc(as_of) - as_utc(due_date)) // timedelta(days=1)


class InvoiceService:
    """Service for invoice business logic."""

    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.relationships = RelationshipService(db)

    def create_invoice(
        self,
        store_id: int,
        client_id: int,
        order_id: str,
        amount: Decimal,
        due_date: datetime | None = None,
        credit_funded: bool = True,
    ) -> Invoice:
        """Create an UNPAID invoice for an accepted relationship.

        Affordability is not re-checked here; order placement consults
        ``can_afford_credit_order`` before calling this.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise LedgerValidationError("Invoice amount must be positive")

        now = utc_now()
        if due_date is None:
            due_date = now + timedelta(days=settings.DEFAULT_PAYMENT_TERM_DAYS)
        due_date = as_utc(due_date)
        if due_date <= now:
            raise LedgerValidationError("Invoice due date must be in the future")

        relationship = self.relationships.require_accepted(store_id, client_id)
        if credit_funded and not relationship.allow_credit:
            logger.warning(
                "Rejected credit invoice for order %s: store %s does not allow credit for client %s",
                order_id,
                store_id,
                client_id,
            )
            raise CreditNotAuthorized(
                f"Store {store_id} does not allow credit for client {client_id}"
            )

        invoice = self.invoice_repo.create(
            store_id=store_id,
            client_id=client_id,
            order_id=order_id,
            amount=amount,
            due_date=due_date,
            credit_funded=credit_funded,
        )
        account_cache.invalidate(store_id, client_id)
        logger.info(
            "Created invoice %s for order %s: store %s client %s amount %s",
            invoice.invoice_number,
            order_id,
            store_id,
            client_id,
            amount,
        )
        return invoice

    def get_invoice(self, invoice_id: UUID, store_id: int | None = None) -> Invoice:
        invoice = self.invoice_repo.get_by_id(invoice_id, store_id)
        if invoice is None:
            raise NotFound(f"Invoice {invoice_id} not found")
        return invoice

    def mark_paid_direct(
        self, invoice_id: UUID, reference: str, store_id: int | None = None
    ) -> Invoice:
        """Mark an invoice PAID outside the payment ledger. A second call raises AlreadyPaid."""
        invoice = self.get_invoice(invoice_id, store_id)
        account_store_id = int(invoice.store_id)
        account_client_id = int(invoice.client_id)

        with account_locks.hold(account_store_id, account_client_id):
            if not self.invoice_repo.mark_paid(invoice.id, utc_now(), reference):
                raise AlreadyPaid(f"Invoice {invoice.invoice_number} is already paid")
            account_cache.invalidate(account_store_id, account_client_id)

        self.db.refresh(invoice)
        logger.info("Invoice %s marked paid directly (ref %s)", invoice.invoice_number, reference)
        return invoice

    def list_for_relationship(
        self,
        store_id: int,
        client_id: int,
        status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        """Invoices for one account, newest first."""
        self.relationships.get(store_id, client_id)
        return self.invoice_repo.get_for_relationship(store_id, client_id, status)

    def compute_overdue(
        self,
        store_id: int,
        client_id: int,
        as_of: datetime | None = None,
    ) -> list[OverdueInvoice]:
        """Unpaid invoices whose due date is before ``as_of``."""
        as_of = as_utc(as_of) if as_of is not None else utc_now()
        unpaid = self.list_for_relationship(store_id, client_id, InvoiceStatus.UNPAID)
        return [
            OverdueInvoice(invoice=invoice, days_overdue=days_overdue(invoice.due_date, as_of))
            for invoice in unpaid
            if invoice.due_date < as_of
        ]

    def list_for_store(
        self,
        store_id: int,
        status: InvoiceStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Invoice]:
        return self.invoice_repo.get_all_for_store(store_id, skip=skip, limit=limit, status=status)

    def list_unpaid_for_client(self, client_id: int) -> list[Invoice]:
        return self.invoice_repo.get_unpaid_for_client(client_id)
