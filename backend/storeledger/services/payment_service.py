"""Payment/advance ledger service."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from storeledger.core.cache import account_cache
from storeledger.core.errors import (
    AlreadyPaid,
    InsufficientAdvanceBalance,
    LedgerValidationError,
    NotFound,
    OverpaymentRejected,
)
from storeledger.core.locks import account_locks
from storeledger.core.money import ZERO, to_money
from storeledger.models.invoice import Invoice, InvoiceStatus
from storeledger.models.payment import Payment, PaymentKind, PaymentMethod
from storeledger.models.shared import utc_now
from storeledger.repositories.invoice_repository import InvoiceRepository
from storeledger.repositories.payment_repository import PaymentRepository
from storeledger.services.relationship_service import RelationshipService

logger = logging.getLogger(__name__)


@dataclass
class AdvanceSummary:
    """Advance balance breakdown for one account."""

    total_advances: Decimal
    used_balance: Decimal
    available_balance: Decimal
    transactions: list[Payment]


class PaymentService:
    """Service for advances and invoice settlements.

    ``settle_invoice`` is the only operation that writes to both ledgers: the
    payment row and the conditional UNPAID -> PAID transition commit together
    while the per-account lock is held.
    """

    def __init__(self, db: Session):
        self.db = db
        self.payment_repo = PaymentRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.relationships = RelationshipService(db)

    def record_advance(
        self,
        store_id: int,
        client_id: int,
        amount: Decimal,
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
    ) -> Payment:
        """Record a prepayment. Always allowed once the relationship is accepted."""
        amount = self._positive(amount)
        if method == PaymentMethod.ADVANCE:
            raise LedgerValidationError("An advance cannot be paid from the advance balance")

        self.relationships.require_accepted(store_id, client_id)
        payment = self.payment_repo.create(
            store_id=store_id,
            client_id=client_id,
            kind=PaymentKind.ADVANCE,
            method=method,
            amount=amount,
            reference=reference,
        )
        account_cache.invalidate(store_id, client_id)
        logger.info(
            "Recorded advance %s of %s (%s) for store %s client %s",
            payment.id,
            amount,
            method.value,
            store_id,
            client_id,
        )
        return payment

    def settle_invoice(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        reference: str | None = None,
        store_id: int | None = None,
    ) -> Payment:
        """Apply a settlement payment to an invoice, paying it once fully covered."""
        amount = self._positive(amount)
        invoice = self.invoice_repo.get_by_id(invoice_id, store_id)
        if invoice is None:
            raise NotFound(f"Invoice {invoice_id} not found")
        account_store_id = int(invoice.store_id)
        account_client_id = int(invoice.client_id)

        with account_locks.hold(account_store_id, account_client_id):
            try:
                self.relationships.require_accepted(
                    account_store_id, account_client_id, for_update=True
                )
                # Reload under the lock; the first read may predate a concurrent settlement.
                self.db.refresh(invoice)
                payment = self._apply_settlement(invoice, amount, method, reference)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            finally:
                account_cache.invalidate(account_store_id, account_client_id)

        self.db.refresh(payment)
        return payment

    def _apply_settlement(
        self,
        invoice: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        reference: str | None,
    ) -> Payment:
        """Steps 1-4 of a settlement. Caller holds the account lock and commits."""
        store_id = int(invoice.store_id)
        client_id = int(invoice.client_id)

        if invoice.status == InvoiceStatus.PAID.value:
            raise AlreadyPaid(f"Invoice {invoice.invoice_number} is already paid")

        if method == PaymentMethod.ADVANCE:
            available = self.available_advance_balance(store_id, client_id)
            if available < amount:
                logger.warning(
                    "Insufficient advance balance for store %s client %s: %s < %s",
                    store_id,
                    client_id,
                    available,
                    amount,
                )
                raise InsufficientAdvanceBalance(
                    f"Advance balance {available} is less than {amount}"
                )

        invoice_amount = to_money(invoice.amount)
        settled = self.payment_repo.get_total_settled(invoice.id)  # type: ignore[arg-type]
        if settled + amount > invoice_amount:
            raise OverpaymentRejected(
                f"Payment of {amount} exceeds the {invoice_amount - settled} "
                f"outstanding on invoice {invoice.invoice_number}"
            )

        payment = self.payment_repo.create(
            store_id=store_id,
            client_id=client_id,
            kind=PaymentKind.SETTLEMENT,
            method=method,
            amount=amount,
            reference=reference,
            invoice_id=invoice.id,  # type: ignore[arg-type]
            commit=False,
        )

        if settled + amount == invoice_amount:
            paid_reference = reference or str(payment.id)
            if not self.invoice_repo.mark_paid(
                invoice.id, utc_now(), paid_reference, commit=False  # type: ignore[arg-type]
            ):
                raise AlreadyPaid(f"Invoice {invoice.invoice_number} is already paid")
            logger.info("Invoice %s fully settled", invoice.invoice_number)

        logger.info(
            "Settled %s (%s) on invoice %s for store %s client %s",
            amount,
            method.value,
            invoice.invoice_number,
            store_id,
            client_id,
        )
        return payment

    def record_receipt(
        self,
        store_id: int,
        client_id: int,
        amount: Decimal,
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
    ) -> list[Payment]:
        """Allocate a store-side receipt across unpaid invoices, oldest due first.

        All resulting settlements commit together; a receipt larger than the
        outstanding balance is rejected without writing anything.
        """
        amount = self._positive(amount)

        with account_locks.hold(store_id, client_id):
            try:
                self.relationships.require_accepted(store_id, client_id, for_update=True)
                remaining = amount
                payments: list[Payment] = []
                for invoice in self.invoice_repo.get_unpaid_oldest_first(store_id, client_id):
                    if remaining <= 0:
                        break
                    outstanding = to_money(invoice.amount) - self.payment_repo.get_total_settled(
                        invoice.id  # type: ignore[arg-type]
                    )
                    if outstanding <= 0:
                        continue
                    portion = min(outstanding, remaining)
                    payments.append(self._apply_settlement(invoice, portion, method, reference))
                    remaining -= portion

                if remaining > 0:
                    raise OverpaymentRejected(
                        f"Receipt of {amount} exceeds the outstanding balance by {remaining}"
                    )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            finally:
                account_cache.invalidate(store_id, client_id)

        for payment in payments:
            self.db.refresh(payment)
        return payments

    def available_advance_balance(self, store_id: int, client_id: int) -> Decimal:
        received, consumed = self.payment_repo.get_advance_totals(store_id, client_id)
        return max(ZERO, to_money(received - consumed))

    def has_enough_advance_balance(self, store_id: int, client_id: int, amount: Decimal) -> bool:
        return self.available_advance_balance(store_id, client_id) >= to_money(amount)

    def history(self, store_id: int, client_id: int) -> list[Payment]:
        """All payments for one account, newest first."""
        self.relationships.get(store_id, client_id)
        return self.payment_repo.get_history(store_id, client_id)

    def advance_summary(self, store_id: int, client_id: int) -> AdvanceSummary:
        self.relationships.get(store_id, client_id)
        received, consumed = self.payment_repo.get_advance_totals(store_id, client_id)
        return AdvanceSummary(
            total_advances=received,
            used_balance=consumed,
            available_balance=max(ZERO, to_money(received - consumed)),
            transactions=self.payment_repo.get_history(store_id, client_id, PaymentKind.ADVANCE),
        )

    def store_stats(self, store_id: int) -> dict[str, Any]:
        stats = self.payment_repo.get_store_stats(store_id)
        count = stats["total_payments"]
        stats["average_payment_amount"] = (
            to_money(stats["total_amount"] / count) if count else ZERO
        )
        stats["store_id"] = store_id
        return stats

    @staticmethod
    def _positive(amount: Decimal) -> Decimal:
        amount = to_money(amount)
        if amount <= 0:
            raise LedgerValidationError("Amount must be positive")
        return amount
