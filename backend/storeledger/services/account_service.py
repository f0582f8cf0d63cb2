"""Account aggregator: derived balance and credit view per client/store pair."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from storeledger.core.cache import account_cache
from storeledger.core.locks import account_locks
from storeledger.core.money import ZERO, to_money
from storeledger.models.invoice import InvoiceStatus
from storeledger.models.relationship import ClientStoreRelationship, RelationshipStatus
from storeledger.models.shared import as_utc, utc_now
from storeledger.repositories.invoice_repository import InvoiceRepository
from storeledger.repositories.payment_repository import PaymentRepository
from storeledger.services.relationship_service import RelationshipService


@dataclass(frozen=True)
class ClientAccount:
    """Derived view of one client's standing with one store. Never stored."""

    store_id: int
    client_id: int
    balance_due: Decimal
    outstanding_balance: Decimal
    total_advances: Decimal
    advances_received: Decimal
    advances_consumed: Decimal
    allow_credit: bool
    credit_limit: Decimal | None
    credit_unlimited: bool
    available_credit: Decimal | None
    unpaid_invoice_count: int
    overdue_amount: Decimal
    next_due_date: datetime | None
    as_of: datetime


def compute_available_credit(
    allow_credit: bool,
    credit_limit: Decimal | None,
    balance_due: Decimal,
    total_advances: Decimal,
) -> Decimal | None:
    """Remaining credit headroom net of advances.

    Returns ``None`` when credit is allowed without a limit (unlimited), and
    zero when credit is not allowed.
    """
    if not allow_credit:
        return ZERO
    if credit_limit is None:
        return None
    return max(ZERO, to_money(credit_limit) - balance_due + total_advances)


class AccountService:
    """Read-only aggregation over the invoice and payment ledgers."""

    def __init__(self, db: Session):
        self.db = db
        self.relationships = RelationshipService(db)
        self.invoice_repo = InvoiceRepository(db)
        self.payment_repo = PaymentRepository(db)

    def get_account(self, store_id: int, client_id: int, use_cache: bool = True) -> ClientAccount:
        relationship = self.relationships.get(store_id, client_id)
        if not use_cache:
            return self._compute_locked(relationship)
        # overdue_amount changes when an unpaid invoice passes its due date, so the
        # cached view expires then even without a write.
        return account_cache.get_or_compute(
            (store_id, client_id),
            lambda: self._compute_locked(relationship),
            expires_at=lambda account: account.next_due_date,
        )

    def _compute_locked(self, relationship: ClientStoreRelationship) -> ClientAccount:
        # Settlements commit under this lock, so every query in the fold sees the same state.
        with account_locks.hold(int(relationship.store_id), int(relationship.client_id)):
            self.db.refresh(relationship)
            return self._compute(relationship)

    def _compute(self, relationship: ClientStoreRelationship) -> ClientAccount:
        store_id = int(relationship.store_id)
        client_id = int(relationship.client_id)
        now = utc_now()

        unpaid = self.invoice_repo.get_for_relationship(
            store_id, client_id, InvoiceStatus.UNPAID
        )
        settled = self.payment_repo.get_settled_by_invoice(store_id, client_id)

        balance_due = ZERO
        outstanding_balance = ZERO
        overdue_amount = ZERO
        next_due_date: datetime | None = None
        for invoice in unpaid:
            amount = to_money(invoice.amount)  # type: ignore[call-overload]
            paid = settled.get(invoice.id, ZERO)  # type: ignore[call-overload]
            balance_due += amount
            outstanding_balance += amount - paid
            due_date = as_utc(invoice.due_date)
            if due_date < now:
                overdue_amount += amount
            elif next_due_date is None or due_date < next_due_date:
                next_due_date = due_date

        received, consumed = self.payment_repo.get_advance_totals(store_id, client_id)
        total_advances = max(ZERO, to_money(received - consumed))

        credit_limit = (
            to_money(relationship.credit_limit) if relationship.credit_limit is not None else None
        )
        allow_credit = bool(relationship.allow_credit)

        return ClientAccount(
            store_id=store_id,
            client_id=client_id,
            balance_due=to_money(balance_due),
            outstanding_balance=to_money(outstanding_balance),
            total_advances=total_advances,
            advances_received=received,
            advances_consumed=consumed,
            allow_credit=allow_credit,
            credit_limit=credit_limit,
            credit_unlimited=allow_credit and credit_limit is None,
            available_credit=compute_available_credit(
                allow_credit, credit_limit, balance_due, total_advances
            ),
            unpaid_invoice_count=len(unpaid),
            overdue_amount=to_money(overdue_amount),
            next_due_date=next_due_date,
            as_of=now,
        )

    def list_accounts_for_store(
        self, store_id: int, skip: int = 0, limit: int = 100
    ) -> list[tuple[ClientStoreRelationship, ClientAccount]]:
        """Accepted clients of a store with their account views."""
        relationships = self.relationships.list_for_store(
            store_id, status=RelationshipStatus.ACCEPTED, skip=skip, limit=limit
        )
        return [
            (relationship, self.get_account(store_id, int(relationship.client_id)))
            for relationship in relationships
        ]
