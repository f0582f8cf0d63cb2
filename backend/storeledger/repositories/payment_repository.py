"""Payment repository for data access."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from storeledger.core.money import to_money
from storeledger.models.payment import Payment, PaymentKind, PaymentMethod


class PaymentRepository:
    """Repository for Payment model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        store_id: int,
        client_id: int,
        kind: PaymentKind,
        method: PaymentMethod,
        amount: Decimal,
        reference: str | None = None,
        invoice_id: UUID | None = None,
        commit: bool = True,
    ) -> Payment:
        payment = Payment(
            store_id=store_id,
            client_id=client_id,
            kind=kind.value,
            method=method.value,
            amount=amount,
            reference=reference,
            invoice_id=invoice_id,
        )
        self.db.add(payment)
        if commit:
            self.db.commit()
            self.db.refresh(payment)
        else:
            self.db.flush()
        return payment

    def get_history(
        self,
        store_id: int,
        client_id: int,
        kind: PaymentKind | None = None,
    ) -> list[Payment]:
        query = self.db.query(Payment).filter(
            Payment.store_id == store_id,
            Payment.client_id == client_id,
        )
        if kind:
            query = query.filter(Payment.kind == kind.value)
        return query.order_by(Payment.created_at.desc()).all()

    def get_total_settled(self, invoice_id: UUID) -> Decimal:
        """Get the total amount of settlements applied to an invoice."""
        result = (
            self.db.query(sa_func.sum(Payment.amount))
            .filter(
                Payment.invoice_id == invoice_id,
                Payment.kind == PaymentKind.SETTLEMENT.value,
            )
            .scalar()
        )
        return to_money(result)

    def get_settled_by_invoice(self, store_id: int, client_id: int) -> dict[UUID, Decimal]:
        """Settlement totals per invoice for one account."""
        rows = (
            self.db.query(Payment.invoice_id, sa_func.sum(Payment.amount))
            .filter(
                Payment.store_id == store_id,
                Payment.client_id == client_id,
                Payment.kind == PaymentKind.SETTLEMENT.value,
                Payment.invoice_id.isnot(None),
            )
            .group_by(Payment.invoice_id)
            .all()
        )
        return {invoice_id: to_money(total) for invoice_id, total in rows}

    def get_advance_totals(self, store_id: int, client_id: int) -> tuple[Decimal, Decimal]:
        """Return (advances received, advances consumed by settlements)."""
        received = (
            self.db.query(sa_func.sum(Payment.amount))
            .filter(
                Payment.store_id == store_id,
                Payment.client_id == client_id,
                Payment.kind == PaymentKind.ADVANCE.value,
            )
            .scalar()
        )
        consumed = (
            self.db.query(sa_func.sum(Payment.amount))
            .filter(
                Payment.store_id == store_id,
                Payment.client_id == client_id,
                Payment.kind == PaymentKind.SETTLEMENT.value,
                Payment.method == PaymentMethod.ADVANCE.value,
            )
            .scalar()
        )
        return to_money(received), to_money(consumed)

    def get_store_stats(self, store_id: int) -> dict[str, Any]:
        count, total, last_date = (
            self.db.query(
                sa_func.count(Payment.id),
                sa_func.sum(Payment.amount),
                sa_func.max(Payment.created_at),
            )
            .filter(Payment.store_id == store_id)
            .one()
        )
        advances = (
            self.db.query(sa_func.sum(Payment.amount))
            .filter(
                Payment.store_id == store_id,
                Payment.kind == PaymentKind.ADVANCE.value,
            )
            .scalar()
        )
        last_payment_date: datetime | None = last_date
        return {
            "total_payments": int(count or 0),
            "total_amount": to_money(total),
            "total_advances": to_money(advances),
            "last_payment_date": last_payment_date,
        }
