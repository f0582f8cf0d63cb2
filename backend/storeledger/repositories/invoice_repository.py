from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storeledger.models.invoice import Invoice, InvoiceStatus
from storeledger.models.shared import utc_now


# Concurrent creates can race for the same number; each loser retries with a fresh one.
MAX_NUMBERING_ATTEMPTS = 20


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def _generate_invoice_number(self) -> str:
        """Generate a unique invoice number."""
        today = utc_now().strftime("%Y%m%d")
        prefix = f"INV-{today}-"

        # Highest number for today; longer suffixes sort after "9999"
        result = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(
                func.length(Invoice.invoice_number).desc(),
                Invoice.invoice_number.desc(),
            )
            .first()
        )

        if result:
            # Extract number from INV-YYYYMMDD-XXXX format
            try:
                new_num = int(result[0].split("-")[-1]) + 1
            except (ValueError, IndexError):
                new_num = 1
        else:
            new_num = 1

        return f"{prefix}{new_num:04d}"

    def get_by_id(self, invoice_id: UUID, store_id: int | None = None) -> Invoice | None:
        query = self.db.query(Invoice).filter(Invoice.id == invoice_id)
        if store_id is not None:
            query = query.filter(Invoice.store_id == store_id)
        return query.first()

    def get_for_relationship(
        self,
        store_id: int,
        client_id: int,
        status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        query = self.db.query(Invoice).filter(
            Invoice.store_id == store_id,
            Invoice.client_id == client_id,
        )
        if status:
            query = query.filter(Invoice.status == status.value)
        return query.order_by(Invoice.created_at.desc()).all()

    def get_unpaid_oldest_first(self, store_id: int, client_id: int) -> list[Invoice]:
        """Unpaid invoices ordered by due date, then creation, ascending."""
        return (
            self.db.query(Invoice)
            .filter(
                Invoice.store_id == store_id,
                Invoice.client_id == client_id,
                Invoice.status == InvoiceStatus.UNPAID.value,
            )
            .order_by(Invoice.due_date.asc(), Invoice.created_at.asc())
            .all()
        )

    def get_all_for_store(
        self,
        store_id: int,
        skip: int = 0,
        limit: int = 100,
        status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        query = self.db.query(Invoice).filter(Invoice.store_id == store_id)
        if status:
            query = query.filter(Invoice.status == status.value)
        return query.order_by(Invoice.created_at.desc()).offset(skip).limit(limit).all()

    def count_for_store(self, store_id: int, status: InvoiceStatus | None = None) -> int:
        query = self.db.query(Invoice).filter(Invoice.store_id == store_id)
        if status:
            query = query.filter(Invoice.status == status.value)
        return query.count()

    def get_unpaid_for_client(self, client_id: int) -> list[Invoice]:
        """Unpaid invoices for a client across every store."""
        return (
            self.db.query(Invoice)
            .filter(
                Invoice.client_id == client_id,
                Invoice.status == InvoiceStatus.UNPAID.value,
            )
            .order_by(Invoice.due_date.asc())
            .all()
        )

    def create(
        self,
        store_id: int,
        client_id: int,
        order_id: str,
        amount: Decimal,
        due_date: datetime,
        credit_funded: bool = True,
    ) -> Invoice:
        attempts = 0
        while True:
            attempts += 1
            invoice_number = self._generate_invoice_number()
            invoice = Invoice(
                invoice_number=invoice_number,
                store_id=store_id,
                client_id=client_id,
                order_id=order_id,
                amount=amount,
                status=InvoiceStatus.UNPAID.value,
                credit_funded=credit_funded,
                due_date=due_date,
            )
            self.db.add(invoice)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if attempts >= MAX_NUMBERING_ATTEMPTS or not self._number_taken(invoice_number):
                    raise
                continue
            self.db.refresh(invoice)
            return invoice

    def _number_taken(self, invoice_number: str) -> bool:
        return (
            self.db.query(Invoice.id).filter(Invoice.invoice_number == invoice_number).first()
            is not None
        )

    def mark_paid(
        self,
        invoice_id: UUID,
        paid_date: datetime,
        reference: str | None,
        commit: bool = True,
    ) -> bool:
        """Compare-and-set UNPAID -> PAID. Returns False if the invoice was already paid."""
        result = self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.UNPAID.value)
            .values(
                status=InvoiceStatus.PAID.value,
                paid_date=paid_date,
                payment_reference=reference,
                updated_at=paid_date,
            )
            .execution_options(synchronize_session=False)
        )
        if commit:
            self.db.commit()
        else:
            self.db.flush()
        return bool(result.rowcount)
