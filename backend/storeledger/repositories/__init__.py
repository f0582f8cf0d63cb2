from storeledger.repositories.idempotency_repository import IdempotencyRepository
from storeledger.repositories.invoice_repository import InvoiceRepository
from storeledger.repositories.payment_repository import PaymentRepository
from storeledger.repositories.relationship_repository import RelationshipRepository

__all__ = [
    "IdempotencyRepository",
    "InvoiceRepository",
    "PaymentRepository",
    "RelationshipRepository",
]
