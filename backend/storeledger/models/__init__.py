from storeledger.models.idempotency_record import IdempotencyRecord
from storeledger.models.invoice import Invoice, InvoiceStatus
from storeledger.models.payment import Payment, PaymentKind, PaymentMethod
from storeledger.models.relationship import ClientStoreRelationship, RelationshipStatus

__all__ = [
    "ClientStoreRelationship",
    "IdempotencyRecord",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentKind",
    "PaymentMethod",
    "RelationshipStatus",
]
