from storeledger.schemas.account import (
    ClientAccountResponse,
    ClientWithAccountResponse,
    CreditCheckResponse,
)
from storeledger.schemas.invoice import (
    InvoiceCreate,
    InvoiceMarkPaid,
    InvoiceResponse,
    OverdueInvoiceResponse,
)
from storeledger.schemas.payment import (
    AdvanceCheckResponse,
    AdvanceCreate,
    AdvanceSummaryResponse,
    InvoicePay,
    PaymentResponse,
    PaymentStatsResponse,
    ReceiptCreate,
)
from storeledger.schemas.relationship import (
    RelationshipCreditUpdate,
    RelationshipInvite,
    RelationshipResponse,
)

__all__ = [
    "AdvanceCheckResponse",
    "AdvanceCreate",
    "AdvanceSummaryResponse",
    "ClientAccountResponse",
    "ClientWithAccountResponse",
    "CreditCheckResponse",
    "InvoiceCreate",
    "InvoiceMarkPaid",
    "InvoicePay",
    "InvoiceResponse",
    "OverdueInvoiceResponse",
    "PaymentResponse",
    "PaymentStatsResponse",
    "ReceiptCreate",
    "RelationshipCreditUpdate",
    "RelationshipInvite",
    "RelationshipResponse",
]
