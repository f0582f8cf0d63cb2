"""Ledger error taxonomy.

Every failure the ledger surfaces is a local validation failure raised to the
caller. Each error carries the HTTP status code the routers translate it to.
None of them are retried by the ledger.
"""

from typing import ClassVar


class LedgerError(ValueError):
    """Base class for all ledger errors."""

    status_code: ClassVar[int] = 400
    code: ClassVar[str] = "ledger_error"


class LedgerValidationError(LedgerError):
    """Invalid input: non-positive amount, past due date, negative limit."""

    code = "validation_error"


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class DuplicateInvitation(LedgerError):
    status_code = 409
    code = "duplicate_invitation"


class InvalidTransition(LedgerError):
    status_code = 409
    code = "invalid_transition"


class NotAccepted(LedgerError):
    status_code = 409
    code = "not_accepted"


class CreditNotAuthorized(LedgerError):
    status_code = 403
    code = "credit_not_authorized"


class AlreadyPaid(LedgerError):
    status_code = 409
    code = "already_paid"


class InsufficientAdvanceBalance(LedgerError):
    status_code = 422
    code = "insufficient_advance_balance"


class OverpaymentRejected(LedgerError):
    status_code = 422
    code = "overpayment_rejected"
