"""Credit authorization gate for credit-funded orders.

Order placement calls ``can_afford_credit_order`` and, on ``True``, creates
the invoice with ``InvoiceService.create_invoice``. The two calls are not
atomic: concurrent orders for the same client can each pass the gate and
together exceed the credit limit. That over-extension is tolerated and
corrected after the fact rather than locking across both services.
"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from storeledger.core.money import to_money
from storeledger.models.relationship import RelationshipStatus
from storeledger.repositories.relationship_repository import RelationshipRepository
from storeledger.services.account_service import AccountService

logger = logging.getLogger(__name__)


def can_afford_credit_order(
    db: Session, store_id: int, client_id: int, order_amount: Decimal
) -> bool:
    """Decide whether a client may place a credit order of ``order_amount``. No side effects."""
    relationship = RelationshipRepository(db).get(store_id, client_id)
    if relationship is None or relationship.status != RelationshipStatus.ACCEPTED.value:
        return False
    if not relationship.allow_credit:
        return False

    # Authorizes new debt, so it reads the ledger directly rather than a cached view.
    account = AccountService(db).get_account(store_id, client_id, use_cache=False)
    if account.credit_unlimited:
        return True

    approved = account.available_credit is not None and account.available_credit >= to_money(
        order_amount
    )
    if not approved:
        logger.info(
            "Credit order of %s denied for store %s client %s (available %s)",
            order_amount,
            store_id,
            client_id,
            account.available_credit,
        )
    return approved
