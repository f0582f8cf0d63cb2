"""Relationship service: invitation lifecycle and credit settings."""

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storeledger.core.cache import account_cache
from storeledger.core.errors import (
    DuplicateInvitation,
    InvalidTransition,
    LedgerValidationError,
    NotAccepted,
    NotFound,
)
from storeledger.core.money import to_money
from storeledger.models.relationship import ClientStoreRelationship, RelationshipStatus
from storeledger.repositories.relationship_repository import RelationshipRepository

logger = logging.getLogger(__name__)


class RelationshipService:
    """Service owning client/store relationship rows."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RelationshipRepository(db)

    def invite(
        self, store_id: int, client_id: int, client_email: str | None = None
    ) -> ClientStoreRelationship:
        """Create a PENDING relationship from a store invitation."""
        existing = self.repo.get(store_id, client_id)
        if existing is not None:
            if existing.status == RelationshipStatus.REJECTED.value:
                raise InvalidTransition(
                    f"Client {client_id} rejected store {store_id}; re-invitation is not supported"
                )
            raise DuplicateInvitation(
                f"Client {client_id} already has a {existing.status} relationship "
                f"with store {store_id}"
            )

        try:
            relationship = self.repo.create(store_id, client_id, client_email)
        except IntegrityError:
            self.db.rollback()
            raise DuplicateInvitation(
                f"Client {client_id} was already invited by store {store_id}"
            ) from None
        logger.info("Store %s invited client %s", store_id, client_id)
        return relationship

    def accept(self, store_id: int, client_id: int) -> ClientStoreRelationship:
        return self._respond(store_id, client_id, RelationshipStatus.ACCEPTED)

    def reject(self, store_id: int, client_id: int) -> ClientStoreRelationship:
        return self._respond(store_id, client_id, RelationshipStatus.REJECTED)

    def _respond(
        self, store_id: int, client_id: int, to_status: RelationshipStatus
    ) -> ClientStoreRelationship:
        relationship = self.get(store_id, client_id)
        if relationship.status != RelationshipStatus.PENDING.value:
            raise InvalidTransition(
                f"Cannot move relationship from {relationship.status} to {to_status.value}"
            )

        if not self.repo.transition(
            store_id, client_id, RelationshipStatus.PENDING, to_status
        ):
            # Lost the compare-and-set to a concurrent response.
            current = self.get(store_id, client_id)
            raise InvalidTransition(
                f"Cannot move relationship from {current.status} to {to_status.value}"
            )

        logger.info(
            "Client %s %s invitation from store %s", client_id, to_status.value, store_id
        )
        return self.get(store_id, client_id)

    def set_credit(
        self,
        store_id: int,
        client_id: int,
        allow_credit: bool,
        credit_limit: Decimal | None = None,
    ) -> ClientStoreRelationship:
        """Update credit authorization. Existing unpaid invoices are left untouched."""
        if credit_limit is not None:
            credit_limit = to_money(credit_limit)
            if credit_limit < 0:
                raise LedgerValidationError("Credit limit must be zero or positive")

        relationship = self.get(store_id, client_id)
        if relationship.status != RelationshipStatus.ACCEPTED.value:
            raise NotAccepted(
                f"Relationship between store {store_id} and client {client_id} "
                f"is {relationship.status}, not accepted"
            )

        relationship = self.repo.update_credit(relationship, allow_credit, credit_limit)
        account_cache.invalidate(store_id, client_id)
        logger.info(
            "Store %s set credit for client %s: allow=%s limit=%s",
            store_id,
            client_id,
            allow_credit,
            credit_limit,
        )
        return relationship

    def get(self, store_id: int, client_id: int) -> ClientStoreRelationship:
        relationship = self.repo.get(store_id, client_id)
        if relationship is None:
            raise NotFound(f"No relationship between store {store_id} and client {client_id}")
        return relationship

    def require_accepted(
        self, store_id: int, client_id: int, for_update: bool = False
    ) -> ClientStoreRelationship:
        """Load a relationship that must be ACCEPTED before any ledger write."""
        relationship = self.repo.get(store_id, client_id, for_update=for_update)
        if relationship is None:
            raise NotFound(f"No relationship between store {store_id} and client {client_id}")
        if relationship.status != RelationshipStatus.ACCEPTED.value:
            raise NotAccepted(
                f"Relationship between store {store_id} and client {client_id} "
                f"is {relationship.status}, not accepted"
            )
        return relationship

    def list_for_store(
        self,
        store_id: int,
        status: RelationshipStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ClientStoreRelationship]:
        return self.repo.get_all_for_store(store_id, skip=skip, limit=limit, status=status)

    def list_for_client(
        self, client_id: int, status: RelationshipStatus | None = None
    ) -> list[ClientStoreRelationship]:
        return self.repo.get_all_for_client(client_id, status=status)
