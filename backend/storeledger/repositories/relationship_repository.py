"""Client/store relationship repository for data access."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from storeledger.core.locks import lock_for_update
from storeledger.models.relationship import ClientStoreRelationship, RelationshipStatus
from storeledger.models.shared import utc_now


class RelationshipRepository:
    """Repository for ClientStoreRelationship model."""

    def __init__(self, db: Session):
        self.db = db

    def get(
        self, store_id: int, client_id: int, for_update: bool = False
    ) -> ClientStoreRelationship | None:
        query = self.db.query(ClientStoreRelationship).filter(
            ClientStoreRelationship.store_id == store_id,
            ClientStoreRelationship.client_id == client_id,
        )
        if for_update:
            query = lock_for_update(query)
        return query.first()

    def get_all_for_store(
        self,
        store_id: int,
        skip: int = 0,
        limit: int = 100,
        status: RelationshipStatus | None = None,
    ) -> list[ClientStoreRelationship]:
        query = self.db.query(ClientStoreRelationship).filter(
            ClientStoreRelationship.store_id == store_id
        )
        if status:
            query = query.filter(ClientStoreRelationship.status == status.value)
        return (
            query.order_by(ClientStoreRelationship.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_for_store(self, store_id: int, status: RelationshipStatus | None = None) -> int:
        query = self.db.query(ClientStoreRelationship).filter(
            ClientStoreRelationship.store_id == store_id
        )
        if status:
            query = query.filter(ClientStoreRelationship.status == status.value)
        return query.count()

    def get_all_for_client(
        self, client_id: int, status: RelationshipStatus | None = None
    ) -> list[ClientStoreRelationship]:
        query = self.db.query(ClientStoreRelationship).filter(
            ClientStoreRelationship.client_id == client_id
        )
        if status:
            query = query.filter(ClientStoreRelationship.status == status.value)
        return query.order_by(ClientStoreRelationship.created_at.desc()).all()

    def create(
        self, store_id: int, client_id: int, client_email: str | None = None
    ) -> ClientStoreRelationship:
        relationship = ClientStoreRelationship(
            store_id=store_id,
            client_id=client_id,
            client_email=client_email,
            status=RelationshipStatus.PENDING.value,
            allow_credit=False,
        )
        self.db.add(relationship)
        self.db.commit()
        self.db.refresh(relationship)
        return relationship

    def transition(
        self,
        store_id: int,
        client_id: int,
        from_status: RelationshipStatus,
        to_status: RelationshipStatus,
        responded_at: datetime | None = None,
    ) -> bool:
        """Compare-and-set the status column. Returns False if the row was not in ``from_status``."""
        now = utc_now()
        result = self.db.execute(
            update(ClientStoreRelationship)
            .where(
                ClientStoreRelationship.store_id == store_id,
                ClientStoreRelationship.client_id == client_id,
                ClientStoreRelationship.status == from_status.value,
            )
            .values(status=to_status.value, responded_at=responded_at or now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return bool(result.rowcount)

    def update_credit(
        self,
        relationship: ClientStoreRelationship,
        allow_credit: bool,
        credit_limit: Decimal | None,
    ) -> ClientStoreRelationship:
        relationship.allow_credit = allow_credit  # type: ignore[assignment]
        relationship.credit_limit = credit_limit  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(relationship)
        return relationship
