"""Repository for IdempotencyRecord CRUD operations."""

from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from storeledger.models.idempotency_record import IdempotencyRecord
from storeledger.models.shared import generate_uuid, utc_now


class IdempotencyRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, store_id: int, idempotency_key: str) -> IdempotencyRecord | None:
        return (
            self.db.query(IdempotencyRecord)
            .filter(
                IdempotencyRecord.store_id == store_id,
                IdempotencyRecord.idempotency_key == idempotency_key,
            )
            .first()
        )

    def create(
        self,
        *,
        store_id: int,
        idempotency_key: str,
        request_method: str,
        request_path: str,
        response_status: int | None = None,
        response_body: Any = None,
    ) -> IdempotencyRecord:
        record = IdempotencyRecord(
            id=generate_uuid(),
            store_id=store_id,
            idempotency_key=idempotency_key,
            request_method=request_method,
            request_path=request_path,
            response_status=response_status,
            response_body=response_body,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def update_response(
        self,
        record: IdempotencyRecord,
        response_status: int,
        response_body: Any,
    ) -> IdempotencyRecord:
        record.response_status = response_status  # type: ignore[assignment]
        record.response_body = response_body  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete_pending(self, store_id: int, idempotency_key: str) -> bool:
        """Delete a key that has no stored response yet. Completed keys are kept."""
        count = (
            self.db.query(IdempotencyRecord)
            .filter(
                IdempotencyRecord.store_id == store_id,
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.response_status.is_(None),
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return bool(count)

    def delete_expired(self, max_age_hours: int = 24) -> int:
        cutoff = utc_now() - timedelta(hours=max_age_hours)
        count = (
            self.db.query(IdempotencyRecord)
            .filter(IdempotencyRecord.created_at < cutoff)
            .delete()
        )
        self.db.commit()
        return int(count)
