"""Idempotency support for money-moving endpoints.

Recording an advance or settling an invoice is not naturally idempotent: a
network retry of the same request would move money twice. Clients send an
``Idempotency-Key`` header, scoped to the store. The first request with a
key claims it by inserting a pending record; the endpoint then either stores
its response with ``record_idempotency_response`` or, when it fails with a
ledger error, frees the key with ``release_idempotency_key`` so the client
can retry.

A later request with the same key gets:

- the stored response, with ``Idempotency-Replayed: true``, once the first
  request has completed;
- 409 while the first request is still running;
- 422 if the key was first used for a different method or path.
"""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storeledger.models.idempotency_record import IdempotencyRecord
from storeledger.repositories.idempotency_repository import IdempotencyRepository

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


@dataclass
class IdempotencyResult:
    """A key claimed by the current request, to be recorded or released."""

    store_id: int
    key: str
    method: str
    path: str


def _answer_existing(record: IdempotencyRecord, method: str, path: str) -> JSONResponse:
    if record.request_method != method or record.request_path != path:
        logger.warning(
            "Idempotency key %s for store %s reused on %s %s (first used on %s %s)",
            record.idempotency_key,
            record.store_id,
            method,
            path,
            record.request_method,
            record.request_path,
        )
        return JSONResponse(
            status_code=422,
            content={"detail": "Idempotency-Key was already used for a different request"},
        )

    if record.response_status is None:
        return JSONResponse(
            status_code=409,
            content={"detail": "A request with this Idempotency-Key is still in progress"},
        )

    response = JSONResponse(
        content=record.response_body,
        status_code=int(record.response_status),
    )
    response.headers["Idempotency-Replayed"] = "true"
    return response


def check_idempotency(
    request: Request,
    db: Session,
    store_id: int,
) -> JSONResponse | IdempotencyResult | None:
    """Claim the request's ``Idempotency-Key`` or answer for an earlier use of it.

    Returns:
        - ``None`` if no ``Idempotency-Key`` header is present (no idempotency).
        - A ``JSONResponse`` to send as-is when the key was seen before: the
          replayed response, 409 while in flight, or 422 on a mismatched request.
        - An ``IdempotencyResult`` when this request now owns the key.
    """
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if not key:
        return None

    method = request.method
    path = request.url.path
    repo = IdempotencyRepository(db)

    existing = repo.get_by_key(store_id, key)
    if existing is not None:
        return _answer_existing(existing, method, path)

    try:
        repo.create(
            store_id=store_id,
            idempotency_key=key,
            request_method=method,
            request_path=path,
        )
    except IntegrityError:
        # Another request claimed the key between the lookup and the insert.
        db.rollback()
        existing = repo.get_by_key(store_id, key)
        if existing is None:
            raise
        return _answer_existing(existing, method, path)

    return IdempotencyResult(store_id=store_id, key=key, method=method, path=path)


def record_idempotency_response(
    db: Session,
    result: IdempotencyResult,
    status: int,
    body: Any,
) -> None:
    """Persist the endpoint response so subsequent calls return the cached result."""
    repo = IdempotencyRepository(db)
    record = repo.get_by_key(result.store_id, result.key)
    if record is not None:
        repo.update_response(record, status, body)


def release_idempotency_key(db: Session, result: IdempotencyResult | None) -> None:
    """Free a claimed key after the request failed, so a retry runs again."""
    if result is None:
        return
    db.rollback()
    IdempotencyRepository(db).delete_pending(result.store_id, result.key)
