"""Tests for idempotency records and idempotent money-moving endpoints."""

import threading
import time
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from storeledger.core import database as db_module
from storeledger.core.database import Base
from storeledger.core.idempotency import IdempotencyResult, check_idempotency
from storeledger.core.locks import account_locks
from storeledger.main import app
from storeledger.models.idempotency_record import IdempotencyRecord
from storeledger.models.payment import Payment, PaymentKind
from storeledger.models.shared import utc_now
from storeledger.repositories.idempotency_repository import IdempotencyRepository
from storeledger.services.invoice_service import InvoiceService
from storeledger.services.relationship_service import RelationshipService

STORE_ID = 1
CLIENT_ID = 2


@pytest.fixture
def repo(db_session: Session) -> IdempotencyRepository:
    return IdempotencyRepository(db_session)


@pytest.fixture
def funded_account(client: TestClient, accepted_relationship) -> str:
    """Accepted account with one 200 invoice; returns the invoice id."""
    response = client.post(
        f"/v1/stores/{STORE_ID}/invoices",
        json={"client_id": CLIENT_ID, "order_id": "order-1", "amount": "200"},
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestIdempotencyRepository:
    def test_create_and_get_by_key(self, repo: IdempotencyRepository) -> None:
        record = repo.create(
            store_id=STORE_ID,
            idempotency_key="key-1",
            request_method="POST",
            request_path="/v1/stores/1/payments/advance",
        )
        assert record.id is not None
        assert record.response_status is None

        fetched = repo.get_by_key(STORE_ID, "key-1")
        assert fetched is not None
        assert fetched.id == record.id

    def test_keys_are_scoped_per_store(self, repo: IdempotencyRepository) -> None:
        repo.create(
            store_id=STORE_ID,
            idempotency_key="shared",
            request_method="POST",
            request_path="/a",
        )
        assert repo.get_by_key(STORE_ID + 1, "shared") is None

        other = repo.create(
            store_id=STORE_ID + 1,
            idempotency_key="shared",
            request_method="POST",
            request_path="/b",
        )
        assert other.store_id == STORE_ID + 1

    def test_duplicate_key_rejected(self, db_session: Session, repo: IdempotencyRepository) -> None:
        repo.create(
            store_id=STORE_ID, idempotency_key="dup", request_method="POST", request_path="/"
        )
        db_session.add(
            IdempotencyRecord(
                store_id=STORE_ID,
                idempotency_key="dup",
                request_method="POST",
                request_path="/",
            )
        )
        with pytest.raises(Exception):  # noqa: B017
            db_session.commit()
        db_session.rollback()

    def test_update_response_stores_lists(self, repo: IdempotencyRepository) -> None:
        record = repo.create(
            store_id=STORE_ID, idempotency_key="k", request_method="POST", request_path="/"
        )
        repo.update_response(record, 201, [{"id": "a"}, {"id": "b"}])

        fetched = repo.get_by_key(STORE_ID, "k")
        assert fetched is not None
        assert fetched.response_status == 201
        assert fetched.response_body == [{"id": "a"}, {"id": "b"}]

    def test_delete_pending_keeps_completed_keys(self, repo: IdempotencyRepository) -> None:
        done = repo.create(
            store_id=STORE_ID, idempotency_key="done", request_method="POST", request_path="/"
        )
        repo.update_response(done, 201, {"id": "a"})
        repo.create(
            store_id=STORE_ID, idempotency_key="open", request_method="POST", request_path="/"
        )

        assert repo.delete_pending(STORE_ID, "done") is False
        assert repo.delete_pending(STORE_ID, "open") is True
        assert repo.get_by_key(STORE_ID, "done") is not None
        assert repo.get_by_key(STORE_ID, "open") is None

    def test_delete_expired(self, db_session: Session, repo: IdempotencyRepository) -> None:
        old = repo.create(
            store_id=STORE_ID, idempotency_key="old", request_method="POST", request_path="/"
        )
        repo.create(
            store_id=STORE_ID, idempotency_key="new", request_method="POST", request_path="/"
        )
        old.created_at = utc_now() - timedelta(hours=48)
        db_session.commit()

        assert repo.delete_expired(max_age_hours=24) == 1
        assert repo.get_by_key(STORE_ID, "old") is None
        assert repo.get_by_key(STORE_ID, "new") is not None


class TestIdempotentEndpoints:
    def test_advance_replayed(self, client: TestClient, accepted_relationship) -> None:
        headers = {"Idempotency-Key": "adv-1"}
        body = {"client_id": CLIENT_ID, "amount": "100", "method": "cash"}

        first = client.post(f"/v1/stores/{STORE_ID}/payments/advance", json=body, headers=headers)
        second = client.post(f"/v1/stores/{STORE_ID}/payments/advance", json=body, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.headers["Idempotency-Replayed"] == "true"
        assert second.json() == first.json()

        history = client.get(f"/v1/stores/{STORE_ID}/clients/{CLIENT_ID}/payments")
        assert len(history.json()) == 1

    def test_without_key_each_call_moves_money(
        self, client: TestClient, accepted_relationship
    ) -> None:
        body = {"client_id": CLIENT_ID, "amount": "10"}
        client.post(f"/v1/stores/{STORE_ID}/payments/advance", json=body)
        second = client.post(f"/v1/stores/{STORE_ID}/payments/advance", json=body)

        assert "Idempotency-Replayed" not in second.headers
        history = client.get(f"/v1/stores/{STORE_ID}/clients/{CLIENT_ID}/payments")
        assert len(history.json()) == 2

    def test_settlement_replayed(self, client: TestClient, funded_account: str) -> None:
        headers = {"Idempotency-Key": "pay-1"}
        url = f"/v1/stores/{STORE_ID}/invoices/{funded_account}/pay"
        body = {"amount": "150", "method": "cash"}

        first = client.post(url, json=body, headers=headers)
        second = client.post(url, json=body, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["id"] == first.json()["id"]

        account = client.get(f"/v1/stores/{STORE_ID}/clients/{CLIENT_ID}/account").json()
        assert account["outstanding_balance"] == "50.00"

    def test_receipt_replayed(self, client: TestClient, funded_account: str) -> None:
        headers = {"Idempotency-Key": "rcpt-1"}
        url = f"/v1/stores/{STORE_ID}/clients/{CLIENT_ID}/payments/record"

        first = client.post(url, json={"amount": "200"}, headers=headers)
        second = client.post(url, json={"amount": "200"}, headers=headers)

        assert first.status_code == 201
        assert second.headers["Idempotency-Replayed"] == "true"
        assert second.json() == first.json()

    def test_failed_request_is_not_replayed(
        self, client: TestClient, funded_account: str
    ) -> None:
        headers = {"Idempotency-Key": f"retry-{uuid4()}"}
        url = f"/v1/stores/{STORE_ID}/invoices/{funded_account}/pay"

        failed = client.post(url, json={"amount": "50", "method": "advance"}, headers=headers)
        assert failed.status_code == 422

        client.post(
            f"/v1/stores/{STORE_ID}/payments/advance",
            json={"client_id": CLIENT_ID, "amount": "50"},
        )
        retried = client.post(url, json={"amount": "50", "method": "advance"}, headers=headers)
        assert retried.status_code == 201
        assert "Idempotency-Replayed" not in retried.headers

    def test_key_reused_on_other_endpoint_is_rejected(
        self, client: TestClient, funded_account: str
    ) -> None:
        headers = {"Idempotency-Key": "shared-key"}
        advance = client.post(
            f"/v1/stores/{STORE_ID}/payments/advance",
            json={"client_id": CLIENT_ID, "amount": "100"},
            headers=headers,
        )
        assert advance.status_code == 201

        settle = client.post(
            f"/v1/stores/{STORE_ID}/invoices/{funded_account}/pay",
            json={"amount": "50", "method": "cash"},
            headers=headers,
        )

        assert settle.status_code == 422
        assert "Idempotency-Replayed" not in settle.headers
        history = client.get(f"/v1/stores/{STORE_ID}/clients/{CLIENT_ID}/payments").json()
        assert [p["kind"] for p in history] == ["advance"]

    def test_pending_key_is_in_flight(
        self, client: TestClient, repo: IdempotencyRepository, funded_account: str
    ) -> None:
        url = f"/v1/stores/{STORE_ID}/invoices/{funded_account}/pay"
        repo.create(
            store_id=STORE_ID, idempotency_key="busy", request_method="POST", request_path=url
        )

        response = client.post(
            url, json={"amount": "50", "method": "cash"}, headers={"Idempotency-Key": "busy"}
        )

        assert response.status_code == 409
        history = client.get(f"/v1/stores/{STORE_ID}/clients/{CLIENT_ID}/payments")
        assert history.json() == []


def _request(key: str, path: str) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": path,
            "query_string": b"",
            "headers": [(b"idempotency-key", key.encode())],
        }
    )


class TestCheckIdempotency:
    def test_no_header(self, db_session: Session) -> None:
        request = Request({"type": "http", "method": "POST", "path": "/", "headers": []})
        assert check_idempotency(request, db_session, STORE_ID) is None

    def test_first_use_claims_key(self, db_session: Session, repo: IdempotencyRepository) -> None:
        result = check_idempotency(_request("new", "/v1/x"), db_session, STORE_ID)

        assert result == IdempotencyResult(STORE_ID, "new", "POST", "/v1/x")
        record = repo.get_by_key(STORE_ID, "new")
        assert record is not None
        assert record.response_status is None

    def test_lost_insert_race_is_in_flight(
        self, db_session: Session, repo: IdempotencyRepository, monkeypatch
    ) -> None:
        repo.create(
            store_id=STORE_ID, idempotency_key="race", request_method="POST", request_path="/v1/x"
        )
        real_get_by_key = IdempotencyRepository.get_by_key
        lookups: list[str] = []

        def get_by_key(self, store_id: int, key: str):
            lookups.append(key)
            # The first lookup runs before the competing insert committed.
            if len(lookups) == 1:
                return None
            return real_get_by_key(self, store_id, key)

        monkeypatch.setattr(IdempotencyRepository, "get_by_key", get_by_key)

        result = check_idempotency(_request("race", "/v1/x"), db_session, STORE_ID)

        assert isinstance(result, JSONResponse)
        assert result.status_code == 409
        assert lookups == ["race", "race"]


@pytest.fixture
def file_backed_sessions(tmp_path):
    """Point the app at a file-backed database so each request thread has its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'api.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    original = db_module.SessionLocal
    db_module.SessionLocal = factory
    yield factory
    db_module.SessionLocal = original
    engine.dispose()


class TestOverlappingRequests:
    def test_retry_while_first_request_runs_does_not_settle_twice(
        self, file_backed_sessions
    ) -> None:
        db = file_backed_sessions()
        try:
            relationships = RelationshipService(db)
            relationships.invite(STORE_ID, CLIENT_ID)
            relationships.accept(STORE_ID, CLIENT_ID)
            relationships.set_credit(STORE_ID, CLIENT_ID, True, Decimal("500"))
            invoice = InvoiceService(db).create_invoice(
                STORE_ID, CLIENT_ID, "order-1", Decimal("200")
            )
            url = f"/v1/stores/{STORE_ID}/invoices/{invoice.id}/pay"
        finally:
            db.close()

        headers = {"Idempotency-Key": "k1"}
        body = {"amount": "100", "method": "cash"}
        first_status: list[int] = []

        def send_first() -> None:
            first_status.append(TestClient(app).post(url, json=body, headers=headers).status_code)

        # Holding the account lock parks the first request inside the settlement.
        with account_locks.hold(STORE_ID, CLIENT_ID):
            thread = threading.Thread(target=send_first)
            thread.start()

            deadline = time.monotonic() + 10
            while time.monotonic() < deadline:
                check = file_backed_sessions()
                try:
                    if IdempotencyRepository(check).get_by_key(STORE_ID, "k1") is not None:
                        break
                finally:
                    check.close()
                time.sleep(0.02)

            retry = TestClient(app).post(url, json=body, headers=headers)
            assert retry.status_code == 409

        thread.join(timeout=30)
        assert first_status == [201]

        replay = TestClient(app).post(url, json=body, headers=headers)
        assert replay.status_code == 201
        assert replay.headers["Idempotency-Replayed"] == "true"

        db = file_backed_sessions()
        try:
            settlements = (
                db.query(Payment).filter(Payment.kind == PaymentKind.SETTLEMENT.value).count()
            )
            assert settlements == 1
        finally:
            db.close()
