"""Tests for the client/store relationship lifecycle and credit settings."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from storeledger.core.cache import account_cache
from storeledger.core.errors import (
    DuplicateInvitation,
    InvalidTransition,
    LedgerValidationError,
    NotAccepted,
    NotFound,
)
from storeledger.models.relationship import ClientStoreRelationship, RelationshipStatus
from storeledger.repositories.relationship_repository import RelationshipRepository
from storeledger.services.account_service import AccountService
from storeledger.services.relationship_service import RelationshipService

STORE_ID = 1
CLIENT_ID = 2


@pytest.fixture
def service(db_session: Session) -> RelationshipService:
    return RelationshipService(db_session)


class TestInvite:
    def test_invite_creates_pending_relationship(self, service: RelationshipService) -> None:
        relationship = service.invite(STORE_ID, CLIENT_ID, "client@example.com")

        assert relationship.store_id == STORE_ID
        assert relationship.client_id == CLIENT_ID
        assert relationship.client_email == "client@example.com"
        assert relationship.status == RelationshipStatus.PENDING.value
        assert relationship.allow_credit is False
        assert relationship.credit_limit is None
        assert relationship.responded_at is None
        assert relationship.created_at.tzinfo is not None

    def test_invite_twice_raises_duplicate(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        with pytest.raises(DuplicateInvitation):
            service.invite(STORE_ID, CLIENT_ID)

    def test_invite_accepted_client_raises_duplicate(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        with pytest.raises(DuplicateInvitation):
            service.invite(STORE_ID, CLIENT_ID)

    def test_reinvite_after_reject_is_invalid(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.reject(STORE_ID, CLIENT_ID)
        with pytest.raises(InvalidTransition):
            service.invite(STORE_ID, CLIENT_ID)

    def test_same_client_at_two_stores(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.invite(STORE_ID + 1, CLIENT_ID)

        stores = service.list_for_client(CLIENT_ID)
        assert {r.store_id for r in stores} == {STORE_ID, STORE_ID + 1}


class TestRespond:
    def test_accept_pending(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        relationship = service.accept(STORE_ID, CLIENT_ID)

        assert relationship.status == RelationshipStatus.ACCEPTED.value
        assert relationship.responded_at is not None

    def test_reject_pending(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        relationship = service.reject(STORE_ID, CLIENT_ID)

        assert relationship.status == RelationshipStatus.REJECTED.value
        assert relationship.responded_at is not None

    def test_accept_twice_is_invalid(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        with pytest.raises(InvalidTransition):
            service.accept(STORE_ID, CLIENT_ID)

    def test_reject_after_accept_is_invalid(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        with pytest.raises(InvalidTransition):
            service.reject(STORE_ID, CLIENT_ID)

    def test_accept_after_reject_is_invalid(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.reject(STORE_ID, CLIENT_ID)
        with pytest.raises(InvalidTransition):
            service.accept(STORE_ID, CLIENT_ID)

    def test_accept_unknown_raises_not_found(self, service: RelationshipService) -> None:
        with pytest.raises(NotFound):
            service.accept(STORE_ID, CLIENT_ID)


class TestTransitionRepository:
    def test_compare_and_set_only_from_expected_status(self, db_session: Session) -> None:
        repo = RelationshipRepository(db_session)
        repo.create(STORE_ID, CLIENT_ID)

        assert repo.transition(
            STORE_ID, CLIENT_ID, RelationshipStatus.PENDING, RelationshipStatus.ACCEPTED
        )
        assert not repo.transition(
            STORE_ID, CLIENT_ID, RelationshipStatus.PENDING, RelationshipStatus.REJECTED
        )

        db_session.expire_all()
        relationship = repo.get(STORE_ID, CLIENT_ID)
        assert relationship is not None
        assert relationship.status == RelationshipStatus.ACCEPTED.value


class TestSetCredit:
    def test_set_credit_with_limit(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        relationship = service.set_credit(STORE_ID, CLIENT_ID, True, Decimal("500"))

        assert relationship.allow_credit is True
        assert relationship.credit_limit == Decimal("500.00")

    def test_set_credit_without_limit(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        relationship = service.set_credit(STORE_ID, CLIENT_ID, True, None)

        assert relationship.allow_credit is True
        assert relationship.credit_limit is None

    def test_negative_limit_rejected(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        with pytest.raises(LedgerValidationError):
            service.set_credit(STORE_ID, CLIENT_ID, True, Decimal("-1"))

    def test_set_credit_on_pending_raises_not_accepted(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        with pytest.raises(NotAccepted):
            service.set_credit(STORE_ID, CLIENT_ID, True, Decimal("100"))

    def test_set_credit_on_rejected_raises_not_accepted(
        self, service: RelationshipService
    ) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.reject(STORE_ID, CLIENT_ID)
        with pytest.raises(NotAccepted):
            service.set_credit(STORE_ID, CLIENT_ID, True, Decimal("100"))

    def test_set_credit_invalidates_cached_account(
        self, db_session: Session, service: RelationshipService, enabled_account_cache
    ) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        service.accept(STORE_ID, CLIENT_ID)
        AccountService(db_session).get_account(STORE_ID, CLIENT_ID)
        assert (STORE_ID, CLIENT_ID) in account_cache

        service.set_credit(STORE_ID, CLIENT_ID, True, Decimal("250"))

        assert (STORE_ID, CLIENT_ID) not in account_cache
        account = AccountService(db_session).get_account(STORE_ID, CLIENT_ID)
        assert account.available_credit == Decimal("250.00")


class TestListing:
    def test_list_for_store_filters_by_status(self, service: RelationshipService) -> None:
        service.invite(STORE_ID, 10)
        service.invite(STORE_ID, 11)
        service.invite(STORE_ID, 12)
        service.accept(STORE_ID, 11)
        service.reject(STORE_ID, 12)

        assert len(service.list_for_store(STORE_ID)) == 3
        accepted = service.list_for_store(STORE_ID, status=RelationshipStatus.ACCEPTED)
        assert [r.client_id for r in accepted] == [11]

    def test_count_for_store(self, db_session: Session, service: RelationshipService) -> None:
        service.invite(STORE_ID, 10)
        service.invite(STORE_ID, 11)
        service.invite(STORE_ID + 1, 10)

        repo = RelationshipRepository(db_session)
        assert repo.count_for_store(STORE_ID) == 2
        assert repo.count_for_store(STORE_ID, RelationshipStatus.ACCEPTED) == 0

    def test_composite_key(self, db_session: Session, service: RelationshipService) -> None:
        service.invite(STORE_ID, CLIENT_ID)
        row = db_session.get(ClientStoreRelationship, (STORE_ID, CLIENT_ID))
        assert row is not None
