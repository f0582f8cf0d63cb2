"""Client/store relationship API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from storeledger.core.database import get_db
from storeledger.core.errors import LedgerError
from storeledger.models.relationship import ClientStoreRelationship, RelationshipStatus
from storeledger.repositories.relationship_repository import RelationshipRepository
from storeledger.schemas.relationship import (
    RelationshipCreditUpdate,
    RelationshipInvite,
    RelationshipResponse,
)
from storeledger.services.relationship_service import RelationshipService

router = APIRouter()


@router.post(
    "/stores/{store_id}/clients/invite",
    response_model=RelationshipResponse,
    status_code=201,
    summary="Invite client",
    responses={
        409: {"description": "Client already invited, accepted, or rejected"},
        422: {"description": "Validation error"},
    },
)
async def invite_client(
    store_id: int,
    data: RelationshipInvite,
    db: Session = Depends(get_db),
) -> ClientStoreRelationship:
    """Invite a client to buy from the store. Creates a pending relationship."""
    service = RelationshipService(db)
    try:
        return service.invite(store_id, data.client_id, data.client_email)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.get(
    "/stores/{store_id}/clients",
    response_model=list[RelationshipResponse],
    summary="List store clients",
)
async def list_store_clients(
    store_id: int,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: RelationshipStatus | None = None,
    db: Session = Depends(get_db),
) -> list[ClientStoreRelationship]:
    """List a store's clients and invitations, newest first."""
    repo = RelationshipRepository(db)
    response.headers["X-Total-Count"] = str(repo.count_for_store(store_id, status))
    return RelationshipService(db).list_for_store(store_id, status=status, skip=skip, limit=limit)


@router.get(
    "/stores/{store_id}/clients/{client_id}",
    response_model=RelationshipResponse,
    summary="Get client relationship",
    responses={404: {"description": "Relationship not found"}},
)
async def get_relationship(
    store_id: int,
    client_id: int,
    db: Session = Depends(get_db),
) -> ClientStoreRelationship:
    service = RelationshipService(db)
    try:
        return service.get(store_id, client_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.put(
    "/stores/{store_id}/clients/{client_id}/accept",
    response_model=RelationshipResponse,
    summary="Accept invitation",
    responses={
        404: {"description": "Relationship not found"},
        409: {"description": "Invitation already answered"},
    },
)
async def accept_invitation(
    store_id: int,
    client_id: int,
    db: Session = Depends(get_db),
) -> ClientStoreRelationship:
    """Accept a pending invitation (client side)."""
    service = RelationshipService(db)
    try:
        return service.accept(store_id, client_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.put(
    "/stores/{store_id}/clients/{client_id}/reject",
    response_model=RelationshipResponse,
    summary="Reject invitation",
    responses={
        404: {"description": "Relationship not found"},
        409: {"description": "Invitation already answered"},
    },
)
async def reject_invitation(
    store_id: int,
    client_id: int,
    db: Session = Depends(get_db),
) -> ClientStoreRelationship:
    """Reject a pending invitation (client side). Rejection is final."""
    service = RelationshipService(db)
    try:
        return service.reject(store_id, client_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.put(
    "/stores/{store_id}/clients/{client_id}/credit",
    response_model=RelationshipResponse,
    summary="Update client credit",
    responses={
        404: {"description": "Relationship not found"},
        409: {"description": "Relationship not accepted"},
        422: {"description": "Validation error"},
    },
)
async def update_client_credit(
    store_id: int,
    client_id: int,
    data: RelationshipCreditUpdate,
    db: Session = Depends(get_db),
) -> ClientStoreRelationship:
    """Allow or revoke credit and set the credit limit (omit the limit for unlimited)."""
    service = RelationshipService(db)
    try:
        return service.set_credit(store_id, client_id, data.allow_credit, data.credit_limit)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None


@router.get(
    "/clients/{client_id}/stores",
    response_model=list[RelationshipResponse],
    summary="List client stores",
)
async def list_client_stores(
    client_id: int,
    status: RelationshipStatus | None = None,
    db: Session = Depends(get_db),
) -> list[ClientStoreRelationship]:
    """List the stores a client is related to, including pending invitations."""
    return RelationshipService(db).list_for_client(client_id, status=status)
