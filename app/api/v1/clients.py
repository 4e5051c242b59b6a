from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from app.db import get_db
from app.models import Client, ClientStatus, User
from app.schemas import ClientCreate, ClientResponse, ClientUpdate, FollowUpResponse, InteractionResponse
from app.deps import check_trial_status
from app.services import storage
from app.services.crm_service import CRMService, get_crm_service
from app.utils.pagination import paginate
from app.api.v1.common import PageParams, dump, dump_one, not_found, page_response

router = APIRouter(prefix="/clients", tags=["v1-clients"])


def _owned_client(db: Session, client_id: UUID, user: User) -> Client:
    client = storage.get_owned_client(db, client_id, user.id)
    if not client:
        raise not_found("Client")
    return client


@router.get("")
def list_clients(
    pages: PageParams = Depends(),
    search: Optional[str] = Query(None),
    client_status: Optional[ClientStatus] = Query(None, alias="status"),
    sort_by: str = Query("createdAt", alias="sortBy", pattern="^(name|email|company|createdAt|updatedAt)$"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    query = storage.query_clients(
        db,
        current_user.id,
        search=search,
        status=client_status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    items, meta = paginate(query, pages.page, pages.limit)
    return page_response(ClientResponse, items, meta)


@router.get("/{client_id}")
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return {"data": dump_one(ClientResponse, _owned_client(db, client_id, current_user))}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_client(
    data: ClientCreate,
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    client = crm.create_client(current_user, data)
    return {"data": dump_one(ClientResponse, client), "message": "Client created successfully"}


@router.put("/{client_id}")
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    client = crm.update_client(current_user, _owned_client(db, client_id, current_user), data)
    return {"data": dump_one(ClientResponse, client), "message": "Client updated successfully"}


@router.delete("/{client_id}")
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    crm.delete_client(current_user, _owned_client(db, client_id, current_user))
    return {"message": "Client deleted successfully"}


@router.get("/{client_id}/followups")
def client_follow_ups(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    client = _owned_client(db, client_id, current_user)
    return {"data": dump(FollowUpResponse, storage.list_follow_ups_for_client(db, client.id))}


@router.get("/{client_id}/interactions")
def client_interactions(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    client = _owned_client(db, client_id, current_user)
    return {"data": dump(InteractionResponse, storage.list_interactions_for_client(db, client.id))}
