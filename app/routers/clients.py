from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging
from app.db import get_db
from app.models import Client, User
from app.schemas import (
    ClientCreate, ClientResponse, ClientUpdate, EmailTemplateInfo, InteractionResponse,
    SendEmailRequest, SendEmailResponse,
)
from app.deps import check_trial_status
from app.rate_limit import limiter, EMAIL_RATE_LIMIT
from app.services import storage
from app.services.cache_service import CacheService, get_cache_service
from app.services.crm_service import CRMService, get_crm_service
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/clients", tags=["clients"])
templates_router = APIRouter(prefix="/api/email", tags=["email"])


def get_client_for_user(db: Session, client_id: UUID, user: User) -> Client:
    """Load a client, answering 404 when missing and 403 when owned by someone else."""
    client = storage.get_client(db, client_id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    if client.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return client


@router.get("", response_model=List[ClientResponse])
def list_clients(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
):
    return cache.get_or_set(
        "clients",
        current_user.id,
        lambda: [
            ClientResponse.model_validate(c).model_dump(mode="json", by_alias=True)
            for c in storage.list_clients(db, current_user.id)
        ],
        CacheService.CLIENTS_TTL,
    )


@router.get("/search", response_model=List[ClientResponse])
def search_clients(
    q: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    if not q or not q.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query is required")
    return storage.search_clients(db, current_user.id, q.strip())


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return get_client_for_user(db, client_id, current_user)


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(
    data: ClientCreate,
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    return crm.create_client(current_user, data)


@router.put("/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    client = get_client_for_user(db, client_id, current_user)
    return crm.update_client(current_user, client, data)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    client = get_client_for_user(db, client_id, current_user)
    crm.delete_client(current_user, client)


@router.post("/{client_id}/send-email", response_model=SendEmailResponse)
@limiter.limit(EMAIL_RATE_LIMIT)
def send_client_email(
    client_id: UUID,
    data: SendEmailRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    """Send a templated or free-form email to the client and log it"""
    client = get_client_for_user(db, client_id, current_user)
    interaction = crm.send_client_email(current_user, client, data)
    return SendEmailResponse(
        success=True,
        message="Email sent successfully",
        interaction=InteractionResponse.model_validate(interaction),
    )


@templates_router.get("/templates", response_model=List[EmailTemplateInfo])
def list_email_templates(current_user: User = Depends(check_trial_status)):
    return EmailService.list_client_templates()
