from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
from app.db import get_db
from app.models import User
from app.schemas import InteractionCreate, InteractionResponse
from app.deps import check_trial_status
from app.services import storage
from app.services.crm_service import CRMService, get_crm_service

router = APIRouter(prefix="/api/interactions", tags=["interactions"])


@router.get("", response_model=List[InteractionResponse])
def list_interactions(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return storage.list_interactions(db, current_user.id)


@router.get("/client/{client_id}", response_model=List[InteractionResponse])
def interactions_for_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    if not storage.get_owned_client(db, client_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return storage.list_interactions_for_client(db, client_id)


@router.post("", response_model=InteractionResponse, status_code=status.HTTP_201_CREATED)
def create_interaction(
    data: InteractionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    """Interactions are append-only"""
    if not storage.get_owned_client(db, data.client_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return crm.create_interaction(current_user, data)
