from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
from app.db import get_db
from app.models import FollowUp, User
from app.schemas import FollowUpCreate, FollowUpResponse, FollowUpUpdate
from app.deps import check_trial_status
from app.services import storage
from app.services.cache_service import CacheService, get_cache_service
from app.services.crm_service import CRMService, get_crm_service

router = APIRouter(prefix="/api/follow-ups", tags=["follow-ups"])


def _dump(rows) -> list:
    return [FollowUpResponse.model_validate(f).model_dump(mode="json", by_alias=True) for f in rows]


def get_follow_up_for_user(db: Session, follow_up_id: UUID, user: User) -> FollowUp:
    follow_up = storage.get_follow_up(db, follow_up_id)
    if not follow_up:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Follow-up not found")
    if follow_up.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return follow_up


@router.get("", response_model=List[FollowUpResponse])
def list_follow_ups(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
):
    return cache.get_or_set(
        "follow-ups",
        current_user.id,
        lambda: _dump(storage.list_follow_ups(db, current_user.id)),
        CacheService.FOLLOW_UPS_TTL,
        "all",
    )


@router.get("/upcoming", response_model=List[FollowUpResponse])
def upcoming_follow_ups(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
):
    return cache.get_or_set(
        "follow-ups",
        current_user.id,
        lambda: _dump(storage.list_upcoming_follow_ups(db, current_user.id)),
        CacheService.FOLLOW_UPS_TTL,
        "upcoming",
    )


@router.get("/overdue", response_model=List[FollowUpResponse])
def overdue_follow_ups(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
):
    return cache.get_or_set(
        "follow-ups",
        current_user.id,
        lambda: _dump(storage.list_overdue_follow_ups(db, current_user.id)),
        CacheService.FOLLOW_UPS_TTL,
        "overdue",
    )


@router.get("/client/{client_id}", response_model=List[FollowUpResponse])
def follow_ups_for_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    if not storage.get_owned_client(db, client_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return storage.list_follow_ups_for_client(db, client_id)


@router.post("", response_model=FollowUpResponse, status_code=status.HTTP_201_CREATED)
def create_follow_up(
    data: FollowUpCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    if not storage.get_owned_client(db, data.client_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return crm.create_follow_up(current_user, data)


@router.put("/{follow_up_id}", response_model=FollowUpResponse)
def update_follow_up(
    follow_up_id: UUID,
    data: FollowUpUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    follow_up = get_follow_up_for_user(db, follow_up_id, current_user)
    return crm.update_follow_up(current_user, follow_up, data)


@router.delete("/{follow_up_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_follow_up(
    follow_up_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    follow_up = get_follow_up_for_user(db, follow_up_id, current_user)
    crm.delete_follow_up(current_user, follow_up)
