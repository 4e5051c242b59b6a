from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
from uuid import UUID
from app.db import get_db
from app.models import FollowUp, FollowUpStatus, Priority, User
from app.schemas import FollowUpCreate, FollowUpResponse, FollowUpUpdate
from app.deps import check_trial_status
from app.services import storage
from app.services.crm_service import CRMService, get_crm_service
from app.utils.pagination import paginate
from app.api.v1.common import PageParams, dump_one, not_found, page_response

router = APIRouter(prefix="/followups", tags=["v1-followups"])


def _owned_follow_up(db: Session, follow_up_id: UUID, user: User) -> FollowUp:
    follow_up = storage.get_owned_follow_up(db, follow_up_id, user.id)
    if not follow_up:
        raise not_found("Follow-up")
    return follow_up


@router.get("")
def list_follow_ups(
    pages: PageParams = Depends(),
    follow_up_status: Optional[FollowUpStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = Query(None),
    client_id: Optional[UUID] = Query(None, alias="clientId"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    sort_by: str = Query("dueDate", alias="sortBy", pattern="^(dueDate|title|priority|status|createdAt)$"),
    sort_order: str = Query("asc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    """`status=overdue` matches pending follow-ups whose due date has passed."""
    query = storage.query_follow_ups(
        db,
        current_user.id,
        status=follow_up_status.value if follow_up_status else None,
        priority=priority,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    items, meta = paginate(query, pages.page, pages.limit)
    return page_response(FollowUpResponse, items, meta)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_follow_up(
    data: FollowUpCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    if not storage.get_owned_client(db, data.client_id, current_user.id):
        raise not_found("Client")
    follow_up = crm.create_follow_up(current_user, data)
    return {"data": dump_one(FollowUpResponse, follow_up), "message": "Follow-up created successfully"}


@router.put("/{follow_up_id}")
def update_follow_up(
    follow_up_id: UUID,
    data: FollowUpUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    follow_up = crm.update_follow_up(current_user, _owned_follow_up(db, follow_up_id, current_user), data)
    return {"data": dump_one(FollowUpResponse, follow_up), "message": "Follow-up updated successfully"}


@router.delete("/{follow_up_id}")
def delete_follow_up(
    follow_up_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    crm.delete_follow_up(current_user, _owned_follow_up(db, follow_up_id, current_user))
    return {"message": "Follow-up deleted successfully"}
