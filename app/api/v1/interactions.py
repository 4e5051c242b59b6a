from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
from uuid import UUID
from app.db import get_db
from app.models import InteractionType, User
from app.schemas import InteractionCreate, InteractionResponse
from app.deps import check_trial_status
from app.services import storage
from app.services.crm_service import CRMService, get_crm_service
from app.utils.pagination import paginate
from app.api.v1.common import PageParams, dump_one, not_found, page_response

router = APIRouter(prefix="/interactions", tags=["v1-interactions"])


@router.get("")
def list_interactions(
    pages: PageParams = Depends(),
    client_id: Optional[UUID] = Query(None, alias="clientId"),
    interaction_type: Optional[InteractionType] = Query(None, alias="type"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    query = storage.query_interactions(
        db,
        current_user.id,
        client_id=client_id,
        type=interaction_type,
        date_from=date_from,
        date_to=date_to,
    )
    items, meta = paginate(query, pages.page, pages.limit)
    return page_response(InteractionResponse, items, meta)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_interaction(
    data: InteractionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    crm: CRMService = Depends(get_crm_service),
):
    if not storage.get_owned_client(db, data.client_id, current_user.id):
        raise not_found("Client")
    interaction = crm.create_interaction(current_user, data)
    return {"data": dump_one(InteractionResponse, interaction), "message": "Interaction created successfully"}
