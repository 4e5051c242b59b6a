from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID
import logging
import secrets
from app.db import get_db
from app.models import User, Webhook
from app.schemas import (
    WebhookCreate, WebhookDeliveryResponse, WebhookResponse, WebhookTestResult, WebhookUpdate,
)
from app.deps import check_trial_status
from app.services import storage
from app.services.webhook_service import WEBHOOK_EVENTS, WebhookService, get_webhook_service
from app.utils.pagination import paginate
from app.api.v1.common import PageParams, dump, dump_one, not_found, page_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["v1-webhooks"])

SECRET_BYTES = 32


def _owned_webhook(db: Session, webhook_id: UUID, user: User) -> Webhook:
    webhook = storage.get_owned_webhook(db, webhook_id, user.id)
    if not webhook:
        raise not_found("Webhook")
    return webhook


@router.get("")
def list_webhooks(
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    webhooks = storage.list_webhooks(db, current_user.id)
    return {"data": dump(WebhookResponse, webhooks), "count": len(webhooks)}


@router.get("/events")
def list_events(current_user: User = Depends(check_trial_status)):
    events = [{"name": name, "description": description} for name, description in WEBHOOK_EVENTS.items()]
    return {"data": events, "count": len(events)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_webhook(
    data: WebhookCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    fields = data.model_dump()
    if not fields.get("secret"):
        fields["secret"] = secrets.token_hex(SECRET_BYTES)

    webhook = Webhook(user_id=current_user.id, **fields)
    db.add(webhook)
    db.commit()
    db.refresh(webhook)
    logger.info("Webhook created", extra={"user_id": str(current_user.id), "webhook_id": str(webhook.id)})
    return {"data": dump_one(WebhookResponse, webhook), "message": "Webhook created successfully"}


@router.get("/{webhook_id}")
def get_webhook(
    webhook_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    return {"data": dump_one(WebhookResponse, _owned_webhook(db, webhook_id, current_user))}


@router.put("/{webhook_id}")
def update_webhook(
    webhook_id: UUID,
    data: WebhookUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    webhook = _owned_webhook(db, webhook_id, current_user)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field != "secret":
            continue
        setattr(webhook, field, value)
    db.commit()
    db.refresh(webhook)
    return {"data": dump_one(WebhookResponse, webhook), "message": "Webhook updated successfully"}


@router.delete("/{webhook_id}")
def delete_webhook(
    webhook_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    webhook = _owned_webhook(db, webhook_id, current_user)
    db.delete(webhook)
    db.commit()
    logger.info("Webhook deleted", extra={"user_id": str(current_user.id), "webhook_id": str(webhook_id)})
    return {"message": "Webhook deleted successfully"}


@router.post("/{webhook_id}/test")
def test_webhook(
    webhook_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    webhooks: WebhookService = Depends(get_webhook_service),
):
    """Deliver a `webhook.test` event synchronously; no retry is scheduled."""
    webhook = _owned_webhook(db, webhook_id, current_user)
    result = webhooks.test_webhook(db, webhook)
    return {
        "message": "Test webhook sent",
        "result": WebhookTestResult.model_validate(result).model_dump(mode="json", by_alias=True),
    }


@router.get("/{webhook_id}/deliveries")
def list_deliveries(
    webhook_id: UUID,
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    webhook = _owned_webhook(db, webhook_id, current_user)
    items, meta = paginate(storage.query_deliveries(db, webhook.id), pages.page, pages.limit)
    return page_response(WebhookDeliveryResponse, items, meta)
