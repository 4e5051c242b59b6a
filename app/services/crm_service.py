"""
Client, follow-up and interaction mutations with their side effects:
per-user cache invalidation, milestone checks and webhook fan-out.
"""
import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.exceptions import ExternalServiceError, ValidationError
from app.models import Client, FollowUp, FollowUpStatus, Interaction, InteractionType, User
from app.schemas import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    FollowUpCreate,
    FollowUpResponse,
    FollowUpUpdate,
    InteractionCreate,
    InteractionResponse,
    SendEmailRequest,
)
from app.services import journey_service, storage
from app.services.cache_service import CacheService, get_cache_service
from app.services.email_service import CLIENT_EMAIL_TEMPLATES, EmailService
from app.services.webhook_service import WebhookService, get_webhook_service

logger = logging.getLogger(__name__)


def _event_data(schema, obj) -> Dict[str, Any]:
    return schema.model_validate(obj).model_dump(mode="json", by_alias=True)


class CRMService:
    """Write path for CRM entities owned by a single user."""

    def __init__(self, db: Session, cache: CacheService, webhooks: WebhookService):
        self.db = db
        self.cache = cache
        self.webhooks = webhooks

    def _after_write(self, user: User, *milestones: str) -> None:
        self.cache.invalidate_user(user.id)
        if milestones:
            journey_service.safe_check_milestones(self.db, user.id, *milestones)

    # Clients

    def create_client(self, user: User, data: ClientCreate) -> Client:
        client = Client(user_id=user.id, **data.model_dump())
        self.db.add(client)
        self.db.commit()
        self.db.refresh(client)
        logger.info("Client created", extra={"user_id": str(user.id)})

        self._after_write(user, *journey_service.CLIENT_MILESTONES)
        self.webhooks.trigger(self.db, "client.created", _event_data(ClientResponse, client), user.id)
        return client

    def update_client(self, user: User, client: Client, data: ClientUpdate) -> Client:
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(client, field, value)
        client.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(client)

        self._after_write(user)
        self.webhooks.trigger(self.db, "client.updated", _event_data(ClientResponse, client), user.id)
        return client

    def delete_client(self, user: User, client: Client) -> None:
        data = _event_data(ClientResponse, client)
        storage.delete_client_cascade(self.db, client)
        logger.info("Client deleted", extra={"user_id": str(user.id)})

        self._after_write(user)
        self.webhooks.trigger(self.db, "client.deleted", data, user.id)

    # Follow-ups

    def create_follow_up(self, user: User, data: FollowUpCreate) -> FollowUp:
        values = data.model_dump()
        if values["status"] == FollowUpStatus.OVERDUE:
            values["status"] = FollowUpStatus.PENDING
        follow_up = FollowUp(user_id=user.id, **values)
        if follow_up.status == FollowUpStatus.COMPLETED:
            follow_up.completed_at = datetime.utcnow()
        self.db.add(follow_up)
        self.db.commit()
        self.db.refresh(follow_up)

        self._after_write(user, *journey_service.FOLLOW_UP_MILESTONES)
        self.webhooks.trigger(self.db, "followup.created", _event_data(FollowUpResponse, follow_up), user.id)
        return follow_up

    def update_follow_up(self, user: User, follow_up: FollowUp, data: FollowUpUpdate) -> FollowUp:
        updates = data.model_dump(exclude_unset=True)
        was_completed = follow_up.status == FollowUpStatus.COMPLETED

        if updates.get("status") == FollowUpStatus.OVERDUE:
            updates["status"] = FollowUpStatus.PENDING
        for field, value in updates.items():
            setattr(follow_up, field, value)

        if "status" in updates:
            if follow_up.status == FollowUpStatus.COMPLETED and not was_completed:
                follow_up.completed_at = datetime.utcnow()
            elif follow_up.status != FollowUpStatus.COMPLETED:
                follow_up.completed_at = None
        follow_up.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(follow_up)

        self._after_write(user)
        data = _event_data(FollowUpResponse, follow_up)
        self.webhooks.trigger(self.db, "followup.updated", data, user.id)
        if follow_up.status == FollowUpStatus.COMPLETED and not was_completed:
            self.webhooks.trigger(self.db, "followup.completed", data, user.id)
        return follow_up

    def delete_follow_up(self, user: User, follow_up: FollowUp) -> None:
        self.db.delete(follow_up)
        self.db.commit()
        self._after_write(user)

    # Interactions

    def create_interaction(self, user: User, data: InteractionCreate) -> Interaction:
        values = data.model_dump()
        if values.get("date") is None:
            values.pop("date", None)
        interaction = Interaction(user_id=user.id, **values)
        self.db.add(interaction)
        self.db.commit()
        self.db.refresh(interaction)

        self._after_write(user, *journey_service.INTERACTION_MILESTONES)
        self.webhooks.trigger(
            self.db, "interaction.created", _event_data(InteractionResponse, interaction), user.id
        )
        return interaction

    # Email

    def send_client_email(self, user: User, client: Client, data: SendEmailRequest) -> Interaction:
        """Send an email to the client and log it as an `email` interaction."""
        if not client.email:
            raise ValidationError("Client does not have an email address")

        if data.template_id:
            if data.template_id not in CLIENT_EMAIL_TEMPLATES:
                raise ValidationError(f"Unknown email template: {data.template_id}")
            subject, html = EmailService.render_client_template(data.template_id, {
                "clientName": client.name,
                "message": data.message,
                "senderName": data.sender_name or user.full_name,
                "topic": data.topic or "our recent discussion",
                "projectName": data.project_name or "your project",
            })
            if data.subject:
                subject = data.subject
        else:
            subject = data.subject
            html = EmailService.render_template(
                "<div style=\"font-family: Arial, sans-serif;\">{{ message }}</div>",
                {"message": data.message},
            )

        success, detail = EmailService.send_email(
            to=[client.email], subject=subject, html_content=html, return_details=True
        )
        if not success:
            raise ExternalServiceError("email", detail)

        interaction = Interaction(
            user_id=user.id,
            client_id=client.id,
            type=InteractionType.EMAIL,
            notes=f"Email sent: {subject}",
        )
        client.last_contact_date = datetime.utcnow()
        self.db.add(interaction)
        self.db.commit()
        self.db.refresh(interaction)

        self._after_write(user, "first_email_sent", *journey_service.INTERACTION_MILESTONES)
        self.webhooks.trigger(
            self.db, "interaction.created", _event_data(InteractionResponse, interaction), user.id
        )
        return interaction


def get_crm_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
    webhooks: WebhookService = Depends(get_webhook_service),
) -> CRMService:
    return CRMService(db, cache, webhooks)

