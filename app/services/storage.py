"""
Owner-scoped queries for users, clients, follow-ups, interactions and webhooks.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, desc, func, or_
from sqlalchemy.orm import Query, Session

from app.auth import get_password_hash
from app.models import (
    AccountStatus,
    AdminNotification,
    Client,
    FollowUp,
    FollowUpStatus,
    Interaction,
    User,
    UserJourneyMilestone,
    UserJourneyProgress,
    UserRole,
    Webhook,
    WebhookDelivery,
)

logger = logging.getLogger(__name__)

USER_PERMISSIONS = ["read_own", "write_own"]
ADMIN_PERMISSIONS = USER_PERMISSIONS + ["view_users", "update_users", "modify_trials", "view_all_data"]
MASTER_ADMIN_PERMISSIONS = ADMIN_PERMISSIONS + [
    "create_users",
    "delete_users",
    "manage_user_roles",
    "upgrade_accounts",
    "system_settings",
    "view_logs",
]

ROLE_PERMISSIONS = {
    UserRole.USER: USER_PERMISSIONS,
    UserRole.ADMIN: ADMIN_PERMISSIONS,
    UserRole.MASTER_ADMIN: MASTER_ADMIN_PERMISSIONS,
}

CLIENT_SORT_COLUMNS = {
    "name": Client.name,
    "email": Client.email,
    "company": Client.company,
    "createdAt": Client.created_at,
    "updatedAt": Client.updated_at,
}

FOLLOW_UP_SORT_COLUMNS = {
    "dueDate": FollowUp.due_date,
    "title": FollowUp.title,
    "priority": FollowUp.priority,
    "status": FollowUp.status,
    "createdAt": FollowUp.created_at,
}


def _ordered(query: Query, column, sort_order: str) -> Query:
    return query.order_by(asc(column) if sort_order == "asc" else desc(column))


# Users

def get_user(db: Session, user_id) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.created_at.desc()).all()


def set_user_role(db: Session, user: User, role: UserRole) -> User:
    user.user_role = role
    user.permissions = list(ROLE_PERMISSIONS[role])
    db.commit()
    db.refresh(user)
    return user


def create_master_admin(db: Session, **fields) -> User:
    """Create an active master admin with the full permission set. `password` is hashed."""
    password = fields.pop("password")
    user = User(
        **fields,
        password_hash=get_password_hash(password),
        user_role=UserRole.MASTER_ADMIN,
        permissions=list(MASTER_ADMIN_PERMISSIONS),
        account_status=AccountStatus.ACTIVE,
        trial_ends_at=None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def delete_user_cascade(db: Session, user: User) -> None:
    """Remove a user and everything they own, children first."""
    user_id = user.id
    webhook_ids = [w.id for w in db.query(Webhook.id).filter(Webhook.user_id == user_id)]
    if webhook_ids:
        db.query(WebhookDelivery).filter(WebhookDelivery.webhook_id.in_(webhook_ids)).delete(synchronize_session=False)
    db.query(Webhook).filter(Webhook.user_id == user_id).delete(synchronize_session=False)
    db.query(Interaction).filter(Interaction.user_id == user_id).delete(synchronize_session=False)
    db.query(FollowUp).filter(FollowUp.user_id == user_id).delete(synchronize_session=False)
    db.query(Client).filter(Client.user_id == user_id).delete(synchronize_session=False)
    db.query(UserJourneyMilestone).filter(UserJourneyMilestone.user_id == user_id).delete(synchronize_session=False)
    db.query(UserJourneyProgress).filter(UserJourneyProgress.user_id == user_id).delete(synchronize_session=False)
    db.query(AdminNotification).filter(AdminNotification.user_id == user_id).update(
        {"user_id": None}, synchronize_session=False
    )
    db.delete(user)
    db.commit()
    logger.info("Deleted user and owned data", extra={"user_id": str(user_id)})


# Clients

def get_client(db: Session, client_id) -> Optional[Client]:
    return db.query(Client).filter(Client.id == client_id).first()


def get_owned_client(db: Session, client_id, user_id) -> Optional[Client]:
    return db.query(Client).filter(Client.id == client_id, Client.user_id == user_id).first()


def list_clients(db: Session, user_id) -> List[Client]:
    return db.query(Client).filter(Client.user_id == user_id).order_by(Client.created_at.desc()).all()


def _client_search_filter(term: str):
    pattern = f"%{term.lower()}%"
    return or_(
        func.lower(Client.name).like(pattern),
        func.lower(Client.email).like(pattern),
        func.lower(Client.company).like(pattern),
    )


def search_clients(db: Session, user_id, term: str, limit: Optional[int] = None) -> List[Client]:
    query = (
        db.query(Client)
        .filter(Client.user_id == user_id, _client_search_filter(term))
        .order_by(Client.name.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def query_clients(
    db: Session,
    user_id,
    search: Optional[str] = None,
    status: Optional[str] = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> Query:
    query = db.query(Client).filter(Client.user_id == user_id)
    if search:
        query = query.filter(_client_search_filter(search))
    if status:
        query = query.filter(Client.status == status)
    column = CLIENT_SORT_COLUMNS.get(sort_by, Client.created_at)
    return _ordered(query, column, sort_order)


def delete_client_cascade(db: Session, client: Client) -> None:
    db.query(FollowUp).filter(FollowUp.client_id == client.id).delete(synchronize_session=False)
    db.query(Interaction).filter(Interaction.client_id == client.id).delete(synchronize_session=False)
    db.delete(client)
    db.commit()


# Follow-ups

def get_follow_up(db: Session, follow_up_id) -> Optional[FollowUp]:
    return db.query(FollowUp).filter(FollowUp.id == follow_up_id).first()


def get_owned_follow_up(db: Session, follow_up_id, user_id) -> Optional[FollowUp]:
    return db.query(FollowUp).filter(FollowUp.id == follow_up_id, FollowUp.user_id == user_id).first()


def list_follow_ups(db: Session, user_id) -> List[FollowUp]:
    return db.query(FollowUp).filter(FollowUp.user_id == user_id).order_by(FollowUp.due_date.asc()).all()


def list_follow_ups_for_client(db: Session, client_id) -> List[FollowUp]:
    return db.query(FollowUp).filter(FollowUp.client_id == client_id).order_by(FollowUp.due_date.asc()).all()


def list_upcoming_follow_ups(db: Session, user_id, now: Optional[datetime] = None) -> List[FollowUp]:
    now = now or datetime.utcnow()
    return (
        db.query(FollowUp)
        .filter(
            FollowUp.user_id == user_id,
            FollowUp.status == FollowUpStatus.PENDING,
            FollowUp.due_date >= now,
        )
        .order_by(FollowUp.due_date.asc())
        .all()
    )


def list_overdue_follow_ups(db: Session, user_id, now: Optional[datetime] = None) -> List[FollowUp]:
    now = now or datetime.utcnow()
    return (
        db.query(FollowUp)
        .filter(
            FollowUp.user_id == user_id,
            FollowUp.status == FollowUpStatus.PENDING,
            FollowUp.due_date < now,
        )
        .order_by(FollowUp.due_date.asc())
        .all()
    )


def query_follow_ups(
    db: Session,
    user_id,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    client_id=None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_by: str = "dueDate",
    sort_order: str = "asc",
) -> Query:
    query = db.query(FollowUp).filter(FollowUp.user_id == user_id)
    if status == FollowUpStatus.OVERDUE.value:
        query = query.filter(FollowUp.status == FollowUpStatus.PENDING, FollowUp.due_date < datetime.utcnow())
    elif status:
        query = query.filter(FollowUp.status == status)
    if priority:
        query = query.filter(FollowUp.priority == priority)
    if client_id:
        query = query.filter(FollowUp.client_id == client_id)
    if date_from:
        query = query.filter(FollowUp.due_date >= date_from)
    if date_to:
        query = query.filter(FollowUp.due_date <= date_to)
    column = FOLLOW_UP_SORT_COLUMNS.get(sort_by, FollowUp.due_date)
    return _ordered(query, column, sort_order)


# Interactions

def list_interactions(db: Session, user_id) -> List[Interaction]:
    return db.query(Interaction).filter(Interaction.user_id == user_id).order_by(Interaction.date.desc()).all()


def list_interactions_for_client(db: Session, client_id) -> List[Interaction]:
    return (
        db.query(Interaction)
        .filter(Interaction.client_id == client_id)
        .order_by(Interaction.date.desc())
        .all()
    )


def query_interactions(
    db: Session,
    user_id,
    client_id=None,
    type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Query:
    query = db.query(Interaction).filter(Interaction.user_id == user_id)
    if client_id:
        query = query.filter(Interaction.client_id == client_id)
    if type:
        query = query.filter(Interaction.type == type)
    if date_from:
        query = query.filter(Interaction.date >= date_from)
    if date_to:
        query = query.filter(Interaction.date <= date_to)
    return query.order_by(Interaction.date.desc())


# Webhooks

def list_webhooks(db: Session, user_id) -> List[Webhook]:
    return db.query(Webhook).filter(Webhook.user_id == user_id).order_by(Webhook.created_at.desc()).all()


def get_owned_webhook(db: Session, webhook_id, user_id) -> Optional[Webhook]:
    return db.query(Webhook).filter(Webhook.id == webhook_id, Webhook.user_id == user_id).first()


def query_deliveries(db: Session, webhook_id) -> Query:
    return (
        db.query(WebhookDelivery)
        .filter(WebhookDelivery.webhook_id == webhook_id)
        .order_by(WebhookDelivery.created_at.desc())
    )


# Search

def search_follow_ups_query(db: Session, user_id, term: str) -> Query:
    pattern = f"%{term.lower()}%"
    return (
        db.query(FollowUp)
        .filter(
            FollowUp.user_id == user_id,
            or_(func.lower(FollowUp.title).like(pattern), func.lower(FollowUp.description).like(pattern)),
        )
        .order_by(FollowUp.due_date.asc())
    )


def search_interactions_query(db: Session, user_id, term: str) -> Query:
    pattern = f"%{term.lower()}%"
    return (
        db.query(Interaction)
        .filter(Interaction.user_id == user_id, func.lower(Interaction.notes).like(pattern))
        .order_by(Interaction.date.desc())
    )
