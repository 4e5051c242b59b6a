from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime, timedelta
from typing import List
from uuid import UUID
import logging
from app.db import get_db
from app.models import AdminNotification, AccountStatus, User
from app.schemas import (
    AdminUserUpdate, MasterAdminCreate, NotificationResponse, RoleUpdate, TrialUpdate, UserResponse,
)
from app.auth import get_password_hash
from app.deps import require_admin, require_master_admin
from app.exceptions import ConflictError, ValidationError
from app.services import journey_service, storage
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])

NOTIFICATION_LIMIT = 50


class MessageResponse(BaseModel):
    message: str


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = storage.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/users", response_model=List[UserResponse])
def list_users(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return storage.list_users(db)


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: UUID,
    data: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_master_admin),
):
    if current_user.id == user_id and data.role != current_user.user_role:
        raise ValidationError("Cannot demote yourself")

    user = _get_user_or_404(db, user_id)
    old_role = user.user_role.value
    user = storage.set_user_role(db, user, data.role)
    NotificationService.notify_role_change(db, user, old_role, data.role.value, current_user.full_name)
    logger.info(f"Role changed {old_role} -> {data.role.value}", extra={"user_id": str(user.id)})
    return user


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_master_admin),
):
    if current_user.id == user_id:
        raise ValidationError("Cannot delete your own account")
    user = _get_user_or_404(db, user_id)
    storage.delete_user_cascade(db, user)
    return MessageResponse(message="User deleted successfully")


@router.put("/users/{user_id}/trial", response_model=UserResponse)
def update_user_trial(
    user_id: UUID,
    data: TrialUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    user.account_status = data.account_status
    if data.account_status == AccountStatus.TRIAL and data.trial_days:
        user.trial_ends_at = datetime.utcnow() + timedelta(days=data.trial_days)
        user.trial_email_sent = False
    db.commit()
    db.refresh(user)

    if data.account_status == AccountStatus.ACTIVE:
        journey_service.safe_check_milestones(db, user.id, "account_upgraded")
    NotificationService.notify_admin_action(
        db, "Trial Update", f"Account status set to {data.account_status.value}", current_user.full_name, user
    )
    return user


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    data: AdminUserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    updates = data.model_dump(exclude_unset=True)

    password = updates.pop("password", None)
    if password:
        user.password_hash = get_password_hash(password)

    if updates.get("email"):
        updates["email"] = updates["email"].lower()
        existing = storage.get_user_by_email(db, updates["email"])
        if existing and existing.id != user.id:
            raise ConflictError("Email is already in use", details={"field": "email"})

    for field, value in updates.items():
        if value is None and field != "company":
            continue
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


@router.post("/create-master", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_master_admin(
    data: MasterAdminCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_master_admin),
):
    if storage.get_user_by_email(db, data.email):
        raise ConflictError("Email already registered", details={"field": "email"})
    user = storage.create_master_admin(
        db,
        email=data.email.lower(),
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        company=data.company,
    )
    NotificationService.notify_admin_action(
        db, "Create Master Admin", f"Master admin {user.email} created", current_user.full_name, user
    )
    return user


# Notifications

@router.get("/notifications", response_model=List[NotificationResponse])
def list_notifications(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return db.query(AdminNotification).order_by(
        AdminNotification.created_at.desc()
    ).limit(NOTIFICATION_LIMIT).all()


@router.patch("/notifications/read-all", response_model=MessageResponse)
def mark_all_notifications_read(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    db.query(AdminNotification).filter(
        AdminNotification.is_read.is_(False)
    ).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return MessageResponse(message="All notifications marked as read")


@router.patch("/notifications/{notification_id}/read", response_model=MessageResponse)
def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    notification = db.query(AdminNotification).filter(AdminNotification.id == notification_id).first()
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.is_read = True
    db.commit()
    return MessageResponse(message="Notification marked as read")


@router.delete("/notifications/{notification_id}", response_model=MessageResponse)
def delete_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    notification = db.query(AdminNotification).filter(AdminNotification.id == notification_id).first()
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    db.delete(notification)
    db.commit()
    return MessageResponse(message="Notification deleted")
