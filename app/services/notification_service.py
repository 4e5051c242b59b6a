"""
Admin notification feed: records account events for the admin console.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models import AdminNotification, NotificationPriority, User

logger = logging.getLogger(__name__)


def trial_expiring_priority(days_left: int) -> NotificationPriority:
    if days_left <= 1:
        return NotificationPriority.CRITICAL
    if days_left <= 3:
        return NotificationPriority.HIGH
    return NotificationPriority.MEDIUM


class NotificationService:
    """Creates admin notifications. Creation failures are logged and never raised."""

    @staticmethod
    def create_notification(
        db: Session,
        type: str,
        title: str,
        message: str,
        user: Optional[User] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AdminNotification]:
        try:
            notification = AdminNotification(
                type=type,
                title=title,
                message=message,
                user_id=user.id if user else None,
                user_name=user.full_name if user else None,
                user_email=user.email if user else None,
                priority=priority,
                data=data or {},
            )
            db.add(notification)
            db.commit()
            db.refresh(notification)
            logger.info(f"Created notification: {type} - {title}")
            return notification
        except Exception as e:
            logger.error(f"Error creating notification: {e}", exc_info=True)
            db.rollback()
            return None

    @staticmethod
    def notify_user_registration(db: Session, user: User):
        return NotificationService.create_notification(
            db,
            "user_registration",
            "New User Registration",
            f"{user.full_name} ({user.role.value}) has registered an account",
            user=user,
            priority=NotificationPriority.MEDIUM,
            data={"userRole": user.role.value, "registrationDate": datetime.utcnow().isoformat()},
        )

    @staticmethod
    def notify_user_login(db: Session, user: User):
        # Only admin logins are tracked
        if not user.is_admin:
            return None
        return NotificationService.create_notification(
            db,
            "user_login",
            "Admin Login",
            f"{user.full_name} ({user.user_role.value}) logged in",
            user=user,
            priority=NotificationPriority.LOW,
            data={"userRole": user.user_role.value, "loginTime": datetime.utcnow().isoformat()},
        )

    @staticmethod
    def notify_role_change(db: Session, user: User, old_role: str, new_role: str, changed_by: str):
        return NotificationService.create_notification(
            db,
            "role_change",
            "User Role Changed",
            f"{user.full_name}'s role changed from {old_role} to {new_role} by {changed_by}",
            user=user,
            priority=NotificationPriority.HIGH,
            data={
                "oldRole": old_role,
                "newRole": new_role,
                "changedBy": changed_by,
                "changeTime": datetime.utcnow().isoformat(),
            },
        )

    @staticmethod
    def notify_trial_expiring(db: Session, user: User, days_left: int):
        plural = "s" if days_left != 1 else ""
        return NotificationService.create_notification(
            db,
            "trial_expiring",
            "Trial Expiring Soon",
            f"{user.full_name}'s trial expires in {days_left} day{plural}",
            user=user,
            priority=trial_expiring_priority(days_left),
            data={"daysLeft": days_left, "expirationAlert": True},
        )

    @staticmethod
    def notify_trial_expired(db: Session, user: User):
        return NotificationService.create_notification(
            db,
            "trial_expired",
            "Trial Expired",
            f"{user.full_name}'s trial has expired",
            user=user,
            priority=NotificationPriority.CRITICAL,
            data={"expired": True, "expiredAt": datetime.utcnow().isoformat()},
        )

    @staticmethod
    def notify_admin_action(db: Session, action: str, details: str, performed_by: str, target: Optional[User] = None):
        return NotificationService.create_notification(
            db,
            "admin_action",
            f"Admin Action: {action}",
            f"{details} performed by {performed_by}",
            user=target,
            priority=NotificationPriority.MEDIUM,
            data={"action": action, "performedBy": performed_by, "performedAt": datetime.utcnow().isoformat()},
        )

    @staticmethod
    def notify_system_alert(
        db: Session,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ):
        return NotificationService.create_notification(
            db,
            "system_alert",
            title,
            message,
            priority=priority,
            data={"systemAlert": True, "alertTime": datetime.utcnow().isoformat()},
        )
