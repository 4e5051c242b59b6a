"""
Periodic trial sweep: warns users whose trial ends in two to three days and
expires trials that have lapsed. Run by the worker loop on a fixed interval.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.models import AccountStatus, User
from app.services.email_service import EmailService
from app.services.notification_service import NotificationService
from app.services.trial_service import TRIAL_WARNING_DAYS, get_days_remaining
from app.services.webhook_service import WebhookService, webhook_service

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "lock:trial-sweep"


def get_users_needing_trial_warning(db: Session, now: Optional[datetime] = None) -> List[User]:
    now = now or datetime.utcnow()
    window_start = now + timedelta(days=TRIAL_WARNING_DAYS)
    window_end = now + timedelta(days=TRIAL_WARNING_DAYS + 1)
    return (
        db.query(User)
        .filter(
            User.account_status == AccountStatus.TRIAL,
            User.trial_email_sent.is_(False),
            User.trial_ends_at >= window_start,
            User.trial_ends_at <= window_end,
        )
        .all()
    )


def get_users_with_expired_trials(db: Session, now: Optional[datetime] = None) -> List[User]:
    now = now or datetime.utcnow()
    return (
        db.query(User)
        .filter(User.account_status == AccountStatus.TRIAL, User.trial_ends_at <= now)
        .all()
    )


def _trial_event_data(user: User, days_remaining: int) -> Dict:
    return {
        "userId": str(user.id),
        "email": user.email,
        "accountStatus": user.account_status.value,
        "trialEndsAt": user.trial_ends_at.isoformat() if user.trial_ends_at else None,
        "daysRemaining": days_remaining,
    }


def send_trial_warnings(db: Session, webhooks: WebhookService, now: Optional[datetime] = None) -> int:
    sent = 0
    for user in get_users_needing_trial_warning(db, now):
        try:
            days_remaining = get_days_remaining(user.trial_ends_at, now)
            if not EmailService.send_trial_warning_email(user.email, user.first_name, days_remaining):
                logger.warning("Failed to send trial warning email", extra={"user_id": str(user.id)})
                continue
            user.trial_email_sent = True
            db.commit()
            NotificationService.notify_trial_expiring(db, user, days_remaining)
            webhooks.trigger(db, "user.trial_expiring", _trial_event_data(user, days_remaining), user.id)
            sent += 1
            logger.info("Trial warning sent", extra={"user_id": str(user.id)})
        except Exception as e:
            logger.error(f"Error sending trial warning: {e}", exc_info=True, extra={"user_id": str(user.id)})
            db.rollback()
    return sent


def expire_user(db: Session, user: User, webhooks: WebhookService) -> None:
    """
    Flip a lapsed trial to expired, then email the user, notify admins and fire
    `user.trial_expired`. Used by both the sweep and the request gate.
    """
    user.account_status = AccountStatus.EXPIRED
    db.commit()
    EmailService.send_trial_expired_email(user.email, user.first_name)
    NotificationService.notify_trial_expired(db, user)
    webhooks.trigger(db, "user.trial_expired", _trial_event_data(user, 0), user.id)


def expire_trials(db: Session, webhooks: WebhookService, now: Optional[datetime] = None) -> int:
    expired = 0
    for user in get_users_with_expired_trials(db, now):
        try:
            expire_user(db, user, webhooks)
            expired += 1
            logger.info("Trial expired", extra={"user_id": str(user.id)})
        except Exception as e:
            logger.error(f"Error expiring trial: {e}", exc_info=True, extra={"user_id": str(user.id)})
            db.rollback()
    return expired


def run_trial_check(
    db: Session,
    webhooks: Optional[WebhookService] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """One sweep cycle. Per-user failures are logged and skipped."""
    webhooks = webhooks or webhook_service
    logger.info("Running trial status check")
    result = {
        "warnings_sent": send_trial_warnings(db, webhooks, now),
        "expired": expire_trials(db, webhooks, now),
    }
    logger.info(
        f"Trial status check completed: {result['warnings_sent']} warnings, {result['expired']} expired"
    )
    return result
