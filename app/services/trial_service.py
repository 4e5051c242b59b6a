"""
Trial rules shared by the request gate and the background sweep.
"""
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.models import AccountStatus, User

TRIAL_DURATION_DAYS = 7
TRIAL_WARNING_DAYS = 2

EXPIRED_MESSAGE = "Your free trial has expired. Please upgrade your account to continue using Tracker Suite."


def calculate_trial_end_date(start: Optional[datetime] = None) -> datetime:
    return (start or datetime.utcnow()) + timedelta(days=TRIAL_DURATION_DAYS)


def get_days_remaining(trial_ends_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    if trial_ends_at is None:
        return 0
    now = now or datetime.utcnow()
    days = (trial_ends_at - now).total_seconds() / 86400
    return max(0, math.ceil(days))


def is_trial_expired(trial_ends_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if trial_ends_at is None:
        return False
    return (now or datetime.utcnow()) > trial_ends_at


def should_send_warning(user: User, now: Optional[datetime] = None) -> bool:
    if user.account_status != AccountStatus.TRIAL or user.trial_email_sent or user.trial_ends_at is None:
        return False
    if is_trial_expired(user.trial_ends_at, now):
        return False
    return get_days_remaining(user.trial_ends_at, now) <= TRIAL_WARNING_DAYS


def validate_trial_access(user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Decide whether `user` may use gated features, with the message shown when not."""
    status = user.account_status
    if status == AccountStatus.ACTIVE:
        return {"is_valid": True, "message": None, "days_remaining": None, "account_status": status.value}

    if status == AccountStatus.CANCELLED:
        return {
            "is_valid": False,
            "message": "Your account has been cancelled. Please contact support to reactivate.",
            "days_remaining": 0,
            "account_status": status.value,
        }

    if status == AccountStatus.EXPIRED:
        return {
            "is_valid": False,
            "message": EXPIRED_MESSAGE,
            "days_remaining": 0,
            "account_status": status.value,
        }

    if is_trial_expired(user.trial_ends_at, now):
        return {
            "is_valid": False,
            "message": EXPIRED_MESSAGE,
            "days_remaining": 0,
            "account_status": AccountStatus.EXPIRED.value,
        }

    return {
        "is_valid": True,
        "message": None,
        "days_remaining": get_days_remaining(user.trial_ends_at, now),
        "account_status": status.value,
    }
