from fastapi import Depends, HTTPException, status, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.db import get_db
from app.auth import decode_access_token
from app.exceptions import TrialExpiredError
from app.models import User, UserRole, AccountStatus
from app.services.email_service import EmailService
from app.services.trial_monitor import expire_user
from app.services.trial_service import validate_trial_access, should_send_warning
from app.services.webhook_service import WebhookService, get_webhook_service
from app.utils.cookie_auth import get_token_from_cookie, set_session_cookie
from typing import Optional
from uuid import UUID
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current user from the session token (bearer header or session cookie)"""
    from_cookie = False
    if credentials:
        token = credentials.credentials
    else:
        token = get_token_from_cookie(request)
        from_cookie = True

    if not token:
        raise _unauthorized("Authentication required")

    payload = decode_access_token(token)
    if payload is None:
        raise _unauthorized("Invalid or expired session")

    try:
        user_id = UUID(str(payload.get("sub")))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid or expired session")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise _unauthorized("User not found")

    # Sliding session: every authenticated cookie request renews the cookie
    if from_cookie:
        set_session_cookie(response, str(user.id))

    request.state.user_id = str(user.id)
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Get current active user"""
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated"
        )
    return current_user


def require_admin(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.user_role not in (UserRole.ADMIN, UserRole.MASTER_ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def require_master_admin(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.user_role != UserRole.MASTER_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Master admin access required")
    return current_user


def check_trial_status(
    response: Response,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    webhooks: WebhookService = Depends(get_webhook_service),
) -> User:
    """
    Gate for trial-restricted routes.

    Lapsed trials are flipped to expired and rejected with TRIAL_EXPIRED. Valid
    trials near the end get the one-time warning email. Trial state is exposed in
    X-Trial-* response headers.
    """
    info = validate_trial_access(current_user)

    if not info["is_valid"]:
        if current_user.account_status == AccountStatus.TRIAL and info["account_status"] == AccountStatus.EXPIRED.value:
            try:
                expire_user(db, current_user, webhooks)
            except Exception as e:
                logger.error(f"Trial expiry side effects failed: {e}", exc_info=True, extra={"user_id": str(current_user.id)})
                db.rollback()
        raise TrialExpiredError(
            info["message"],
            account_status=info["account_status"],
            days_remaining=info["days_remaining"] or 0,
        )

    if should_send_warning(current_user):
        try:
            if EmailService.send_trial_warning_email(
                current_user.email, current_user.first_name, info["days_remaining"]
            ):
                current_user.trial_email_sent = True
                db.commit()
        except Exception as e:
            logger.error(f"Trial warning email failed: {e}", extra={"user_id": str(current_user.id)})
            db.rollback()

    response.headers["X-Trial-Status"] = info["account_status"]
    if info["days_remaining"] is not None:
        response.headers["X-Trial-Days-Remaining"] = str(info["days_remaining"])
    if current_user.trial_ends_at is not None and current_user.account_status == AccountStatus.TRIAL:
        response.headers["X-Trial-Expires"] = current_user.trial_ends_at.isoformat()
    response.headers["X-Trial-Valid"] = "true"
    return current_user
