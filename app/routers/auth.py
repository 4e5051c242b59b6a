from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
from pydantic import BaseModel
import logging
from app.db import get_db
from app.models import User, AccountRole, AccountStatus, UserRole
from app.schemas import (
    AuthResponse, LoginRequest, PasswordChange, ProfileUpdate, RegisterRequest, TrialInfo, UserResponse,
)
from app.auth import verify_password, get_password_hash
from app.deps import check_trial_status, get_current_user
from app.exceptions import ConflictError, ValidationError
from app.rate_limit import limiter, AUTH_RATE_LIMIT
from app.services import journey_service, storage
from app.services.cache_service import CacheService, get_cache_service
from app.services.notification_service import NotificationService
from app.services.trial_service import calculate_trial_end_date, validate_trial_access
from app.utils.cookie_auth import set_session_cookie, clear_session_cookie

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class MessageResponse(BaseModel):
    message: str


def _auth_response(user: User, token: str) -> AuthResponse:
    return AuthResponse(user=UserResponse.model_validate(user), access_token=token)


def _profile_complete(user: User) -> bool:
    if not (user.first_name and user.last_name and user.email):
        return False
    return user.role != AccountRole.CORPORATE or bool(user.company)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(AUTH_RATE_LIMIT)
def register(data: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Create an account on a 7-day trial and start a session"""
    if storage.get_user_by_email(db, data.email):
        raise ConflictError("An account with this email already exists", details={"field": "email"})

    user = User(
        email=data.email.lower(),
        password_hash=get_password_hash(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        company=data.company or None,
        user_role=UserRole.USER,
        permissions=list(storage.USER_PERMISSIONS),
        account_status=AccountStatus.TRIAL,
        trial_ends_at=calculate_trial_end_date(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User registered", extra={"user_id": str(user.id)})

    try:
        journey_service.initialize_user_journey(db, user.id)
    except Exception as e:
        logger.error(f"Journey initialization failed: {e}", exc_info=True, extra={"user_id": str(user.id)})
        db.rollback()
    NotificationService.notify_user_registration(db, user)

    token = set_session_cookie(response, str(user.id))
    return _auth_response(user, token)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(AUTH_RATE_LIMIT)
def login(login_data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login with email and password"""
    user = storage.get_user_by_email(db, login_data.email)
    if not user or not verify_password(login_data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is deactivated"
        )

    token = set_session_cookie(response, str(user.id))
    NotificationService.notify_user_login(db, user)
    logger.info("User logged in", extra={"user_id": str(user.id)})
    return _auth_response(user, token)


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response):
    clear_session_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/trial", response_model=TrialInfo)
def trial_info(current_user: User = Depends(get_current_user)):
    """Trial state for display; never blocks"""
    info = validate_trial_access(current_user)
    return TrialInfo(trial_ends_at=current_user.trial_ends_at, **info)


@router.put("/profile", response_model=UserResponse)
def update_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
    cache: CacheService = Depends(get_cache_service),
):
    updates = data.model_dump(exclude_unset=True)
    if "email" in updates and updates["email"]:
        updates["email"] = updates["email"].lower()
        existing = storage.get_user_by_email(db, updates["email"])
        if existing and existing.id != current_user.id:
            raise ConflictError("Email is already in use", details={"field": "email"})
    if current_user.role == AccountRole.CORPORATE and "company" in updates and not updates["company"]:
        raise ValidationError("Company name is required for corporate accounts")

    for field, value in updates.items():
        if value is None and field != "company":
            continue
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    cache.invalidate_user(current_user.id)

    if _profile_complete(current_user):
        journey_service.safe_check_milestones(db, current_user.id, "profile_completed")
    return current_user


@router.put("/password", response_model=MessageResponse)
def change_password(
    data: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(check_trial_status),
):
    if not verify_password(data.current_password, current_user.password_hash):
        raise ValidationError("Current password is incorrect")
    current_user.password_hash = get_password_hash(data.new_password)
    db.commit()
    logger.info("Password changed", extra={"user_id": str(current_user.id)})
    return MessageResponse(message="Password updated successfully")
