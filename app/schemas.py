import re
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID
from app.models import (
    AccountRole, UserRole, AccountStatus, ClientStatus, Priority, FollowUpStatus,
    InteractionType, DeliveryStatus, MilestoneCategory, JourneyStage, NotificationPriority,
)
from app.services.webhook_service import WEBHOOK_EVENTS


class CamelModel(BaseModel):
    """Accepts and renders camelCase keys; snake_case names work on input too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ============= Auth Schemas =============
class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: AccountRole = AccountRole.INDIVIDUAL
    company: Optional[str] = Field(None, max_length=255)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be empty or whitespace")
        return v.strip()

    @model_validator(mode="after")
    def company_required_for_corporate(self):
        if self.role == AccountRole.CORPORATE and not (self.company and self.company.strip()):
            raise ValueError("Company name is required for corporate accounts")
        return self


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(None, max_length=255)


class PasswordChange(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)


class UserResponse(CamelModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    role: AccountRole
    company: Optional[str] = None
    is_active: bool
    user_role: UserRole
    permissions: List[str] = []
    account_status: AccountStatus
    trial_ends_at: Optional[datetime] = None
    trial_email_sent: bool = False
    created_at: datetime
    updated_at: datetime


class AuthResponse(CamelModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"


class TrialInfo(CamelModel):
    is_valid: bool
    message: Optional[str] = None
    days_remaining: Optional[int] = None
    account_status: str
    trial_ends_at: Optional[datetime] = None


# ============= Client Schemas =============
class ClientBase(CamelModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=255)
    position: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    source: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    last_contact_date: Optional[datetime] = None

    @field_validator("email", "phone", "company", "position", "category", "source", mode="before")
    @classmethod
    def blank_strings(cls, v):
        return _blank_to_none(v)


class ClientCreate(ClientBase):
    name: str = Field(..., min_length=1, max_length=255)
    status: ClientStatus = ClientStatus.PROSPECT
    priority: Priority = Priority.MEDIUM
    tags: List[str] = []


class ClientUpdate(ClientBase):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[ClientStatus] = None
    priority: Optional[Priority] = None
    tags: Optional[List[str]] = None


class ClientResponse(CamelModel):
    id: UUID
    user_id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    status: ClientStatus
    priority: Priority
    tags: List[str] = []
    category: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    last_contact_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags(cls, v):
        return v or []


# ============= Follow-up Schemas =============
class FollowUpCreate(CamelModel):
    client_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: datetime
    status: FollowUpStatus = FollowUpStatus.PENDING
    priority: Priority = Priority.MEDIUM


class FollowUpUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[FollowUpStatus] = None
    priority: Optional[Priority] = None


class FollowUpResponse(CamelModel):
    id: UUID
    user_id: UUID
    client_id: UUID
    title: str
    description: Optional[str] = None
    due_date: datetime
    status: FollowUpStatus
    priority: Priority
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def derive_overdue(self):
        # Pending past its due date lists as overdue; the stored status is unchanged
        due = self.due_date.replace(tzinfo=None) if self.due_date.tzinfo else self.due_date
        if self.status == FollowUpStatus.PENDING and due < datetime.utcnow():
            self.status = FollowUpStatus.OVERDUE
        return self


# ============= Interaction Schemas =============
class InteractionCreate(CamelModel):
    client_id: UUID
    type: InteractionType
    notes: Optional[str] = None
    date: Optional[datetime] = None


class InteractionResponse(CamelModel):
    id: UUID
    user_id: UUID
    client_id: UUID
    type: InteractionType
    notes: Optional[str] = None
    date: datetime
    created_at: datetime


# ============= Email Schemas =============
class SendEmailRequest(CamelModel):
    template_id: Optional[str] = None
    subject: Optional[str] = Field(None, max_length=255)
    message: str = Field(..., min_length=1)
    topic: Optional[str] = None
    project_name: Optional[str] = None
    sender_name: Optional[str] = None

    @model_validator(mode="after")
    def subject_required_without_template(self):
        if not self.template_id and not (self.subject and self.subject.strip()):
            raise ValueError("Subject is required when no template is selected")
        return self


class EmailTemplateInfo(CamelModel):
    id: str
    name: str
    subject: str


class SendEmailResponse(CamelModel):
    success: bool
    message: str
    interaction: Optional[InteractionResponse] = None


# ============= Webhook Schemas =============
def _validate_events(events: Optional[List[str]]) -> Optional[List[str]]:
    if events is None:
        return events
    unknown = [e for e in events if e not in WEBHOOK_EVENTS]
    if unknown:
        raise ValueError(f"Unknown webhook events: {', '.join(unknown)}")
    return list(dict.fromkeys(events))


HEADER_NAME_PATTERN = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")


def _validate_headers(headers: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if headers is None:
        return headers
    for name, value in headers.items():
        if not HEADER_NAME_PATTERN.match(name):
            raise ValueError(f"Invalid header name: {name!r}")
        if not all(ch == "\t" or " " <= ch <= "~" for ch in value):
            raise ValueError(f"Header {name} must be printable ASCII")
    return headers


class WebhookCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., pattern=r"^https?://", max_length=2048)
    events: List[str] = Field(..., min_length=1)
    secret: Optional[str] = Field(None, max_length=255)
    active: bool = True
    headers: Dict[str, str] = {}

    @field_validator("events")
    @classmethod
    def known_events(cls, v):
        return _validate_events(v)

    @field_validator("headers")
    @classmethod
    def ascii_headers(cls, v):
        return _validate_headers(v)


class WebhookUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, pattern=r"^https?://", max_length=2048)
    events: Optional[List[str]] = Field(None, min_length=1)
    secret: Optional[str] = Field(None, max_length=255)
    active: Optional[bool] = None
    headers: Optional[Dict[str, str]] = None

    @field_validator("events")
    @classmethod
    def known_events(cls, v):
        return _validate_events(v)

    @field_validator("headers")
    @classmethod
    def ascii_headers(cls, v):
        return _validate_headers(v)


class WebhookResponse(CamelModel):
    id: UUID
    name: str
    url: str
    events: List[str]
    secret: Optional[str] = None
    active: bool
    headers: Dict[str, str] = {}
    created_at: datetime
    updated_at: datetime

    @field_validator("headers", mode="before")
    @classmethod
    def null_headers(cls, v):
        return v or {}


class WebhookDeliveryResponse(CamelModel):
    id: UUID
    webhook_id: UUID
    event: str
    payload: Dict[str, Any]
    status: DeliveryStatus
    status_code: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    attempts: int
    next_retry: Optional[datetime] = None
    created_at: datetime


class WebhookTestResult(CamelModel):
    success: bool
    status: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    latency: int


# ============= Journey Schemas =============
class MilestoneResponse(CamelModel):
    id: UUID
    milestone_type: str
    title: str
    description: Optional[str] = None
    category: MilestoneCategory
    points: int
    is_completed: bool
    completed_at: Optional[datetime] = None


class JourneyProgressResponse(CamelModel):
    total_points: int
    completed_milestones: int
    current_level: int
    journey_stage: JourneyStage
    last_activity_at: Optional[datetime] = None


class JourneyResponse(CamelModel):
    progress: JourneyProgressResponse
    milestones: List[MilestoneResponse]


class MilestoneCheckResult(CamelModel):
    completed: bool
    milestone_type: Optional[str] = None
    newly_completed: List[str] = []
    progress: JourneyProgressResponse


# ============= Admin Schemas =============
class RoleUpdate(CamelModel):
    role: UserRole


class TrialUpdate(CamelModel):
    account_status: AccountStatus
    trial_days: Optional[int] = Field(None, ge=1, le=365)


class AdminUserUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(None, max_length=255)
    role: Optional[AccountRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=6, max_length=128)


class MasterAdminCreate(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: Optional[str] = Field(None, max_length=255)


class NotificationResponse(CamelModel):
    id: UUID
    type: str
    title: str
    message: str
    user_id: Optional[UUID] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    priority: NotificationPriority
    is_read: bool
    data: Optional[Dict[str, Any]] = None
    created_at: datetime


# ============= Dashboard Schemas =============
class DashboardStats(CamelModel):
    total_clients: int
    pending_followups: int
    completed_this_week: int
    new_this_month: int
    overdue_followups: int
