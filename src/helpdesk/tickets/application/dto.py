"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

Pydantic models for request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from helpdesk.core import SideEffectWarning
from helpdesk.tickets.application.audit import AuditStats
from helpdesk.tickets.domain import (
    Attachment,
    AuditLog,
    ChatMessage,
    Notification,
    Ticket,
    TicketTemplate,
    User,
)


# ========== Type Aliases for Literals ==========
CategoryStr = Literal["IT Infrastructure", "HR", "Administration", "Accounts", "Others"]
PriorityStr = Literal["Low", "Medium", "High", "Critical"]
StatusStr = Literal["Open", "In Progress", "Escalated", "Closed"]
RoleStr = Literal["employee", "it_owner", "hr_owner", "admin_owner", "accounts_owner", "owner"]
DateFilterStr = Literal["all", "today", "7days", "30days"]

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for creating a ticket."""
    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    category: CategoryStr
    priority: PriorityStr
    employee_email: str = Field(..., pattern=EMAIL_PATTERN, description="Requester email")
    employee_name: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None
    performed_by: Optional[str] = Field(None, description="Defaults to the requester")


class TicketUpdateRequest(BaseModel):
    """
    Partial ticket update. Only the fields present in the body are applied.

    Send `expected_version` to reject the update if the ticket changed since
    it was read.
    """
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[CategoryStr] = None
    priority: Optional[PriorityStr] = None
    status: Optional[StatusStr] = None
    assigned_to: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    escalation_reason: Optional[str] = None
    escalation_date: Optional[datetime] = None
    sla_violated: Optional[bool] = None

    performed_by: str = Field(..., pattern=EMAIL_PATTERN)
    expected_version: Optional[int] = Field(None, ge=1)

    def to_changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"performed_by", "expected_version"})


class EscalationRequest(BaseModel):
    """Request model for escalating a ticket."""
    reason: str = Field(..., min_length=1)
    description: str = ""
    timeline: str = ""
    performed_by: str = Field(..., pattern=EMAIL_PATTERN)


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    performed_by: str = Field(..., pattern=EMAIL_PATTERN)


class UserCreateRequest(BaseModel):
    """Request model for registering a user."""
    email: str = Field(..., pattern=EMAIL_PATTERN)
    name: str = Field(..., min_length=1)
    role: RoleStr
    employee_id: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None

    def to_domain(self) -> User:
        return User(id=None, **self.model_dump())


class UserRoleUpdateRequest(BaseModel):
    """Request model for changing a user's role."""
    role: RoleStr
    updated_by: str = Field(..., pattern=EMAIL_PATTERN)


class TicketTemplateCreateRequest(BaseModel):
    """Request model for creating a ticket template."""
    name: str = Field(..., min_length=1, max_length=255)
    category: CategoryStr
    subject: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: PriorityStr
    created_by: str = Field(..., pattern=EMAIL_PATTERN)


class ChatMessageRequest(BaseModel):
    """Request model for posting a chat message."""
    sender_id: str = Field(..., min_length=1, description="User id or email")
    sender_name: str = Field(..., min_length=1)
    sender_role: RoleStr
    message: str = Field(..., min_length=1)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message must not be blank")
        return v


# ========== Response DTOs ==========

class WarningResponse(BaseModel):
    step: str
    error: str

    @classmethod
    def from_domain(cls, warning: SideEffectWarning) -> "WarningResponse":
        return cls(step=warning.step, error=warning.error)


class ChatMessageResponse(BaseModel):
    id: str
    ticket_id: str
    sender_id: str
    sender_name: str
    sender_role: str
    message: str
    timestamp: Optional[datetime] = None

    @classmethod
    def from_domain(cls, message: ChatMessage) -> "ChatMessageResponse":
        return cls(
            id=message.id,
            ticket_id=message.ticket_id,
            sender_id=message.sender_id,
            sender_name=message.sender_name,
            sender_role=message.sender_role,
            message=message.message,
            timestamp=message.timestamp
        )


class AttachmentResponse(BaseModel):
    id: str
    ticket_id: str
    file_name: str
    file_size: int
    file_type: str
    uploaded_by: str
    file_url: str
    uploaded_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, attachment: Attachment) -> "AttachmentResponse":
        return cls(
            id=attachment.id,
            ticket_id=attachment.ticket_id,
            file_name=attachment.file_name,
            file_size=attachment.file_size,
            file_type=attachment.file_type,
            uploaded_by=attachment.uploaded_by,
            file_url=attachment.file_url,
            uploaded_at=attachment.uploaded_at
        )


class TicketResponse(BaseModel):
    """Response model for a ticket."""
    id: str
    subject: str
    description: str
    category: str
    priority: str
    status: str
    employee_id: Optional[str] = None
    employee_name: str
    employee_email: str
    department: Optional[str] = None
    sub_department: Optional[str] = None
    assigned_to: Optional[str] = None
    rating: Optional[int] = None
    response_time: Optional[int] = None
    resolution_time: Optional[int] = None
    escalation_reason: Optional[str] = None
    escalation_date: Optional[datetime] = None
    sla_due_date: Optional[datetime] = None
    sla_violated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int
    attachments: List[AttachmentResponse] = Field(default_factory=list)
    messages: List[ChatMessageResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            **ticket.to_dict(),
            attachments=[AttachmentResponse.from_domain(a) for a in ticket.attachments],
            messages=[ChatMessageResponse.from_domain(m) for m in ticket.messages]
        )


class TicketMutationResponse(BaseModel):
    """A mutated ticket plus the side effects that did not go through."""
    ticket: TicketResponse
    warnings: List[WarningResponse] = Field(default_factory=list)


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total_count: int
    page: int
    page_size: int


class ChatMessageMutationResponse(BaseModel):
    message: ChatMessageResponse
    warnings: List[WarningResponse] = Field(default_factory=list)


class AttachmentMutationResponse(BaseModel):
    attachment: AttachmentResponse
    warnings: List[WarningResponse] = Field(default_factory=list)


class AuditLogResponse(BaseModel):
    id: str
    ticket_id: str
    action: str
    details: str
    performed_by: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, entry: AuditLog) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            action=entry.action,
            details=entry.details,
            performed_by=entry.performed_by,
            old_value=entry.old_value,
            new_value=entry.new_value,
            performed_at=entry.performed_at
        )


class AuditStatsResponse(BaseModel):
    total: int
    today: int
    last_7_days: int
    last_30_days: int
    action_counts: Dict[str, int]

    @classmethod
    def from_domain(cls, stats: AuditStats) -> "AuditStatsResponse":
        return cls(
            total=stats.total,
            today=stats.today,
            last_7_days=stats.last_7_days,
            last_30_days=stats.last_30_days,
            action_counts=stats.action_counts
        )


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str
    ticket_id: Optional[str] = None
    read: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            title=notification.title,
            message=notification.message,
            type=notification.type,
            ticket_id=notification.ticket_id,
            read=notification.read,
            created_at=notification.created_at
        )


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    employee_id: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            employee_id=user.employee_id,
            department=user.department,
            sub_department=user.sub_department,
            created_at=user.created_at
        )


class TicketTemplateResponse(BaseModel):
    id: str
    name: str
    category: str
    subject: str
    description: str
    priority: str
    created_by: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, template: TicketTemplate) -> "TicketTemplateResponse":
        return cls(
            id=template.id,
            name=template.name,
            category=template.category,
            subject=template.subject,
            description=template.description,
            priority=template.priority,
            created_by=template.created_by,
            created_at=template.created_at
        )
