"""
Chat Notification DTOs
======================

Request/response models of the dispatch endpoint. Field names follow the
wire format of the relay caller (camelCase on the way out).
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helpdesk.config import NOTIFICATION_STATUS
from helpdesk.notifications.domain import DispatchPayload, DispatchResult

CategoryStr = Literal["IT Infrastructure", "HR", "Administration", "Accounts", "Others"]

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class DispatchRequest(BaseModel):
    """One lifecycle event to deliver over chat."""
    ticket_id: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    employee_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    hr_emails: Optional[List[str]] = None
    escalation_reason: Optional[str] = None
    employee_name: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    category: Optional[CategoryStr] = None
    message_content: Optional[str] = None
    sender_role: Optional[str] = None

    @field_validator("hr_emails")
    @classmethod
    def validate_hr_emails(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        invalid = [email for email in v if not re.match(EMAIL_PATTERN, email)]
        if invalid:
            raise ValueError(f"Invalid HR email(s): {', '.join(invalid)}")
        return v

    @model_validator(mode="after")
    def require_message_fields(self) -> "DispatchRequest":
        if self.status == NOTIFICATION_STATUS and not (self.message_content and self.sender_role):
            raise ValueError("message_content and sender_role are required for chat message notifications")
        return self

    def to_domain(self) -> DispatchPayload:
        return DispatchPayload(**self.model_dump())

    @classmethod
    def from_domain(cls, payload: DispatchPayload) -> "DispatchRequest":
        return cls(
            ticket_id=payload.ticket_id,
            subject=payload.subject,
            status=payload.status,
            employee_email=payload.employee_email,
            hr_emails=payload.hr_emails,
            escalation_reason=payload.escalation_reason,
            employee_name=payload.employee_name,
            employee_id=payload.employee_id,
            department=payload.department,
            category=payload.category,
            message_content=payload.message_content,
            sender_role=payload.sender_role
        )


class DispatchResults(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dm_sent: List[str] = Field(default_factory=list, alias="dmSent")
    webhook_sent: bool = Field(False, alias="webhookSent")


class DispatchResponse(BaseModel):
    """Response of the dispatch endpoint."""
    success: bool = True
    results: DispatchResults

    @classmethod
    def from_domain(cls, result: DispatchResult) -> "DispatchResponse":
        return cls(results=DispatchResults(dm_sent=result.dm_sent, webhook_sent=result.webhook_sent))

    def to_domain(self) -> DispatchResult:
        return DispatchResult(dm_sent=list(self.results.dm_sent), webhook_sent=self.results.webhook_sent)
