"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from helpdesk.config import TicketStatus


@dataclass
class User:
    """A person known to the helpdesk, addressed by lowercased email."""

    id: str
    email: str
    name: str
    role: str
    employee_id: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.email = self.email.lower()


@dataclass
class ChatMessage:
    """One message in a ticket's conversation. Append-only."""

    id: Optional[str]
    ticket_id: str
    sender_id: str
    sender_name: str
    sender_role: str
    message: str
    timestamp: Optional[datetime] = None


@dataclass
class Attachment:
    """Metadata of a file stored against a ticket."""

    id: Optional[str]
    ticket_id: str
    file_name: str
    file_size: int
    file_type: str
    uploaded_by: str
    file_url: str
    storage_path: str
    uploaded_at: Optional[datetime] = None


@dataclass
class Ticket:
    """
    Ticket entity representing a helpdesk request.

    `sla_due_date` is fixed at creation. `response_time` and
    `resolution_time` are whole hours and are stamped at most once.
    """

    # Core attributes
    id: Optional[str]
    subject: str
    description: str
    category: str
    priority: str
    status: str

    # Requester
    employee_email: str
    employee_name: str
    employee_id: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None

    # Ownership and outcome
    assigned_to: Optional[str] = None
    rating: Optional[int] = None
    response_time: Optional[int] = None
    resolution_time: Optional[int] = None
    escalation_reason: Optional[str] = None
    escalation_date: Optional[datetime] = None

    # SLA
    sla_due_date: Optional[datetime] = None
    sla_violated: bool = False

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Optimistic concurrency
    version: int = 1

    # Owned collections, hydrated by reference
    attachments: List[Attachment] = field(default_factory=list)
    messages: List[ChatMessage] = field(default_factory=list)

    def __post_init__(self):
        self.employee_email = self.employee_email.lower()
        if self.assigned_to:
            self.assigned_to = self.assigned_to.lower()

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED

    def value_of(self, field_name: str) -> Any:
        return getattr(self, field_name)

    def to_dict(self) -> Dict[str, Any]:
        """Scalar fields only; collections are left out."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("attachments", "messages")
        }


@dataclass
class AuditLog:
    """An immutable record of one action performed on a ticket."""

    id: Optional[str]
    ticket_id: str
    action: str
    details: str
    performed_by: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_at: Optional[datetime] = None


@dataclass
class Notification:
    """
    An in-app notification addressed to one user.

    The read flag only ever moves from False to True.
    """

    id: Optional[str]
    user_id: str
    title: str
    message: str
    type: str
    ticket_id: Optional[str] = None
    read: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.user_id = self.user_id.lower()


@dataclass
class Escalation:
    """A recorded escalation of a ticket."""

    id: Optional[str]
    ticket_id: str
    reason: str
    description: str
    timeline: str
    escalated_by: str
    resolved: bool = False
    escalated_at: Optional[datetime] = None


@dataclass
class ErrorLog:
    """Diagnostic record for a failure that was handled."""

    id: Optional[str]
    error_message: str
    context: str
    created_at: Optional[datetime] = None


@dataclass
class TicketTemplate:
    """Prefilled subject, description and priority for a category."""

    id: Optional[str]
    name: str
    category: str
    subject: str
    description: str
    priority: str
    created_by: str
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_by = self.created_by.lower()
