"""
Tickets Domain Layer
====================

Domain layer for the ticket lifecycle.

Contains:
- Entities: Ticket, ChatMessage, AuditLog, Notification, Escalation,
  Attachment, User, ErrorLog, TicketTemplate
- Value Objects: CategoryPermissions, AttachmentPolicy, FieldChange

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.tickets.domain.entities import (
    Attachment,
    AuditLog,
    ChatMessage,
    ErrorLog,
    Escalation,
    Notification,
    Ticket,
    TicketTemplate,
    User,
)
from helpdesk.tickets.domain.value_objects import (
    AttachmentPolicy,
    CategoryPermissions,
    DERIVED_FIELDS,
    FieldChange,
    UPDATABLE_FIELDS,
    UploadedFile,
    diff_fields,
    reject_unknown_fields,
)

__all__ = [
    # Entities
    "Attachment",
    "AuditLog",
    "ChatMessage",
    "ErrorLog",
    "Escalation",
    "Notification",
    "Ticket",
    "TicketTemplate",
    "User",
    # Value Objects
    "AttachmentPolicy",
    "CategoryPermissions",
    "FieldChange",
    "UploadedFile",
    "DERIVED_FIELDS",
    "UPDATABLE_FIELDS",
    "diff_fields",
    "reject_unknown_fields",
]
