"""
Tickets Application Layer
=========================

Contains:
- Services: lifecycle orchestration, audit logger, attachment manager,
  notification store, user directory, ticket templates
- Interfaces: repository and collaborator abstractions
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.tickets.application.attachments import AttachmentManager
from helpdesk.tickets.application.audit import AuditLogger, AuditStats, window_start
from helpdesk.tickets.application.interfaces import (
    IAttachmentRepository,
    IAuditLogRepository,
    IBlobStorage,
    IChatMessageRepository,
    IErrorLogRepository,
    IEscalationRepository,
    IMessagePublisher,
    INotificationGateway,
    INotificationRepository,
    ITicketRepository,
    ITicketTemplateRepository,
    IUserRepository,
    TicketFilter,
)
from helpdesk.tickets.application.notifications import NotificationStore
from helpdesk.tickets.application.services import TicketLifecycleService
from helpdesk.tickets.application.templates import TemplateService
from helpdesk.tickets.application.users import UserDirectory

__all__ = [
    # Services
    "AttachmentManager",
    "AuditLogger",
    "AuditStats",
    "NotificationStore",
    "TemplateService",
    "TicketLifecycleService",
    "UserDirectory",
    "window_start",
    # Interfaces
    "IAttachmentRepository",
    "IAuditLogRepository",
    "IBlobStorage",
    "IChatMessageRepository",
    "IErrorLogRepository",
    "IEscalationRepository",
    "IMessagePublisher",
    "INotificationGateway",
    "INotificationRepository",
    "ITicketRepository",
    "ITicketTemplateRepository",
    "IUserRepository",
    "TicketFilter",
]
