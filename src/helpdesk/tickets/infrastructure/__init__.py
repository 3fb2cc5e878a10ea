"""
Tickets Infrastructure Layer
============================

Infrastructure implementations for the ticket lifecycle:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- Storage: Local blob storage for attachments
- Subscriptions: Real-time chat transport and subscription registry
"""

from helpdesk.tickets.infrastructure.models import (
    AttachmentModel,
    AuditLogModel,
    ChatMessageModel,
    ErrorLogModel,
    EscalationModel,
    NotificationModel,
    TicketModel,
    TicketTemplateModel,
    UserModel,
)
from helpdesk.tickets.infrastructure.repositories import (
    SQLAlchemyAttachmentRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyChatMessageRepository,
    SQLAlchemyErrorLogRepository,
    SQLAlchemyEscalationRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTicketTemplateRepository,
    SQLAlchemyUserRepository,
)
from helpdesk.tickets.infrastructure.storage import LocalBlobStorage
from helpdesk.tickets.infrastructure.subscriptions import (
    ChatChannel,
    ChatSubscriptionRegistry,
    InProcessChatTransport,
    Subscription,
)

__all__ = [
    # Models
    "AttachmentModel",
    "AuditLogModel",
    "ChatMessageModel",
    "ErrorLogModel",
    "EscalationModel",
    "NotificationModel",
    "TicketModel",
    "TicketTemplateModel",
    "UserModel",
    # Repositories
    "SQLAlchemyAttachmentRepository",
    "SQLAlchemyAuditLogRepository",
    "SQLAlchemyChatMessageRepository",
    "SQLAlchemyErrorLogRepository",
    "SQLAlchemyEscalationRepository",
    "SQLAlchemyNotificationRepository",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyTicketTemplateRepository",
    "SQLAlchemyUserRepository",
    # Storage and subscriptions
    "LocalBlobStorage",
    "ChatChannel",
    "ChatSubscriptionRegistry",
    "InProcessChatTransport",
    "Subscription",
]
