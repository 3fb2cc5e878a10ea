"""
Ticket Application Interfaces
=============================

Abstractions the ticket services depend on (Dependency Inversion):
repositories for every stored record, blob storage, the outbound chat
gateway and the real-time message publisher.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from helpdesk.tickets.domain import (
    Attachment,
    AuditLog,
    ChatMessage,
    Escalation,
    Notification,
    Ticket,
    TicketTemplate,
    User,
)


@dataclass(frozen=True)
class TicketFilter:
    """Equality filters for listing tickets. None means unfiltered."""
    status: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    employee_email: Optional[str] = None


# ========== Repository Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket rows."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[Ticket]:
        """Get a ticket without its collections."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket and return it with its id."""

    @abstractmethod
    async def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Ticket:
        """
        Write `changes` in one statement and bump the version.

        With `expected_version` the write only applies to that version and
        raises ConflictException otherwise.
        """

    @abstractmethod
    async def list(self, filters: TicketFilter, offset: int = 0, limit: int = 20) -> List[Ticket]:
        """Tickets newest first."""

    @abstractmethod
    async def count(self, filters: TicketFilter) -> int:
        """Number of tickets matching `filters`."""

    @abstractmethod
    async def delete_created_before(self, cutoff: datetime) -> int:
        """Delete tickets created at or before `cutoff`; returns the count."""

    @abstractmethod
    async def list_overdue(self, now: datetime) -> List[Ticket]:
        """Open tickets past their due date that are not flagged yet."""


class IUserRepository(ABC):
    """Interface for users."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Lookup by opaque id."""

    @abstractmethod
    async def list_by_role(self, role: str) -> List[User]:
        """Users holding `role`, in creation order."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Insert a user."""

    @abstractmethod
    async def list(self, offset: int, limit: int) -> List[User]:
        """One page of users ordered by email."""

    @abstractmethod
    async def update_role(self, email: str, role: str, department: Optional[str]) -> Optional[User]:
        """Set role and department; None when the user does not exist."""


class IAuditLogRepository(ABC):
    """Interface for audit entries."""

    @abstractmethod
    async def add(self, entry: AuditLog) -> AuditLog:
        """Append an entry."""

    @abstractmethod
    async def list(
        self,
        ticket_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        """Entries newest first; limit applies after ordering."""

    @abstractmethod
    async def count(self, ticket_id: str, since: Optional[datetime] = None) -> int:
        """Number of entries for a ticket, optionally since an instant."""

    @abstractmethod
    async def count_by_action(self, ticket_id: str) -> Dict[str, int]:
        """Histogram of action tag to count."""


class IErrorLogRepository(ABC):
    """Interface for the diagnostic error log."""

    @abstractmethod
    async def record(self, error_message: str, context: str) -> None:
        """Store one diagnostic record."""


class ITicketTemplateRepository(ABC):
    """Interface for ticket templates."""

    @abstractmethod
    async def add(self, template: TicketTemplate) -> TicketTemplate:
        """Insert a template and return it with its id."""

    @abstractmethod
    async def list(self, offset: int, limit: int) -> List[TicketTemplate]:
        """One page of templates, newest first."""

    @abstractmethod
    async def list_by_category(self, category: str) -> List[TicketTemplate]:
        """Every template of a category, newest first."""


class INotificationRepository(ABC):
    """Interface for internal notifications."""

    @abstractmethod
    async def add(self, notification: Notification) -> Notification:
        """Append a notification."""

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int) -> List[Notification]:
        """Newest first."""

    @abstractmethod
    async def mark_read(self, notification_id: str) -> Optional[Notification]:
        """Set the read flag; None when the notification is absent."""


class IEscalationRepository(ABC):
    """Interface for escalation records."""

    @abstractmethod
    async def add(self, escalation: Escalation) -> Escalation:
        """Insert an escalation."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        """Escalations of a ticket, oldest first."""


class IChatMessageRepository(ABC):
    """Interface for ticket chat messages."""

    @abstractmethod
    async def add(self, message: ChatMessage) -> ChatMessage:
        """Append a message."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[ChatMessage]:
        """Messages oldest first."""


class IAttachmentRepository(ABC):
    """Interface for attachment metadata."""

    @abstractmethod
    async def add(self, attachment: Attachment) -> Attachment:
        """Insert metadata."""

    @abstractmethod
    async def get(self, attachment_id: str) -> Optional[Attachment]:
        """Get metadata by id."""

    @abstractmethod
    async def delete(self, attachment_id: str) -> None:
        """Delete metadata."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[Attachment]:
        """Attachments newest first."""


# ========== External Collaborators ==========

class IBlobStorage(ABC):
    """Interface for file blob storage."""

    @abstractmethod
    async def save(self, path: str, content: bytes, content_type: str) -> str:
        """Store a blob and return its public URL."""

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Remove a blob; raises StorageException on failure."""


class INotificationGateway(ABC):
    """
    Outbound chat notifications for lifecycle events.

    Implementations never raise for delivery failures; they log them.
    """

    @abstractmethod
    async def ticket_created(self, ticket: Ticket) -> Any:
        """A ticket was created."""

    @abstractmethod
    async def ticket_updated(self, ticket: Ticket, status: str) -> Any:
        """A ticket moved to a non-escalation status."""

    @abstractmethod
    async def ticket_escalated(self, ticket: Ticket, reason: str, hr_emails: List[str]) -> Any:
        """A ticket was escalated."""

    @abstractmethod
    async def chat_message(self, ticket: Ticket, message: ChatMessage) -> Any:
        """A chat message was added to a ticket."""


class IMessagePublisher(ABC):
    """Pushes persisted chat messages to live subscribers."""

    @abstractmethod
    def publish(self, message: ChatMessage) -> None:
        """Deliver an inserted message."""
