"""In-memory stand-ins for the repositories, storage, gateway and clock."""

import copy
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from helpdesk.core import ConflictException, RepositoryException, ResourceNotFoundException, StorageException
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
from helpdesk.sla.application import ISLAConfigRepository
from helpdesk.sla.domain import SLAConfig


class FixedClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _new_id() -> str:
    return str(uuid4())


class InMemoryUserRepository(IUserRepository):
    def __init__(self):
        self.users: List[User] = []

    def seed(self, email: str, role: str = "employee", name: Optional[str] = None, **extra) -> User:
        user = User(id=_new_id(), email=email, name=name or email.split("@")[0], role=role, **extra)
        self.users.append(user)
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users if u.email == email.lower()), None)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    async def list_by_role(self, role: str) -> List[User]:
        return [u for u in self.users if u.role == role]

    async def create(self, user: User) -> User:
        saved = replace(user, id=user.id or _new_id())
        self.users.append(saved)
        return saved

    async def list(self, offset: int, limit: int) -> List[User]:
        return sorted(self.users, key=lambda u: u.email)[offset:offset + limit]

    async def update_role(self, email: str, role: str, department: Optional[str]) -> Optional[User]:
        for index, user in enumerate(self.users):
            if user.email == email.lower():
                self.users[index] = replace(user, role=role, department=department)
                return self.users[index]
        return None


class InMemoryTicketRepository(ITicketRepository):
    def __init__(self):
        self.tickets: Dict[str, Ticket] = {}
        self.write_count = 0

    @staticmethod
    def _copy(ticket: Ticket) -> Ticket:
        return replace(ticket, attachments=[], messages=[])

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return self._copy(ticket) if ticket else None

    async def create(self, ticket: Ticket) -> Ticket:
        saved = replace(ticket, id=_new_id(), version=1)
        self.tickets[saved.id] = saved
        self.write_count += 1
        return self._copy(saved)

    async def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Ticket:
        current = self.tickets.get(ticket_id)
        if current is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if expected_version is not None and current.version != expected_version:
            raise ConflictException("Ticket", ticket_id, expected_version)
        updated = replace(current, **changes, version=current.version + 1)
        self.tickets[ticket_id] = updated
        self.write_count += 1
        return self._copy(updated)

    def _matching(self, filters: TicketFilter) -> List[Ticket]:
        result = list(self.tickets.values())
        for name in ("status", "category", "priority", "assigned_to", "employee_email"):
            value = getattr(filters, name)
            if value is not None:
                result = [t for t in result if getattr(t, name) == value]
        return sorted(result, key=lambda t: t.created_at, reverse=True)

    async def list(self, filters: TicketFilter, offset: int = 0, limit: int = 20) -> List[Ticket]:
        return [self._copy(t) for t in self._matching(filters)[offset:offset + limit]]

    async def count(self, filters: TicketFilter) -> int:
        return len(self._matching(filters))

    async def delete_created_before(self, cutoff: datetime) -> int:
        old = [tid for tid, t in self.tickets.items() if t.created_at < cutoff]
        for tid in old:
            del self.tickets[tid]
        return len(old)

    async def list_overdue(self, now: datetime) -> List[Ticket]:
        return [
            self._copy(t) for t in self.tickets.values()
            if t.status != "Closed" and not t.sla_violated and t.sla_due_date and t.sla_due_date < now
        ]


class InMemoryAuditLogRepository(IAuditLogRepository):
    def __init__(self):
        self.entries: List[AuditLog] = []
        self.fail = False

    async def add(self, entry: AuditLog) -> AuditLog:
        if self.fail:
            raise RepositoryException("add_audit_log failed: database unavailable")
        saved = replace(entry, id=_new_id())
        self.entries.append(saved)
        return saved

    def _matching(self, ticket_id: Optional[str], since: Optional[datetime]) -> List[AuditLog]:
        result = [
            e for e in self.entries
            if (ticket_id is None or e.ticket_id == ticket_id)
            and (since is None or e.performed_at >= since)
        ]
        return sorted(result, key=lambda e: e.performed_at, reverse=True)

    async def list(
        self,
        ticket_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        result = self._matching(ticket_id, since)
        return result[:limit] if limit else result

    async def count(self, ticket_id: str, since: Optional[datetime] = None) -> int:
        return len(self._matching(ticket_id, since))

    async def count_by_action(self, ticket_id: str) -> Dict[str, int]:
        return dict(Counter(e.action for e in self.entries if e.ticket_id == ticket_id))

    def for_ticket(self, ticket_id: str) -> List[AuditLog]:
        return [e for e in self.entries if e.ticket_id == ticket_id]


class InMemoryErrorLogRepository(IErrorLogRepository):
    def __init__(self):
        self.records: List[tuple] = []

    async def record(self, error_message: str, context: str) -> None:
        self.records.append((error_message, context))


class InMemoryTicketTemplateRepository(ITicketTemplateRepository):
    def __init__(self):
        self.templates: List[TicketTemplate] = []
        self.fail = False

    async def add(self, template: TicketTemplate) -> TicketTemplate:
        if self.fail:
            raise RepositoryException("add_ticket_template failed: database unavailable")
        saved = replace(template, id=_new_id())
        self.templates.append(saved)
        return saved

    def _newest_first(self) -> List[TicketTemplate]:
        return sorted(self.templates, key=lambda t: t.created_at, reverse=True)

    async def list(self, offset: int, limit: int) -> List[TicketTemplate]:
        return self._newest_first()[offset:offset + limit]

    async def list_by_category(self, category: str) -> List[TicketTemplate]:
        return [t for t in self._newest_first() if t.category == category]


class InMemoryNotificationRepository(INotificationRepository):
    def __init__(self):
        self.notifications: List[Notification] = []
        self.fail = False

    async def add(self, notification: Notification) -> Notification:
        if self.fail:
            raise RepositoryException("add_notification failed: database unavailable")
        saved = replace(notification, id=_new_id())
        self.notifications.append(saved)
        return saved

    async def list_for_user(self, user_id: str, limit: int) -> List[Notification]:
        mine = [n for n in self.notifications if n.user_id == user_id.lower()]
        return list(reversed(mine))[:limit]

    async def mark_read(self, notification_id: str) -> Optional[Notification]:
        for n in self.notifications:
            if n.id == notification_id:
                n.read = True
                return copy.copy(n)
        return None

    def for_user(self, user_id: str) -> List[Notification]:
        return [n for n in self.notifications if n.user_id == user_id]


class InMemoryEscalationRepository(IEscalationRepository):
    def __init__(self):
        self.escalations: List[Escalation] = []

    async def add(self, escalation: Escalation) -> Escalation:
        saved = replace(escalation, id=_new_id())
        self.escalations.append(saved)
        return saved

    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        return [e for e in self.escalations if e.ticket_id == ticket_id]


class InMemoryChatMessageRepository(IChatMessageRepository):
    def __init__(self):
        self.messages: List[ChatMessage] = []

    async def add(self, message: ChatMessage) -> ChatMessage:
        saved = replace(message, id=_new_id())
        self.messages.append(saved)
        return saved

    async def list_for_ticket(self, ticket_id: str) -> List[ChatMessage]:
        return [m for m in self.messages if m.ticket_id == ticket_id]


class InMemoryAttachmentRepository(IAttachmentRepository):
    def __init__(self):
        self.attachments: Dict[str, Attachment] = {}
        self.fail = False

    async def add(self, attachment: Attachment) -> Attachment:
        if self.fail:
            raise RepositoryException("add_attachment failed: database unavailable")
        saved = replace(attachment, id=_new_id())
        self.attachments[saved.id] = saved
        return saved

    async def get(self, attachment_id: str) -> Optional[Attachment]:
        return self.attachments.get(attachment_id)

    async def delete(self, attachment_id: str) -> None:
        self.attachments.pop(attachment_id, None)

    async def list_for_ticket(self, ticket_id: str) -> List[Attachment]:
        mine = [a for a in self.attachments.values() if a.ticket_id == ticket_id]
        return sorted(mine, key=lambda a: a.uploaded_at, reverse=True)


class InMemoryBlobStorage(IBlobStorage):
    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.fail_remove = False

    async def save(self, path: str, content: bytes, content_type: str) -> str:
        self.blobs[path] = content
        return f"/files/{path}"

    async def remove(self, path: str) -> None:
        if self.fail_remove:
            raise StorageException(f"Could not remove {path}")
        self.blobs.pop(path, None)


class InMemorySLAConfigRepository(ISLAConfigRepository):
    def __init__(self):
        self.rows: Dict[tuple, SLAConfig] = {}

    async def get(self, category: str, priority: str) -> Optional[SLAConfig]:
        return self.rows.get((category, priority))

    async def list(self) -> List[SLAConfig]:
        return list(self.rows.values())

    async def upsert(self, config: SLAConfig) -> SLAConfig:
        existing = self.rows.get(config.key)
        saved = config.model_copy(update={"id": existing.id if existing else _new_id()})
        self.rows[config.key] = saved
        return saved


class RecordingGateway(INotificationGateway):
    def __init__(self):
        self.calls: List[tuple] = []
        self.fail = False

    async def _record(self, *call):
        if self.fail:
            raise RuntimeError("chat provider unreachable")
        self.calls.append(call)

    async def ticket_created(self, ticket: Ticket) -> Any:
        await self._record("created", ticket.id)

    async def ticket_updated(self, ticket: Ticket, status: str) -> Any:
        await self._record("updated", ticket.id, status)

    async def ticket_escalated(self, ticket: Ticket, reason: str, hr_emails: List[str]) -> Any:
        await self._record("escalated", ticket.id, reason, list(hr_emails))

    async def chat_message(self, ticket: Ticket, message: ChatMessage) -> Any:
        await self._record("message", ticket.id, message.sender_id)

    def events(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class RecordingPublisher(IMessagePublisher):
    def __init__(self):
        self.published: List[ChatMessage] = []
        self.forward_to: Optional[IMessagePublisher] = None

    def publish(self, message: ChatMessage) -> None:
        self.published.append(message)
        if self.forward_to is not None:
            self.forward_to.publish(message)
