"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementations of the ticket repository interfaces.

Every write commits on its own; reads translate driver errors into
RepositoryException. Timestamps read back are normalised to UTC.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update

from helpdesk.config import TicketStatus
from helpdesk.core import ConflictException, ResourceNotFoundException
from helpdesk.core.clock import ensure_utc
from helpdesk.infrastructure.database.repository import SQLAlchemyRepository
from helpdesk.tickets.application.interfaces import (
    IAttachmentRepository,
    IAuditLogRepository,
    IChatMessageRepository,
    IErrorLogRepository,
    IEscalationRepository,
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


def _uuid(value: Optional[str]) -> Optional[UUID]:
    """Parse an id; anything that is not a UUID cannot match a row."""
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


# ========== Mappers ==========

def _user_to_domain(model: UserModel) -> User:
    return User(
        id=str(model.id),
        email=model.email,
        name=model.name,
        role=model.role,
        employee_id=model.employee_id,
        department=model.department,
        sub_department=model.sub_department,
        created_at=ensure_utc(model.created_at)
    )


def _ticket_to_domain(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        subject=model.subject,
        description=model.description,
        category=model.category,
        priority=model.priority,
        status=model.status,
        employee_email=model.employee_email,
        employee_name=model.employee_name,
        employee_id=model.employee_id,
        department=model.department,
        sub_department=model.sub_department,
        assigned_to=model.assigned_to,
        rating=model.rating,
        response_time=model.response_time,
        resolution_time=model.resolution_time,
        escalation_reason=model.escalation_reason,
        escalation_date=ensure_utc(model.escalation_date),
        sla_due_date=ensure_utc(model.sla_due_date),
        sla_violated=model.sla_violated,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
        version=model.version
    )


def _message_to_domain(model: ChatMessageModel) -> ChatMessage:
    return ChatMessage(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        sender_id=model.sender_id,
        sender_name=model.sender_name,
        sender_role=model.sender_role,
        message=model.message,
        timestamp=ensure_utc(model.timestamp)
    )


def _attachment_to_domain(model: AttachmentModel) -> Attachment:
    return Attachment(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        file_name=model.file_name,
        file_size=model.file_size,
        file_type=model.file_type,
        uploaded_by=model.uploaded_by,
        file_url=model.file_url,
        storage_path=model.storage_path,
        uploaded_at=ensure_utc(model.uploaded_at)
    )


def _escalation_to_domain(model: EscalationModel) -> Escalation:
    return Escalation(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        reason=model.reason,
        description=model.description,
        timeline=model.timeline,
        escalated_by=model.escalated_by,
        resolved=model.resolved,
        escalated_at=ensure_utc(model.escalated_at)
    )


def _audit_to_domain(model: AuditLogModel) -> AuditLog:
    return AuditLog(
        id=str(model.id),
        ticket_id=model.ticket_id,
        action=model.action,
        details=model.details,
        performed_by=model.performed_by,
        old_value=model.old_value,
        new_value=model.new_value,
        performed_at=ensure_utc(model.performed_at)
    )


def _notification_to_domain(model: NotificationModel) -> Notification:
    return Notification(
        id=str(model.id),
        user_id=model.user_id,
        title=model.title,
        message=model.message,
        type=model.type,
        ticket_id=model.ticket_id,
        read=model.read,
        created_at=ensure_utc(model.created_at)
    )



def _template_to_domain(model: TicketTemplateModel) -> TicketTemplate:
    return TicketTemplate(
        id=str(model.id),
        name=model.name,
        category=model.category,
        subject=model.subject,
        description=model.description,
        priority=model.priority,
        created_by=model.created_by,
        created_at=ensure_utc(model.created_at)
    )

# ========== Repositories ==========

class SQLAlchemyUserRepository(SQLAlchemyRepository, IUserRepository):
    """SQLAlchemy implementation for users."""

    async def get_by_email(self, email: str) -> Optional[User]:
        async with self._guard("get_user_by_email") as session:
            stmt = select(UserModel).where(UserModel.email == email.lower())
            model = (await session.execute(stmt)).scalar_one_or_none()
        return _user_to_domain(model) if model else None

    async def get_by_id(self, user_id: str) -> Optional[User]:
        uid = _uuid(user_id)
        if uid is None:
            return None
        async with self._guard("get_user_by_id") as session:
            model = await session.get(UserModel, uid)
        return _user_to_domain(model) if model else None

    async def list_by_role(self, role: str) -> List[User]:
        async with self._guard("list_users_by_role") as session:
            stmt = (
                select(UserModel)
                .where(UserModel.role == role)
                .order_by(UserModel.created_at, UserModel.email)
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_user_to_domain(model) for model in models]

    async def create(self, user: User) -> User:
        async with self._write("create_user") as session:
            model = UserModel(
                email=user.email.lower(),
                name=user.name,
                role=user.role,
                employee_id=user.employee_id,
                department=user.department,
                sub_department=user.sub_department
            )
            if user.id:
                model.id = UUID(user.id)
            if user.created_at:
                model.created_at = user.created_at
            session.add(model)
            await session.flush()
        return _user_to_domain(model)

    async def list(self, offset: int, limit: int) -> List[User]:
        async with self._guard("list_users") as session:
            stmt = select(UserModel).order_by(UserModel.email).offset(offset).limit(limit)
            models = (await session.execute(stmt)).scalars().all()
        return [_user_to_domain(model) for model in models]

    async def update_role(self, email: str, role: str, department: Optional[str]) -> Optional[User]:
        async with self._write("update_user_role") as session:
            stmt = select(UserModel).where(UserModel.email == email.lower())
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is not None:
                model.role = role
                model.department = department
        return _user_to_domain(model) if model else None


class SQLAlchemyTicketRepository(SQLAlchemyRepository, ITicketRepository):
    """SQLAlchemy implementation for tickets with a compare-and-swap update."""

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        uid = _uuid(ticket_id)
        if uid is None:
            return None
        async with self._guard("get_ticket") as session:
            stmt = (
                select(TicketModel)
                .where(TicketModel.id == uid)
                .execution_options(populate_existing=True)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
        return _ticket_to_domain(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        async with self._write("create_ticket") as session:
            values = ticket.to_dict()
            values.pop("id")
            for key in ("created_at", "updated_at"):
                if values[key] is None:
                    values.pop(key)
            values["version"] = 1
            model = TicketModel(**values)
            session.add(model)
            await session.flush()
        return _ticket_to_domain(model)

    async def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Ticket:
        uid = _uuid(ticket_id)
        if uid is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        async with self._write("update_ticket") as session:
            stmt = update(TicketModel).where(TicketModel.id == uid)
            if expected_version is not None:
                stmt = stmt.where(TicketModel.version == expected_version)
            stmt = stmt.values(**changes, version=TicketModel.version + 1)
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            matched = result.rowcount

        if not matched:
            if expected_version is not None and await self.get(ticket_id) is not None:
                raise ConflictException("Ticket", ticket_id, expected_version)
            raise ResourceNotFoundException("Ticket", ticket_id)

        updated = await self.get(ticket_id)
        if updated is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return updated

    def _filtered(self, stmt, filters: TicketFilter):
        for name in ("status", "category", "priority", "assigned_to", "employee_email"):
            value = getattr(filters, name)
            if value is not None:
                if name in ("assigned_to", "employee_email"):
                    value = value.lower()
                stmt = stmt.where(getattr(TicketModel, name) == value)
        return stmt

    async def list(self, filters: TicketFilter, offset: int = 0, limit: int = 20) -> List[Ticket]:
        async with self._guard("list_tickets") as session:
            stmt = self._filtered(select(TicketModel), filters)
            stmt = stmt.order_by(TicketModel.created_at.desc()).offset(offset).limit(limit)
            models = (await session.execute(stmt)).scalars().all()
        return [_ticket_to_domain(model) for model in models]

    async def count(self, filters: TicketFilter) -> int:
        async with self._guard("count_tickets") as session:
            stmt = self._filtered(select(func.count()).select_from(TicketModel), filters)
            return (await session.execute(stmt)).scalar_one()

    async def delete_created_before(self, cutoff: datetime) -> int:
        async with self._write("delete_old_tickets") as session:
            stmt = select(TicketModel.id).where(TicketModel.created_at < cutoff)
            ids = list((await session.execute(stmt)).scalars().all())
            if ids:
                for child in (ChatMessageModel, AttachmentModel, EscalationModel):
                    await session.execute(delete(child).where(child.ticket_id.in_(ids)))
                await session.execute(
                    delete(AuditLogModel).where(AuditLogModel.ticket_id.in_([str(i) for i in ids]))
                )
                await session.execute(delete(TicketModel).where(TicketModel.id.in_(ids)))
        return len(ids)

    async def list_overdue(self, now: datetime) -> List[Ticket]:
        async with self._guard("list_overdue_tickets") as session:
            stmt = (
                select(TicketModel)
                .where(
                    TicketModel.status != TicketStatus.CLOSED,
                    TicketModel.sla_violated.is_(False),
                    TicketModel.sla_due_date.is_not(None),
                    TicketModel.sla_due_date < now
                )
                .order_by(TicketModel.sla_due_date)
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_ticket_to_domain(model) for model in models]


class SQLAlchemyChatMessageRepository(SQLAlchemyRepository, IChatMessageRepository):
    """SQLAlchemy implementation for chat messages."""

    async def add(self, message: ChatMessage) -> ChatMessage:
        async with self._write("add_chat_message") as session:
            model = ChatMessageModel(
                ticket_id=_uuid(message.ticket_id),
                sender_id=message.sender_id,
                sender_name=message.sender_name,
                sender_role=message.sender_role,
                message=message.message
            )
            if message.timestamp:
                model.timestamp = message.timestamp
            session.add(model)
            await session.flush()
        return _message_to_domain(model)

    async def list_for_ticket(self, ticket_id: str) -> List[ChatMessage]:
        uid = _uuid(ticket_id)
        if uid is None:
            return []
        async with self._guard("list_chat_messages") as session:
            stmt = (
                select(ChatMessageModel)
                .where(ChatMessageModel.ticket_id == uid)
                .order_by(ChatMessageModel.timestamp.asc())
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_message_to_domain(model) for model in models]


class SQLAlchemyAttachmentRepository(SQLAlchemyRepository, IAttachmentRepository):
    """SQLAlchemy implementation for attachment metadata."""

    async def add(self, attachment: Attachment) -> Attachment:
        async with self._write("add_attachment") as session:
            model = AttachmentModel(
                ticket_id=_uuid(attachment.ticket_id),
                file_name=attachment.file_name,
                file_size=attachment.file_size,
                file_type=attachment.file_type,
                uploaded_by=attachment.uploaded_by,
                file_url=attachment.file_url,
                storage_path=attachment.storage_path
            )
            if attachment.uploaded_at:
                model.uploaded_at = attachment.uploaded_at
            session.add(model)
            await session.flush()
        return _attachment_to_domain(model)

    async def get(self, attachment_id: str) -> Optional[Attachment]:
        uid = _uuid(attachment_id)
        if uid is None:
            return None
        async with self._guard("get_attachment") as session:
            model = await session.get(AttachmentModel, uid)
        return _attachment_to_domain(model) if model else None

    async def delete(self, attachment_id: str) -> None:
        uid = _uuid(attachment_id)
        if uid is None:
            return
        async with self._write("delete_attachment") as session:
            await session.execute(delete(AttachmentModel).where(AttachmentModel.id == uid))

    async def list_for_ticket(self, ticket_id: str) -> List[Attachment]:
        uid = _uuid(ticket_id)
        if uid is None:
            return []
        async with self._guard("list_attachments") as session:
            stmt = (
                select(AttachmentModel)
                .where(AttachmentModel.ticket_id == uid)
                .order_by(AttachmentModel.uploaded_at.desc())
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_attachment_to_domain(model) for model in models]


class SQLAlchemyEscalationRepository(SQLAlchemyRepository, IEscalationRepository):
    """SQLAlchemy implementation for escalations."""

    async def add(self, escalation: Escalation) -> Escalation:
        async with self._write("add_escalation") as session:
            model = EscalationModel(
                ticket_id=_uuid(escalation.ticket_id),
                reason=escalation.reason,
                description=escalation.description,
                timeline=escalation.timeline,
                escalated_by=escalation.escalated_by,
                resolved=escalation.resolved
            )
            if escalation.escalated_at:
                model.escalated_at = escalation.escalated_at
            session.add(model)
            await session.flush()
        return _escalation_to_domain(model)

    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        uid = _uuid(ticket_id)
        if uid is None:
            return []
        async with self._guard("list_escalations") as session:
            stmt = (
                select(EscalationModel)
                .where(EscalationModel.ticket_id == uid)
                .order_by(EscalationModel.escalated_at.asc())
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_escalation_to_domain(model) for model in models]


class SQLAlchemyAuditLogRepository(SQLAlchemyRepository, IAuditLogRepository):
    """SQLAlchemy implementation for audit entries."""

    async def add(self, entry: AuditLog) -> AuditLog:
        async with self._write("add_audit_log") as session:
            model = AuditLogModel(
                ticket_id=entry.ticket_id,
                action=entry.action,
                details=entry.details,
                performed_by=entry.performed_by,
                old_value=entry.old_value,
                new_value=entry.new_value
            )
            if entry.performed_at:
                model.performed_at = entry.performed_at
            session.add(model)
            await session.flush()
        return _audit_to_domain(model)

    async def list(
        self,
        ticket_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        async with self._guard("list_audit_logs") as session:
            stmt = select(AuditLogModel)
            if ticket_id is not None:
                stmt = stmt.where(AuditLogModel.ticket_id == ticket_id)
            if since is not None:
                stmt = stmt.where(AuditLogModel.performed_at >= since)
            stmt = stmt.order_by(AuditLogModel.performed_at.desc())
            if limit:
                stmt = stmt.limit(limit)
            models = (await session.execute(stmt)).scalars().all()
        return [_audit_to_domain(model) for model in models]

    async def count(self, ticket_id: str, since: Optional[datetime] = None) -> int:
        async with self._guard("count_audit_logs") as session:
            stmt = select(func.count()).select_from(AuditLogModel).where(AuditLogModel.ticket_id == ticket_id)
            if since is not None:
                stmt = stmt.where(AuditLogModel.performed_at >= since)
            return (await session.execute(stmt)).scalar_one()

    async def count_by_action(self, ticket_id: str) -> Dict[str, int]:
        async with self._guard("count_audit_logs_by_action") as session:
            stmt = (
                select(AuditLogModel.action, func.count())
                .where(AuditLogModel.ticket_id == ticket_id)
                .group_by(AuditLogModel.action)
            )
            rows = (await session.execute(stmt)).all()
        return {action: count for action, count in rows}


class SQLAlchemyNotificationRepository(SQLAlchemyRepository, INotificationRepository):
    """SQLAlchemy implementation for internal notifications."""

    async def add(self, notification: Notification) -> Notification:
        async with self._write("add_notification") as session:
            model = NotificationModel(
                user_id=notification.user_id,
                title=notification.title,
                message=notification.message,
                type=notification.type,
                ticket_id=notification.ticket_id,
                read=notification.read
            )
            if notification.created_at:
                model.created_at = notification.created_at
            session.add(model)
            await session.flush()
        return _notification_to_domain(model)

    async def list_for_user(self, user_id: str, limit: int) -> List[Notification]:
        async with self._guard("list_notifications") as session:
            stmt = (
                select(NotificationModel)
                .where(NotificationModel.user_id == user_id.lower())
                .order_by(NotificationModel.created_at.desc())
                .limit(limit)
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_notification_to_domain(model) for model in models]

    async def mark_read(self, notification_id: str) -> Optional[Notification]:
        uid = _uuid(notification_id)
        if uid is None:
            return None
        async with self._write("mark_notification_read") as session:
            model = await session.get(NotificationModel, uid)
            if model is not None:
                model.read = True
        return _notification_to_domain(model) if model else None


class SQLAlchemyErrorLogRepository(SQLAlchemyRepository, IErrorLogRepository):
    """SQLAlchemy implementation for the diagnostic error log."""

    async def record(self, error_message: str, context: str) -> None:
        async with self._write("record_error") as session:
            session.add(ErrorLogModel(error_message=error_message, context=context))


class SQLAlchemyTicketTemplateRepository(SQLAlchemyRepository, ITicketTemplateRepository):
    """SQLAlchemy implementation for ticket templates."""

    async def add(self, template: TicketTemplate) -> TicketTemplate:
        async with self._write("add_ticket_template") as session:
            model = TicketTemplateModel(
                name=template.name,
                category=template.category,
                subject=template.subject,
                description=template.description,
                priority=template.priority,
                created_by=template.created_by
            )
            if template.created_at:
                model.created_at = template.created_at
            session.add(model)
            await session.flush()
        return _template_to_domain(model)

    async def list(self, offset: int, limit: int) -> List[TicketTemplate]:
        async with self._guard("list_ticket_templates") as session:
            stmt = (
                select(TicketTemplateModel)
                .order_by(TicketTemplateModel.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_template_to_domain(model) for model in models]

    async def list_by_category(self, category: str) -> List[TicketTemplate]:
        async with self._guard("list_ticket_templates_by_category") as session:
            stmt = (
                select(TicketTemplateModel)
                .where(TicketTemplateModel.category == category)
                .order_by(TicketTemplateModel.created_at.desc())
            )
            models = (await session.execute(stmt)).scalars().all()
        return [_template_to_domain(model) for model in models]
