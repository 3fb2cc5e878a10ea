"""
Ticket Lifecycle Service
========================

Orchestrates every ticket mutation: SLA due dates, assignee selection,
field-diff driven audit entries, internal notifications and the outbound
chat gateway.

Each operation runs its steps sequentially. The primary write decides
success; audit entries, notifications and chat dispatches that fail after
it are logged, written to the error log and returned as Outcome warnings.
"""

import uuid
from datetime import timedelta
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from helpdesk.config import (
    AuditAction, NotificationType, Role, TicketStatus,
    RETENTION_AUDIT_TICKET_ID, SYSTEM_USER_EMAIL,
    VALID_CATEGORIES, VALID_PRIORITIES, VALID_ROLES, VALID_STATUSES
)
from helpdesk.core import (
    ConflictException,
    Outcome,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk.core.clock import Clock, utcnow
from helpdesk.sla.application import SLAService
from helpdesk.sla.domain import SLACalculator
from helpdesk.tickets.application.audit import AuditLogger
from helpdesk.tickets.application.interfaces import (
    IAttachmentRepository,
    IChatMessageRepository,
    IErrorLogRepository,
    IEscalationRepository,
    IMessagePublisher,
    INotificationGateway,
    ITicketRepository,
    IUserRepository,
    TicketFilter,
)
from helpdesk.tickets.application.notifications import NotificationStore
from helpdesk.tickets.domain import (
    CategoryPermissions,
    ChatMessage,
    Escalation,
    Ticket,
    User,
    diff_fields,
    reject_unknown_fields,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ESCALATION_REASON = "No reason provided"
MAX_PAGE_SIZE = 100


def _looks_like_user_id(value: str) -> bool:
    if "@" in value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class TicketLifecycleService:
    """
    Service for the ticket lifecycle.

    Coordinates the SLA service, audit logger, notification store and chat
    gateway around the ticket repository.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        user_repository: IUserRepository,
        message_repository: IChatMessageRepository,
        attachment_repository: IAttachmentRepository,
        escalation_repository: IEscalationRepository,
        error_log_repository: IErrorLogRepository,
        audit: AuditLogger,
        notifications: NotificationStore,
        sla: SLAService,
        gateway: INotificationGateway,
        publisher: Optional[IMessagePublisher] = None,
        clock: Clock = utcnow,
        retention_days: int = 90
    ):
        self._ticket_repo = ticket_repository
        self._user_repo = user_repository
        self._message_repo = message_repository
        self._attachment_repo = attachment_repository
        self._escalation_repo = escalation_repository
        self._error_log = error_log_repository
        self._audit = audit
        self._notifications = notifications
        self._sla = sla
        self._gateway = gateway
        self._publisher = publisher
        self._clock = clock
        self._retention_days = retention_days

    # ========== Queries ==========

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """Ticket with its attachments and messages."""
        ticket = await self._require_ticket(ticket_id)
        ticket.attachments = await self._attachment_repo.list_for_ticket(ticket_id)
        ticket.messages = await self._message_repo.list_for_ticket(ticket_id)
        return ticket

    async def list_tickets(
        self,
        filters: Optional[TicketFilter] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Ticket], int]:
        """One page of tickets, newest first, plus the total count."""
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationException(
                f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}",
                {"page": page, "page_size": page_size}
            )
        filters = filters or TicketFilter()
        tickets = await self._ticket_repo.list(filters, offset=(page - 1) * page_size, limit=page_size)
        total = await self._ticket_repo.count(filters)
        return tickets, total

    async def list_chat_messages(self, ticket_id: str) -> List[ChatMessage]:
        """Messages of a ticket, oldest first."""
        await self._require_ticket(ticket_id)
        return await self._message_repo.list_for_ticket(ticket_id)

    async def select_assignee(self, category: str) -> Optional[User]:
        """
        First user permitted to own `category`.

        Roles are tried in permission-table order, so a category's specific
        owner role is preferred over `owner`; within a role, creation order.
        """
        for role in CategoryPermissions.roles_for(category):
            users = await self._user_repo.list_by_role(role)
            if users:
                return users[0]
        return None

    # ========== Mutations ==========

    async def create(
        self,
        subject: str,
        description: str,
        category: str,
        priority: str,
        employee_email: str,
        employee_name: Optional[str] = None,
        department: Optional[str] = None,
        sub_department: Optional[str] = None,
        performed_by: Optional[str] = None
    ) -> Outcome[Ticket]:
        """
        Create a ticket.

        Raises:
            ValidationException: Bad category, priority or empty subject
            ResourceNotFoundException: Requester is not a known user
        """
        self._validate_fields({"subject": subject, "category": category, "priority": priority})

        requester = await self._user_repo.get_by_email(employee_email)
        if requester is None:
            raise ResourceNotFoundException("User", employee_email.lower())

        now = self._clock()
        due_date = await self._sla.calculate_due_date(category, priority, now)
        assignee = await self.select_assignee(category)
        assignee_email = assignee.email if assignee else None

        ticket = await self._ticket_repo.create(Ticket(
            id=None,
            subject=subject,
            description=description,
            category=category,
            priority=priority,
            status=TicketStatus.OPEN,
            employee_email=requester.email,
            employee_name=employee_name or requester.name,
            employee_id=requester.employee_id or requester.id,
            department=department or requester.department,
            sub_department=sub_department or requester.sub_department,
            assigned_to=assignee_email,
            sla_due_date=due_date,
            created_at=now,
            updated_at=now
        ))

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "category": category,
                "priority": priority,
                "assigned_to": assignee_email
            }
        )

        outcome = Outcome(ticket)
        assigned_suffix = f", assigned to {assignee_email}" if assignee_email else ""

        await self._audit_entry(
            outcome, ticket.id, AuditAction.CREATED,
            f"Ticket created: {subject}{assigned_suffix}",
            performed_by or requester.email
        )

        await self._notify(
            outcome, requester.email, "Ticket Created",
            f'Your ticket "{subject}" has been created'
            + (f" and assigned to {assignee_email}" if assignee_email else ""),
            NotificationType.SUCCESS, ticket.id
        )
        if assignee_email:
            await self._notify(
                outcome, assignee_email, "New Ticket Assigned",
                f'You have been assigned to ticket "{subject}" in category {category}',
                NotificationType.INFO, ticket.id
            )

        owners = await self._side_effect(
            outcome, "list_category_owners", self._category_owners(category), f"category={category}"
        ) or []
        for owner in owners:
            if owner.email == assignee_email:
                continue
            await self._notify(
                outcome, owner.email, "New Ticket in Category",
                f'New ticket "{subject}" in category {category}'
                + (f" assigned to {assignee_email}" if assignee_email else ""),
                NotificationType.INFO, ticket.id
            )

        await self._dispatch(outcome, "created", self._gateway.ticket_created(ticket), ticket.id)

        ticket.attachments = []
        ticket.messages = []
        return outcome

    async def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        performed_by: str = SYSTEM_USER_EMAIL,
        expected_version: Optional[int] = None
    ) -> Outcome[Ticket]:
        """
        Apply a partial update and announce every field that really changed.

        The write happens once, before any audit entry or notification.
        Fields equal to their current value produce nothing.

        Raises:
            ValidationException: Unknown field or bad value
            ResourceNotFoundException: Ticket does not exist
            ConflictException: `expected_version` is stale
        """
        reject_unknown_fields(changes)
        self._validate_fields(changes)

        current = await self._require_ticket(ticket_id)
        if expected_version is not None and current.version != expected_version:
            raise ConflictException("Ticket", ticket_id, expected_version)

        now = self._clock()
        proposed = dict(changes)
        if proposed.get("assigned_to"):
            proposed["assigned_to"] = proposed["assigned_to"].lower()

        new_status = changes.get("status")
        stamps: Dict[str, Any] = {}
        if new_status == TicketStatus.IN_PROGRESS and current.response_time is None:
            stamps["response_time"] = SLACalculator.elapsed_hours(current.created_at, now)
        if new_status == TicketStatus.CLOSED and current.resolution_time is None:
            stamps["resolution_time"] = SLACalculator.elapsed_hours(current.created_at, now)

        category_changed = "category" in changes and changes["category"] != current.category
        if category_changed and "assigned_to" not in changes:
            assignee = await self.select_assignee(changes["category"])
            proposed["assigned_to"] = assignee.email if assignee else None

        diff = diff_fields(current.to_dict(), proposed)
        if not diff and not stamps:
            logger.debug("Update without changes", extra={"ticket_id": ticket_id})
            return Outcome(current)

        writes = {change.field: change.new for change in diff}
        writes.update(stamps)
        writes["updated_at"] = now
        updated = await self._ticket_repo.update(ticket_id, writes, expected_version)

        logger.info(
            "Ticket updated",
            extra={
                "ticket_id": ticket_id,
                "fields": [change.field for change in diff],
                "version": updated.version
            }
        )

        outcome = Outcome(updated)
        for change in diff:
            await self._audit_entry(
                outcome, ticket_id, AuditAction.UPDATED, change.describe(), performed_by,
                change.old_text, change.new_text
            )
            await self._notify(
                outcome, current.employee_email, "Ticket Updated",
                f"Ticket {ticket_id}: {change.field} changed to {change.new_text or 'none'}",
                NotificationType.INFO, ticket_id
            )
            if change.field == "assigned_to" and change.new:
                await self._notify(
                    outcome, change.new, "Ticket Assigned",
                    f"You have been assigned to ticket {ticket_id}: {current.subject}",
                    NotificationType.INFO, ticket_id
                )
            if change.field == "status":
                if change.new == TicketStatus.ESCALATED:
                    reason = changes.get("escalation_reason") or DEFAULT_ESCALATION_REASON
                    await self._announce_escalation(outcome, updated, reason)
                else:
                    await self._dispatch(
                        outcome, "updated", self._gateway.ticket_updated(updated, change.new), ticket_id
                    )

        if category_changed and current.assigned_to and updated.assigned_to != current.assigned_to:
            await self._notify(
                outcome, current.assigned_to, "Ticket Reassigned",
                f"Ticket {ticket_id}: {current.subject} has been reassigned due to category "
                f"change to {changes['category']}",
                NotificationType.INFO, ticket_id
            )

        return outcome

    async def escalate(
        self,
        ticket_id: str,
        reason: str,
        description: str = "",
        timeline: str = "",
        performed_by: str = SYSTEM_USER_EMAIL
    ) -> Outcome[Ticket]:
        """
        Record an escalation and move the ticket to Escalated.

        The escalation record and the ticket update are separate writes.
        """
        if not reason or not reason.strip():
            raise ValidationException("Escalation reason is required")

        ticket = await self._require_ticket(ticket_id)
        now = self._clock()
        performer = performed_by.lower()

        escalation = await self._escalation_repo.add(Escalation(
            id=None,
            ticket_id=ticket_id,
            reason=reason,
            description=description,
            timeline=timeline,
            escalated_by=performer,
            resolved=False,
            escalated_at=now
        ))
        logger.info("Ticket escalated", extra={"ticket_id": ticket_id, "escalation_id": escalation.id})

        outcome: Outcome[Ticket] = Outcome(ticket)
        await self._audit_entry(
            outcome, ticket_id, AuditAction.ESCALATED, f"Ticket escalated: {reason}", performer
        )
        await self._notify(
            outcome, ticket.employee_email, "Ticket Escalated",
            f'Your ticket "{ticket.subject}" has been escalated: {reason}',
            NotificationType.WARNING, ticket_id
        )

        updated = await self.update(
            ticket_id,
            {
                "status": TicketStatus.ESCALATED,
                "escalation_reason": reason,
                "escalation_date": now
            },
            performer
        )
        outcome.value = updated.value
        outcome.extend(updated.warnings)

        # Already escalated: the status diff was empty, announce anyway
        if ticket.status == TicketStatus.ESCALATED:
            await self._announce_escalation(outcome, updated.value, reason)

        return outcome

    async def rate_ticket(self, ticket_id: str, rating: int, performed_by: str) -> Outcome[Ticket]:
        return await self.update(ticket_id, {"rating": rating}, performed_by)

    async def add_chat_message(
        self,
        ticket_id: str,
        sender_id: str,
        sender_name: str,
        sender_role: str,
        message: str
    ) -> Outcome[ChatMessage]:
        """
        Append a chat message to a ticket.

        `sender_id` is either a user id or an email address; the stored
        sender is always the email.

        Raises:
            ValidationException: Unknown sender role or empty message
            ResourceNotFoundException: Ticket or sender id is unknown
        """
        if sender_role not in VALID_ROLES:
            raise ValidationException(f"Invalid sender role: {sender_role}", {"sender_role": sender_role})
        if not message or not message.strip():
            raise ValidationException("Message must not be empty")

        ticket = await self._require_ticket(ticket_id)
        sender_email = await self._resolve_sender(sender_id)

        saved = await self._message_repo.add(ChatMessage(
            id=None,
            ticket_id=ticket_id,
            sender_id=sender_email,
            sender_name=sender_name,
            sender_role=sender_role,
            message=message,
            timestamp=self._clock()
        ))
        outcome = Outcome(saved)

        if self._publisher is not None:
            try:
                self._publisher.publish(saved)
            except Exception as e:
                logger.warning("Message publish failed", extra={"ticket_id": ticket_id, "error": str(e)})
                outcome.warn("publish", e, ticket_id=ticket_id)

        await self._audit_entry(
            outcome, ticket_id, AuditAction.UPDATED,
            f"Message added by {sender_name} ({sender_role}): {message[:50]}...",
            sender_email
        )

        recipients = []
        for candidate in (ticket.employee_email, ticket.assigned_to):
            if candidate and candidate != sender_email and candidate not in recipients:
                recipients.append(candidate)
        for recipient in recipients:
            await self._notify(
                outcome, recipient, "New Chat Message",
                f"New message in ticket {ticket_id}: {message[:50]}...",
                NotificationType.INFO, ticket_id
            )

        await self._dispatch(outcome, "message", self._gateway.chat_message(ticket, saved), ticket_id)
        return outcome

    async def cleanup_old_tickets(self) -> Outcome[int]:
        """Delete tickets past the retention window; returns the number removed."""
        cutoff = self._clock() - timedelta(days=self._retention_days)
        deleted = await self._ticket_repo.delete_created_before(cutoff)
        logger.info(
            "Old tickets cleaned up",
            extra={"deleted": deleted, "cutoff": cutoff.isoformat()}
        )

        outcome = Outcome(deleted)
        await self._audit_entry(
            outcome, RETENTION_AUDIT_TICKET_ID, AuditAction.UPDATED,
            "Old tickets cleaned up", SYSTEM_USER_EMAIL
        )
        return outcome

    async def mark_sla_violations(self) -> Outcome[int]:
        """Flag open tickets that are past their SLA due date."""
        now = self._clock()
        overdue = await self._ticket_repo.list_overdue(now)
        outcome = Outcome(0)

        for ticket in overdue:
            if not SLACalculator.is_violated(ticket.sla_due_date, now, ticket.status):
                continue
            try:
                await self._ticket_repo.update(ticket.id, {"sla_violated": True, "updated_at": now})
            except Exception as e:
                logger.error("Could not flag SLA violation", extra={"ticket_id": ticket.id, "error": str(e)})
                outcome.warn("flag_sla_violation", e, ticket_id=ticket.id)
                continue
            outcome.value += 1
            await self._audit_entry(
                outcome, ticket.id, AuditAction.UPDATED,
                f"SLA violated: due {ticket.sla_due_date.isoformat()}",
                SYSTEM_USER_EMAIL, "False", "True"
            )

        if outcome.value:
            logger.info("SLA violations flagged", extra={"count": outcome.value})
        return outcome

    # ========== Internals ==========

    async def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def _resolve_sender(self, sender_id: str) -> str:
        if _looks_like_user_id(sender_id):
            user = await self._user_repo.get_by_id(sender_id)
            if user is None:
                raise ResourceNotFoundException("User", sender_id)
            return user.email
        return sender_id.lower()

    async def _category_owners(self, category: str) -> List[User]:
        owners: List[User] = []
        for role in CategoryPermissions.roles_for(category):
            owners.extend(await self._user_repo.list_by_role(role))
        return owners

    async def _announce_escalation(self, outcome: Outcome, ticket: Ticket, reason: str) -> None:
        hr_owners = await self._side_effect(
            outcome, "list_hr_owners", self._user_repo.list_by_role(Role.HR_OWNER), f"ticket_id={ticket.id}"
        ) or []
        for hr_owner in hr_owners:
            await self._notify(
                outcome, hr_owner.email, "Ticket Escalated",
                f"Ticket {ticket.id}: {ticket.subject} has been escalated",
                NotificationType.WARNING, ticket.id
            )
        await self._dispatch(
            outcome, "escalated",
            self._gateway.ticket_escalated(ticket, reason, [owner.email for owner in hr_owners]),
            ticket.id
        )

    async def _audit_entry(
        self,
        outcome: Outcome,
        ticket_id: str,
        action: str,
        details: str,
        performed_by: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None
    ) -> None:
        # AuditLogger writes its own error log entry
        await self._side_effect(
            outcome, "audit",
            self._audit.append(ticket_id, action, details, performed_by, old_value, new_value),
            f"ticket_id={ticket_id}, action={action}",
            record_error=False
        )

    async def _notify(
        self,
        outcome: Outcome,
        user_id: str,
        title: str,
        message: str,
        type: str,
        ticket_id: Optional[str]
    ) -> None:
        await self._side_effect(
            outcome, "notification",
            self._notifications.add(user_id, title, message, type, ticket_id),
            f"ticket_id={ticket_id}, user_id={user_id}"
        )

    async def _dispatch(self, outcome: Outcome, event: str, call: Awaitable, ticket_id: str) -> None:
        await self._side_effect(outcome, f"chat_{event}", call, f"ticket_id={ticket_id}")

    async def _side_effect(
        self,
        outcome: Outcome,
        step: str,
        call: Awaitable,
        context: str,
        record_error: bool = True
    ) -> Any:
        try:
            return await call
        except Exception as e:
            logger.warning(
                "Side effect failed",
                extra={"step": step, "context": context, "error": str(e)}
            )
            outcome.warn(step, e, context=context)
            if record_error:
                await self._record_error(str(e), f"{step}: {context}")
            return None

    async def _record_error(self, message: str, context: str) -> None:
        try:
            await self._error_log.record(message, context)
        except Exception as e:
            logger.warning("Could not write error log", extra={"context": context, "error": str(e)})

    @staticmethod
    def _validate_fields(values: Dict[str, Any]) -> None:
        choices = {
            "category": VALID_CATEGORIES,
            "priority": VALID_PRIORITIES,
            "status": VALID_STATUSES,
        }
        for name, allowed in choices.items():
            if name in values and values[name] not in allowed:
                raise ValidationException(
                    f"{name} must be one of {allowed}",
                    {name: values[name]}
                )
        if "subject" in values and not (values["subject"] or "").strip():
            raise ValidationException("subject must not be empty")
        rating = values.get("rating")
        if rating is not None and not (isinstance(rating, int) and 1 <= rating <= 5):
            raise ValidationException("rating must be an integer between 1 and 5", {"rating": rating})
