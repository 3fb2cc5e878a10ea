"""
Chat Notification Value Objects
===============================

The dispatch payload describing one lifecycle event, the result of
dispatching it, and the text rules for outbound chat messages.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from helpdesk.config import NOTIFICATION_STATUS, TicketStatus

BODY_PREVIEW_CHARS = 100


@dataclass(frozen=True)
class DispatchPayload:
    """
    One lifecycle event for the chat gateway.

    A status of "Notification" marks a chat message event; any other status
    is a ticket update (or escalation when it is "Escalated").
    """
    ticket_id: str
    subject: str
    status: str
    employee_email: Optional[str] = None
    hr_emails: Optional[List[str]] = None
    escalation_reason: Optional[str] = None
    employee_name: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    category: Optional[str] = None
    message_content: Optional[str] = None
    sender_role: Optional[str] = None

    @property
    def is_chat_message(self) -> bool:
        return self.status == NOTIFICATION_STATUS

    @property
    def is_escalation(self) -> bool:
        return self.status == TicketStatus.ESCALATED


@dataclass
class DispatchResult:
    """Which direct messages and webhook posts went through."""
    dm_sent: List[str] = field(default_factory=list)
    webhook_sent: bool = False
    failures: List[str] = field(default_factory=list)


class ChatMessageFormatter:
    """Builds the outbound texts. Every text ends with a deep link."""

    def __init__(self, app_base_url: str):
        self._base_url = app_base_url.rstrip("/")

    def ticket_url(self, ticket_id: str) -> str:
        return f"{self._base_url}/ticket/{ticket_id}"

    def status_dm(self, payload: DispatchPayload) -> str:
        reason = f" Reason: {payload.escalation_reason}" if payload.escalation_reason else ""
        return (
            f"Ticket {payload.ticket_id}: {payload.subject} updated to {payload.status}.{reason}\n"
            f"View: {self.ticket_url(payload.ticket_id)}"
        )

    def escalation_dm(self, payload: DispatchPayload) -> str:
        return (
            f"Ticket {payload.ticket_id}: {payload.subject} escalated. "
            f"Reason: {payload.escalation_reason or 'N/A'}\n"
            f"View: {self.ticket_url(payload.ticket_id)}"
        )

    def _requester(self, payload: DispatchPayload) -> str:
        return (
            f"{payload.employee_name or 'Unknown'} (ID: {payload.employee_id or 'N/A'}, "
            f"Dept: {payload.department or 'N/A'})"
        )

    def status_webhook(self, payload: DispatchPayload) -> str:
        url = self.ticket_url(payload.ticket_id)
        if payload.is_escalation:
            return (
                f"🚨 Escalated: {self._requester(payload)}. "
                f"Reason: {payload.escalation_reason or 'N/A'}\nView: {url}"
            )
        return f"ℹ️ Update: {self._requester(payload)}. Status: {payload.status}\nView: {url}"

    def message_dm(self, payload: DispatchPayload) -> str:
        body = (payload.message_content or "")[:BODY_PREVIEW_CHARS]
        return (
            f"New message on ticket {payload.ticket_id}: {body}...\n"
            f"View: {self.ticket_url(payload.ticket_id)}"
        )

    def message_webhook(self, payload: DispatchPayload) -> str:
        body = (payload.message_content or "")[:BODY_PREVIEW_CHARS]
        return (
            f"💬 New message from {payload.sender_role} on ticket {payload.ticket_id}: {body}...\n"
            f"View: {self.ticket_url(payload.ticket_id)}"
        )
