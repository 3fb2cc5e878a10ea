"""
Chat Notification Services
==========================

External Notification Gateway: turns ticket lifecycle events into Google
Chat direct messages and category webhook posts.

- ChatDispatcher: sends one DispatchPayload (DM retry on rate limiting,
  single-attempt webhook, per-recipient failure isolation)
- ChatNotificationGateway: builds payloads from tickets and hands them to a
  transport, either the local dispatcher or the HTTP relay
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Optional

from helpdesk.config import NOTIFICATION_STATUS, TicketStatus
from helpdesk.core import ChatProviderException, DependencyException
from helpdesk.notifications.domain import ChatMessageFormatter, DispatchPayload, DispatchResult
from helpdesk.tickets.application.interfaces import INotificationGateway
from helpdesk.tickets.domain import ChatMessage, Ticket
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

ErrorRecorder = Callable[[str, str], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


# ========== Collaborator Interfaces ==========

class IChatClient(ABC):
    """Interface for the chat provider API."""

    @abstractmethod
    async def find_direct_message(self, email: str) -> str:
        """Find or create the DM space with a user; returns the space name."""

    @abstractmethod
    async def create_message(self, space_name: str, text: str) -> None:
        """Post a text message into a space."""

    @abstractmethod
    async def post_webhook(self, url: str, text: str) -> None:
        """Post a text message to an incoming webhook."""


class IDispatchTransport(ABC):
    """Carries a payload to a dispatcher, in-process or remote."""

    @abstractmethod
    async def send(self, payload: DispatchPayload) -> DispatchResult:
        """Dispatch the payload and report what was delivered."""


# ========== Dispatcher ==========

class ChatDispatcher:
    """
    Sends the chat messages for one payload.

    Direct messages retry on HTTP 429 with a delay of attempt x backoff
    seconds; any other failure, or running out of attempts, only drops that
    recipient. The category webhook is tried once, whatever happened to the
    direct messages.
    """

    def __init__(
        self,
        client: IChatClient,
        webhooks: Dict[str, str],
        formatter: ChatMessageFormatter,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        error_recorder: Optional[ErrorRecorder] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self._client = client
        self._webhooks = webhooks
        self._formatter = formatter
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._error_recorder = error_recorder
        self._sleep = sleep

    async def dispatch(self, payload: DispatchPayload) -> DispatchResult:
        result = DispatchResult()

        if not payload.is_chat_message:
            event = "escalated" if payload.is_escalation else "updated"
            if payload.employee_email:
                await self._direct_message(
                    payload.employee_email, self._formatter.status_dm(payload), result, event, payload
                )
            if payload.is_escalation and payload.hr_emails:
                text = self._formatter.escalation_dm(payload)
                for hr_email in payload.hr_emails:
                    await self._direct_message(hr_email, text, result, event, payload)
            if payload.category:
                await self._webhook(payload.category, self._formatter.status_webhook(payload), result, event, payload)

        elif payload.message_content and payload.sender_role:
            event = "message"
            if payload.employee_email:
                await self._direct_message(
                    payload.employee_email, self._formatter.message_dm(payload), result, event, payload
                )
            if payload.category:
                await self._webhook(payload.category, self._formatter.message_webhook(payload), result, event, payload)

        logger.info(
            "Chat notification dispatched",
            extra={
                "ticket_id": payload.ticket_id,
                "status": payload.status,
                "dm_sent": len(result.dm_sent),
                "webhook_sent": result.webhook_sent,
                "failures": len(result.failures)
            }
        )
        return result

    async def send_direct_message(self, email: str, text: str) -> None:
        """
        Deliver one DM, retrying while the provider rate-limits.

        Raises:
            ChatProviderException: Non-retryable failure or attempts exhausted
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                space_name = await self._client.find_direct_message(email)
                await self._client.create_message(space_name, text)
                return
            except ChatProviderException as e:
                if not e.is_rate_limited or attempt >= self._max_attempts:
                    raise
                delay = attempt * self._backoff_seconds
                logger.warning(
                    "Chat provider rate limited, retrying",
                    extra={"recipient": email, "attempt": attempt, "delay_seconds": delay}
                )
                await self._sleep(delay)

    async def _direct_message(
        self,
        email: str,
        text: str,
        result: DispatchResult,
        event: str,
        payload: DispatchPayload
    ) -> None:
        try:
            await self.send_direct_message(email, text)
            result.dm_sent.append(email)
        except Exception as e:
            result.failures.append(f"dm:{email}")
            logger.error(
                "Direct message failed",
                extra={"event": event, "recipient": email, "ticket_id": payload.ticket_id, "error": str(e)}
            )
            await self._record(str(e), f"direct_message: event={event}, email={email}")

    async def _webhook(
        self,
        category: str,
        text: str,
        result: DispatchResult,
        event: str,
        payload: DispatchPayload
    ) -> None:
        url = self._webhooks.get(category)
        try:
            if not url:
                raise ChatProviderException(f"No webhook URL configured for category: {category}")
            await self._client.post_webhook(url, text)
            result.webhook_sent = True
        except Exception as e:
            result.failures.append(f"webhook:{category}")
            logger.error(
                "Webhook post failed",
                extra={"event": event, "category": category, "ticket_id": payload.ticket_id, "error": str(e)}
            )
            await self._record(str(e), f"webhook: event={event}, category={category}")

    async def _record(self, message: str, context: str) -> None:
        if self._error_recorder is None:
            return
        try:
            await self._error_recorder(message, context)
        except Exception as e:
            logger.warning("Could not write error log", extra={"context": context, "error": str(e)})


class LocalDispatchTransport(IDispatchTransport):
    """Runs the dispatcher in-process."""

    def __init__(self, dispatcher: ChatDispatcher):
        self._dispatcher = dispatcher

    async def send(self, payload: DispatchPayload) -> DispatchResult:
        return await self._dispatcher.dispatch(payload)


# ========== Gateway ==========

class ChatNotificationGateway(INotificationGateway):
    """
    Lifecycle events to chat notifications.

    Never raises: transport failures are logged and reported as None.
    """

    def __init__(self, transport: IDispatchTransport):
        self._transport = transport

    @staticmethod
    def _ticket_payload(ticket: Ticket, status: str, **extra) -> DispatchPayload:
        return DispatchPayload(
            ticket_id=ticket.id,
            subject=ticket.subject,
            status=status,
            employee_email=ticket.employee_email,
            employee_name=ticket.employee_name,
            employee_id=ticket.employee_id,
            department=ticket.department,
            category=ticket.category,
            **extra
        )

    async def ticket_created(self, ticket: Ticket) -> Optional[DispatchResult]:
        return await self._send("created", self._ticket_payload(ticket, TicketStatus.OPEN))

    async def ticket_updated(self, ticket: Ticket, status: str) -> Optional[DispatchResult]:
        return await self._send("updated", self._ticket_payload(ticket, status))

    async def ticket_escalated(
        self,
        ticket: Ticket,
        reason: str,
        hr_emails: List[str]
    ) -> Optional[DispatchResult]:
        payload = self._ticket_payload(
            ticket,
            TicketStatus.ESCALATED,
            escalation_reason=reason,
            hr_emails=list(hr_emails) or None
        )
        return await self._send("escalated", payload)

    async def chat_message(self, ticket: Ticket, message: ChatMessage) -> Optional[DispatchResult]:
        payload = DispatchPayload(
            ticket_id=ticket.id,
            subject=ticket.subject,
            status=NOTIFICATION_STATUS,
            employee_email=ticket.employee_email,
            category=ticket.category,
            message_content=message.message,
            sender_role=message.sender_role
        )
        return await self._send("message", payload)

    async def _send(self, event: str, payload: DispatchPayload) -> Optional[DispatchResult]:
        try:
            return await self._transport.send(payload)
        except DependencyException as e:
            logger.error(
                "Chat notification failed",
                extra={"event": event, "ticket_id": payload.ticket_id, "error": str(e)}
            )
            return None
