"""
Chat Subscriptions
==================

Real-time delivery of chat messages to live listeners.

- InProcessChatTransport: fan-out of inserted messages to open channels
- ChatSubscriptionRegistry: at most one live subscription per ticket;
  subscribing again replaces (and releases) the previous one

The registry is created at application start, passed to whoever needs it
and closed at shutdown.
"""

import threading
from typing import Callable, Dict, List, Optional

from helpdesk.tickets.application.interfaces import IMessagePublisher
from helpdesk.tickets.domain import ChatMessage
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MessageCallback = Callable[[ChatMessage], None]
CloseCallback = Callable[[], None]


class ChatChannel:
    """One open listener on a ticket's messages."""

    def __init__(
        self,
        transport: "InProcessChatTransport",
        ticket_id: str,
        callback: MessageCallback,
        on_close: Optional[CloseCallback] = None
    ):
        self.ticket_id = ticket_id
        self._transport = transport
        self._callback = callback
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, message: ChatMessage) -> None:
        if not self._closed:
            self._callback(message)

    def close(self) -> None:
        """Detach from the transport. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._transport.detach(self)
        if self._on_close is not None:
            self._on_close()


class InProcessChatTransport(IMessagePublisher):
    """
    Pushes published messages to the channels open on their ticket.

    Delivery happens synchronously in publish order; nothing is buffered
    for channels opened later.
    """

    def __init__(self):
        self._channels: Dict[str, List[ChatChannel]] = {}
        self._lock = threading.Lock()

    def open(
        self,
        ticket_id: str,
        callback: MessageCallback,
        on_close: Optional[CloseCallback] = None
    ) -> ChatChannel:
        channel = ChatChannel(self, ticket_id, callback, on_close)
        with self._lock:
            self._channels.setdefault(ticket_id, []).append(channel)
        return channel

    def detach(self, channel: ChatChannel) -> None:
        with self._lock:
            channels = self._channels.get(channel.ticket_id, [])
            if channel in channels:
                channels.remove(channel)
            if not channels:
                self._channels.pop(channel.ticket_id, None)

    def publish(self, message: ChatMessage) -> None:
        with self._lock:
            channels = list(self._channels.get(message.ticket_id, []))
        for channel in channels:
            try:
                channel.deliver(message)
            except Exception as e:
                logger.warning(
                    "Chat delivery failed",
                    extra={"ticket_id": message.ticket_id, "error": str(e)}
                )


class Subscription:
    """Handle for a registered subscription."""

    def __init__(self, registry: "ChatSubscriptionRegistry", ticket_id: str, channel: ChatChannel):
        self.ticket_id = ticket_id
        self.channel = channel
        self._registry = registry

    @property
    def active(self) -> bool:
        return not self.channel.closed

    def unsubscribe(self) -> None:
        self._registry.release(self)


class ChatSubscriptionRegistry:
    """
    Process-wide map of ticket id to its single live subscription.

    Insert-or-replace and removal are atomic per key.
    """

    def __init__(self, transport: InProcessChatTransport):
        self._transport = transport
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        ticket_id: str,
        callback: MessageCallback,
        on_close: Optional[CloseCallback] = None
    ) -> Subscription:
        """Register `callback` for a ticket, replacing any existing subscription."""
        channel = self._transport.open(ticket_id, callback, on_close)
        subscription = Subscription(self, ticket_id, channel)
        with self._lock:
            previous = self._subscriptions.get(ticket_id)
            self._subscriptions[ticket_id] = subscription
        if previous is not None:
            previous.channel.close()
            logger.info("Chat subscription replaced", extra={"ticket_id": ticket_id})
        return subscription

    def unsubscribe(self, ticket_id: str) -> bool:
        """Remove the ticket's subscription; False when there was none."""
        with self._lock:
            subscription = self._subscriptions.pop(ticket_id, None)
        if subscription is None:
            return False
        subscription.channel.close()
        return True

    def release(self, subscription: Subscription) -> None:
        """Remove `subscription` if it is still the registered one."""
        with self._lock:
            if self._subscriptions.get(subscription.ticket_id) is subscription:
                del self._subscriptions[subscription.ticket_id]
        subscription.channel.close()

    def get(self, ticket_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(ticket_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def close(self) -> None:
        """Release every subscription. Called at shutdown."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.channel.close()
        if subscriptions:
            logger.info("Chat subscriptions closed", extra={"count": len(subscriptions)})
