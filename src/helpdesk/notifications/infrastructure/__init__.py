"""
Chat Notification Infrastructure
================================

HTTP clients for the chat provider and the dispatch relay.
"""

from helpdesk.notifications.infrastructure.external import DispatchRelayClient, GoogleChatClient

__all__ = ["DispatchRelayClient", "GoogleChatClient"]
