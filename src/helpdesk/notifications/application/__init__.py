"""
Chat Notification Application Layer
===================================

Contains:
- Services: dispatcher, transports and the lifecycle notification gateway
- DTOs: dispatch endpoint request/response models
"""

from helpdesk.notifications.application.dto import (
    DispatchRequest,
    DispatchResponse,
    DispatchResults,
)
from helpdesk.notifications.application.services import (
    ChatDispatcher,
    ChatNotificationGateway,
    IChatClient,
    IDispatchTransport,
    LocalDispatchTransport,
)

__all__ = [
    # DTOs
    "DispatchRequest",
    "DispatchResponse",
    "DispatchResults",
    # Services
    "ChatDispatcher",
    "ChatNotificationGateway",
    "LocalDispatchTransport",
    # Interfaces
    "IChatClient",
    "IDispatchTransport",
]
