"""
Notifications Domain Layer
==========================

Contains:
- Value Objects: DispatchPayload, DispatchResult
- Domain Services: ChatMessageFormatter (outbound text rules)
"""

from helpdesk.notifications.domain.value_objects import (
    BODY_PREVIEW_CHARS,
    ChatMessageFormatter,
    DispatchPayload,
    DispatchResult,
)

__all__ = [
    "BODY_PREVIEW_CHARS",
    "ChatMessageFormatter",
    "DispatchPayload",
    "DispatchResult",
]
