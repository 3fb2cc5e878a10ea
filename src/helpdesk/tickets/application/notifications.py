"""
Internal Notification Store
===========================

In-app notifications addressed to one user each.
"""

from typing import List, Optional

from helpdesk.config import VALID_NOTIFICATION_TYPES
from helpdesk.core import ResourceNotFoundException, ValidationException
from helpdesk.core.clock import Clock, utcnow
from helpdesk.tickets.application.interfaces import INotificationRepository
from helpdesk.tickets.domain import Notification

DEFAULT_LIST_LIMIT = 50


class NotificationStore:
    """Appends, lists and marks notifications as read."""

    def __init__(self, repository: INotificationRepository, clock: Clock = utcnow):
        self._repo = repository
        self._clock = clock

    async def add(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str,
        ticket_id: Optional[str] = None
    ) -> Notification:
        if type not in VALID_NOTIFICATION_TYPES:
            raise ValidationException(
                f"type must be one of {VALID_NOTIFICATION_TYPES}",
                {"type": type}
            )
        return await self._repo.add(Notification(
            id=None,
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            ticket_id=ticket_id,
            read=False,
            created_at=self._clock()
        ))

    async def list_for_user(self, user_id: str, limit: int = DEFAULT_LIST_LIMIT) -> List[Notification]:
        """Newest first."""
        return await self._repo.list_for_user(user_id.lower(), limit)

    async def mark_read(self, notification_id: str) -> Notification:
        notification = await self._repo.mark_read(notification_id)
        if notification is None:
            raise ResourceNotFoundException("Notification", notification_id)
        return notification
