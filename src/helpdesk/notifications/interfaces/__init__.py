"""
Chat Notification Interfaces Layer
==================================

Contains:
- Controllers: the dispatch endpoint
"""

from helpdesk.notifications.interfaces.controllers import router as notifications_router

__all__ = ["notifications_router"]
