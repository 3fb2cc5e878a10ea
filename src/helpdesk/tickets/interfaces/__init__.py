"""
Ticket Interfaces Layer
=======================

Interface adapters (controllers) for the ticket lifecycle module.

Contains:
- Controllers: FastAPI route handlers, including the chat WebSocket
- Service builders shared with the background jobs
"""

from helpdesk.tickets.interfaces.controllers import (
    build_attachment_manager,
    build_audit_logger,
    build_lifecycle_service,
    router as tickets_router,
)

__all__ = [
    "tickets_router",
    "build_attachment_manager",
    "build_audit_logger",
    "build_lifecycle_service",
]
