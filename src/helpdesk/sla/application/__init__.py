"""
SLA Application Layer
======================

Contains:
- Services: SLA due dates and SLA configuration management
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    SLAConfigRequest,
    SLAConfigResponse,
    SLAConfigListResponse,
)
from helpdesk.sla.application.services import (
    SLAService,
    ISLAConfigRepository,
)

__all__ = [
    # DTOs
    "SLAConfigRequest",
    "SLAConfigResponse",
    "SLAConfigListResponse",
    # Services
    "SLAService",
    # Repository Interfaces
    "ISLAConfigRepository",
]
