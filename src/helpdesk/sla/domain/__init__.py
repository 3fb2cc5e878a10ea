"""
SLA Domain Layer
================

Domain layer for SLA calculation.

Contains:
- Value Objects: SLAConfig rows keyed by (category, priority)
- Domain Services: Stateless business logic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.value_objects import (
    SLACalculator,
    SLAConfig,
    DEFAULT_RESOLUTION_HOURS,
    FALLBACK_RESOLUTION_HOURS,
)

__all__ = [
    "SLACalculator",
    "SLAConfig",
    "DEFAULT_RESOLUTION_HOURS",
    "FALLBACK_RESOLUTION_HOURS",
]
