"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from helpdesk.config import (
    Priority, TicketStatus,
    VALID_CATEGORIES, VALID_PRIORITIES
)


# Resolution budget when no (category, priority) row is configured
DEFAULT_RESOLUTION_HOURS: Dict[str, int] = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 8,
    Priority.MEDIUM: 24,
    Priority.LOW: 72,
}
FALLBACK_RESOLUTION_HOURS = 24


class SLAConfig(BaseModel):
    """
    Response and resolution budgets for one (category, priority) pair.

    At most one row exists per key.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    category: str
    priority: str
    response_time_hours: int = Field(gt=0, description="Hours until first response is due")
    resolution_time_hours: int = Field(gt=0, description="Hours until resolution is due")
    created_at: Optional[datetime] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in VALID_CATEGORIES:
            raise ValueError(f"category must be one of {VALID_CATEGORIES}")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"priority must be one of {VALID_PRIORITIES}")
        return v

    @property
    def key(self) -> tuple[str, str]:
        return (self.category, self.priority)


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class; all SLA arithmetic lives here.
    """

    @staticmethod
    def resolution_hours(priority: str, config: Optional[SLAConfig] = None) -> int:
        """
        Resolution budget in hours.

        A configured row wins; otherwise the default table keyed by
        priority, and 24h for a priority the table does not know.
        """
        if config is not None:
            return config.resolution_time_hours
        return DEFAULT_RESOLUTION_HOURS.get(priority, FALLBACK_RESOLUTION_HOURS)

    @staticmethod
    def calculate_due_date(
        now: datetime,
        priority: str,
        config: Optional[SLAConfig] = None
    ) -> datetime:
        """
        Calculate the SLA due date for a ticket created at `now`.

        Args:
            now: Creation instant
            priority: Ticket priority
            config: Configured row for the ticket's (category, priority), if any

        Returns:
            now + resolution hours
        """
        return now + timedelta(hours=SLACalculator.resolution_hours(priority, config))

    @staticmethod
    def elapsed_hours(created_at: datetime, now: datetime) -> int:
        """Whole hours elapsed since creation, floored."""
        return max(0, math.floor((now - created_at).total_seconds() / 3600))

    @staticmethod
    def is_violated(due_date: Optional[datetime], now: datetime, status: str) -> bool:
        """A ticket violates its SLA once it is past due and not closed."""
        if due_date is None or status == TicketStatus.CLOSED:
            return False
        return now > due_date
