"""
SLA Application Services
=========================

Application services orchestrate SLA lookups and coordinate between the
domain calculator and the SLA configuration repository.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from helpdesk.core.clock import Clock, utcnow
from helpdesk.sla.domain import SLACalculator, SLAConfig
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAConfigRepository(ABC):
    """Interface for SLA configuration rows."""

    @abstractmethod
    async def get(self, category: str, priority: str) -> Optional[SLAConfig]:
        """Get the row for (category, priority), if configured."""

    @abstractmethod
    async def list(self) -> List[SLAConfig]:
        """List all configured rows."""

    @abstractmethod
    async def upsert(self, config: SLAConfig) -> SLAConfig:
        """Insert or replace the row for the config's key."""


# ========== Application Services ==========

class SLAService:
    """
    Service for SLA due-date calculation and SLA configuration.

    Coordinates between domain logic and data access.
    """

    def __init__(self, config_repository: ISLAConfigRepository, clock: Clock = utcnow):
        self._config_repo = config_repository
        self._clock = clock

    async def get_config(self, category: str, priority: str) -> Optional[SLAConfig]:
        return await self._config_repo.get(category, priority)

    async def list_configs(self) -> List[SLAConfig]:
        return await self._config_repo.list()

    async def upsert_config(self, config: SLAConfig) -> SLAConfig:
        saved = await self._config_repo.upsert(config)
        logger.info(
            "SLA configuration saved",
            extra={
                "category": saved.category,
                "priority": saved.priority,
                "resolution_time_hours": saved.resolution_time_hours
            }
        )
        return saved

    async def calculate_due_date(
        self,
        category: str,
        priority: str,
        now: Optional[datetime] = None
    ) -> datetime:
        """
        SLA due date for a ticket created at `now`.

        Prefers the configured (category, priority) row, else the default
        table keyed by priority.
        """
        config = await self._config_repo.get(category, priority)
        if config is None:
            logger.debug(
                "No SLA configuration, using default table",
                extra={"category": category, "priority": priority}
            )
        return SLACalculator.calculate_due_date(now or self._clock(), priority, config)

    async def seed(self, configs: Iterable[SLAConfig]) -> int:
        """
        Insert rows whose key is not configured yet.

        Existing rows are left untouched so administrator edits survive
        restarts.

        Returns:
            Number of rows inserted
        """
        existing = {config.key for config in await self._config_repo.list()}
        inserted = 0
        for config in configs:
            if config.key in existing:
                continue
            await self._config_repo.upsert(config)
            existing.add(config.key)
            inserted += 1

        if inserted:
            logger.info("SLA configuration seeded", extra={"rows_inserted": inserted})
        return inserted
