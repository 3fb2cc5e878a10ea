"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the SLA repository interface using SQLAlchemy,
and the YAML loader for the SLA seed file.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError
from sqlalchemy import select

from helpdesk.core import ConfigurationException
from helpdesk.core.clock import ensure_utc
from helpdesk.infrastructure.database.repository import SQLAlchemyRepository
from helpdesk.sla.application import ISLAConfigRepository
from helpdesk.sla.domain import SLAConfig
from helpdesk.sla.infrastructure.models import SLAConfigModel
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _to_domain(model: SLAConfigModel) -> SLAConfig:
    return SLAConfig(
        id=str(model.id),
        category=model.category,
        priority=model.priority,
        response_time_hours=model.response_time_hours,
        resolution_time_hours=model.resolution_time_hours,
        created_at=ensure_utc(model.created_at)
    )


class SQLAlchemySLAConfigRepository(SQLAlchemyRepository, ISLAConfigRepository):
    """SQLAlchemy implementation of the SLA configuration repository."""

    async def _get_model(self, category: str, priority: str) -> Optional[SLAConfigModel]:
        stmt = select(SLAConfigModel).where(
            SLAConfigModel.category == category,
            SLAConfigModel.priority == priority
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, category: str, priority: str) -> Optional[SLAConfig]:
        async with self._guard("get_sla_config"):
            model = await self._get_model(category, priority)
        return _to_domain(model) if model else None

    async def list(self) -> List[SLAConfig]:
        async with self._guard("list_sla_configs") as session:
            stmt = select(SLAConfigModel).order_by(SLAConfigModel.category, SLAConfigModel.priority)
            result = await session.execute(stmt)
            models = result.scalars().all()
        return [_to_domain(model) for model in models]

    async def upsert(self, config: SLAConfig) -> SLAConfig:
        async with self._write("upsert_sla_config") as session:
            model = await self._get_model(config.category, config.priority)
            if model is None:
                model = SLAConfigModel(category=config.category, priority=config.priority)
                session.add(model)
            model.response_time_hours = config.response_time_hours
            model.resolution_time_hours = config.resolution_time_hours
            await session.flush()
        return _to_domain(model)


class YAMLSLASeedLoader:
    """
    Loads SLA rows from a YAML file.

    Expected layout:

        sla_configs:
          - category: IT Infrastructure
            priority: Critical
            response_time_hours: 1
            resolution_time_hours: 4
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    def load(self) -> List[SLAConfig]:
        if not self._path.exists():
            logger.warning(f"SLA seed file not found: {self._path}, using default table only")
            return []

        with open(self._path, "r") as f:
            data = yaml.safe_load(f) or {}

        try:
            return [SLAConfig(**row) for row in data.get("sla_configs", [])]
        except (TypeError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid SLA seed file {self._path}: {e}",
                {"path": str(self._path)}
            ) from e
