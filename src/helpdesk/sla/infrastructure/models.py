"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base


class SLAConfigModel(Base):
    """
    Database model for SLA configuration rows.

    Maps to the 'sla_configs' table; one row per (category, priority).
    """
    __tablename__ = "sla_configs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    response_time_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_time_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("category", "priority", name="uq_sla_configs_category_priority"),
    )
